"""Library for issuing commands using asyncio and returning the result.

The helm and kubectl clients are shared by every reconciliation worker. All
invocations pass through a common semaphore and each one is bounded by a
deadline so that a hung binary can't hold a worker forever.
"""

import asyncio
import logging
import os
import shlex
import subprocess
from dataclasses import dataclass

from .exceptions import CommandException, CommandTimeoutError

_LOGGER = logging.getLogger(__name__)

_CONCURRENCY = 20
_SEM = asyncio.Semaphore(_CONCURRENCY)
DEFAULT_TIMEOUT = 60.0


# No public API
__all__: list[str] = []


@dataclass
class Command:
    """An instance of a command to run."""

    cmd: list[str]
    """Array of command line arguments."""

    exc: type[CommandException] = CommandException
    """Exception to throw in case of an error."""

    retcodes: list[int] | None = None
    """Non-zero error codes that are allowed to indicate success."""

    env: dict[str, str] | None = None
    """Environment variables for the subprocess."""

    timeout: float = DEFAULT_TIMEOUT
    """Seconds the command may run before it is killed."""

    @property
    def string(self) -> str:
        """Render the command as a single string."""
        return " ".join([shlex.quote(arg) for arg in self.cmd])

    def __str__(self) -> str:
        """Render as a debug string."""
        return self.string

    async def _communicate(self, stdin: bytes | None) -> bytes:
        env = {
            **os.environ,
            **(self.env if self.env else {}),
        }
        proc = await asyncio.create_subprocess_exec(
            *self.cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
        try:
            out, err = await proc.communicate(stdin)
        except asyncio.CancelledError:
            # The caller gave up (timeout or shutdown), don't leak the child.
            if proc.returncode is None:
                proc.kill()
            raise
        if proc.returncode:
            if self.retcodes and proc.returncode in self.retcodes:
                return out
            errors = [f"Command '{self}' failed with return code {proc.returncode}"]
            if out:
                errors.append(out.decode("utf-8"))
            if err:
                errors.append(err.decode("utf-8"))
            _LOGGER.debug("\n".join(errors))
            raise self.exc("\n".join(errors))
        return out

    async def run(self, stdin: bytes | None = None) -> bytes:
        """Run the command, returning stdout."""
        _LOGGER.debug("Running command: %s", self)
        try:
            return await asyncio.wait_for(self._communicate(stdin), self.timeout)
        except asyncio.TimeoutError as err:
            raise CommandTimeoutError(
                f"Command '{self}' timed out after {self.timeout}s"
            ) from err


async def run(cmd: Command, stdin: bytes | None = None) -> str:
    """Run the specified command and return stdout."""
    async with _SEM:
        out = await cmd.run(stdin)
    return out.decode("utf-8") if out else ""

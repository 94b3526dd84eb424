"""Library for managing native Helm releases with the `helm` binary.

The `HelmClient` interface is what the release migration consumes: query a
release, install one, and delete one. `Helm` implements it by running helm:

```python
from chart_operator.helm import Helm

helm = Helm(Path("/tmp/chart-operator"))
release = await helm.get_release("giantswarm", "kube-state-metrics")
if not release.exists:
    await helm.install(desired)
```
"""

from abc import ABC, abstractmethod
import json
import logging
from pathlib import Path
from typing import Any
import uuid

import aiofiles
import yaml

from . import command
from .exceptions import (
    HelmException,
    ReleaseAlreadyExistsError,
    ReleaseNotFoundError,
)
from .manifest import ChartDeploymentRequest, ReleaseStatus, TargetRelease

__all__ = [
    "HelmClient",
    "Helm",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"

RELEASE_NOT_FOUND_TEXT = "release: not found"
RELEASE_IN_USE_TEXT = "cannot re-use a name that is still in use"


def _translate(err: HelmException) -> HelmException:
    """Map helm error output to the specific exception it indicates."""
    message = str(err)
    if RELEASE_NOT_FOUND_TEXT in message:
        return ReleaseNotFoundError(message)
    if RELEASE_IN_USE_TEXT in message:
        return ReleaseAlreadyExistsError(message)
    return err


class HelmClient(ABC):
    """Capabilities of helm used to manage native releases."""

    @abstractmethod
    async def get_release(self, namespace: str, name: str) -> TargetRelease:
        """Return the current state of a release.

        A release helm does not know about is returned as absent. Any other
        failure is raised.
        """

    @abstractmethod
    async def install(self, desired: ChartDeploymentRequest) -> None:
        """Install a release with the desired configuration.

        Raises:
            ReleaseAlreadyExistsError: If a release with the name already exists.
        """

    @abstractmethod
    async def delete(self, namespace: str, name: str) -> None:
        """Delete a release, succeeding if it does not exist."""


class Helm(HelmClient):
    """Manages native releases by running the helm binary."""

    def __init__(
        self,
        tmp_dir: Path,
        helm_bin: str = HELM_BIN,
        kubeconfig: str | None = None,
        timeout: float = command.DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize Helm."""
        self._tmp_dir = tmp_dir
        self._helm_bin = helm_bin
        self._flags: list[str] = []
        if kubeconfig:
            self._flags.extend(["--kubeconfig", kubeconfig])
        self._timeout = timeout

    async def _run(self, args: list[str]) -> str:
        cmd = command.Command(
            [self._helm_bin, *args, *self._flags],
            exc=HelmException,
            timeout=self._timeout,
        )
        try:
            return await command.run(cmd)
        except HelmException as err:
            translated = _translate(err)
            if translated is err:
                raise
            raise translated from err

    async def get_release(self, namespace: str, name: str) -> TargetRelease:
        """Return the current state of a release."""
        try:
            status_out = await self._run(
                ["status", name, "--namespace", namespace, "--output", "json"]
            )
        except ReleaseNotFoundError:
            _LOGGER.debug("Release %s/%s not found", namespace, name)
            return TargetRelease.absent(name, namespace)
        status = _parse_json(status_out)
        values_out = await self._run(
            ["get", "values", name, "--namespace", namespace, "--output", "json"]
        )
        info = status.get("info") or {}
        metadata = (status.get("chart") or {}).get("metadata") or {}
        return TargetRelease(
            release_name=name,
            namespace=namespace,
            status=ReleaseStatus.from_helm(info.get("status", "")),
            version=metadata.get("version", ""),
            values=_parse_json(values_out) or {},
        )

    async def install(self, desired: ChartDeploymentRequest) -> None:
        """Install a release with the desired configuration."""
        args = [
            "install",
            desired.release_name,
            desired.chart_reference,
            "--namespace",
            desired.namespace,
        ]
        if desired.version:
            args.extend(["--version", desired.version])
        values_path: Path | None = None
        if desired.values:
            # Unique per call, workers may install the same release name in
            # different namespaces at once.
            values_path = self._tmp_dir / (
                f"{desired.namespace}-{desired.release_name}-{uuid.uuid4().hex}.yaml"
            )
            async with aiofiles.open(values_path, mode="w") as values_file:
                await values_file.write(yaml.dump(desired.values, sort_keys=False))
            args.extend(["--values", str(values_path)])
        _LOGGER.info("Installing release %s", desired.key)
        try:
            await self._run(args)
        finally:
            if values_path is not None:
                values_path.unlink(missing_ok=True)

    async def delete(self, namespace: str, name: str) -> None:
        """Delete a release, succeeding if it does not exist."""
        _LOGGER.info("Deleting release %s/%s", namespace, name)
        try:
            await self._run(["uninstall", name, "--namespace", namespace])
        except ReleaseNotFoundError:
            _LOGGER.debug("Release %s/%s already deleted", namespace, name)


def _parse_json(content: str) -> Any:
    try:
        return json.loads(content) if content.strip() else None
    except json.JSONDecodeError as err:
        raise HelmException(f"Unable to parse helm output: {content}") from err

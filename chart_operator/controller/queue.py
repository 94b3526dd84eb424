"""Work queue of deployment keys waiting to be reconciled.

The queue hands every key to at most one worker at a time. A key that is
added again while a worker holds it is processed once more after the worker
calls `done`, and a key added several times before it is picked up is only
processed once. Retries are scheduled with `add_after`, which arms a timer on
the event loop instead of holding a worker while waiting.
"""

import asyncio
import logging

_LOGGER = logging.getLogger(__name__)

__all__ = ["WorkQueue"]


class WorkQueue:
    """A de-duplicating queue of keys with delayed requeue support."""

    def __init__(self) -> None:
        """Initialize WorkQueue."""
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._timers: dict[str, tuple[float, asyncio.TimerHandle]] = {}
        self._idle = asyncio.Event()
        self._idle.set()
        self._shutdown = False

    def add(self, key: str) -> None:
        """Mark the key as needing reconciliation."""
        if self._shutdown:
            return
        if key in self._dirty:
            return
        self._dirty.add(key)
        self._idle.clear()
        if key in self._processing:
            # Re-queued by done()
            return
        self._queue.put_nowait(key)

    def add_after(self, key: str, delay: float) -> None:
        """Add the key once the delay in seconds has passed."""
        if self._shutdown:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        if (existing := self._timers.get(key)) is not None:
            if existing[0] <= when:
                return
            existing[1].cancel()
        _LOGGER.debug("Requeue %s in %.1fs", key, delay)
        self._timers[key] = (when, loop.call_at(when, self._fire, key))
        self._idle.clear()

    def _fire(self, key: str) -> None:
        self._timers.pop(key, None)
        self.add(key)
        self._update_idle()

    async def get(self) -> str:
        """Wait for the next key and take ownership of it."""
        key = await self._queue.get()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: str) -> None:
        """Release ownership of a key returned by `get`."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutdown:
            self._queue.put_nowait(key)
        self._update_idle()

    def _update_idle(self) -> None:
        if not self._dirty and not self._processing and not self._timers:
            self._idle.set()

    async def wait_idle(self) -> None:
        """Wait until no key is queued, being processed, or scheduled."""
        await self._idle.wait()

    def shutdown(self) -> None:
        """Stop accepting keys and cancel scheduled requeues."""
        self._shutdown = True
        for _, timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    @property
    def scheduled(self) -> set[str]:
        """Keys waiting for a requeue timer."""
        return set(self._timers)

    def __len__(self) -> int:
        """Number of keys waiting for a worker."""
        return self._queue.qsize()

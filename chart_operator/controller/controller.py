"""Chart deployment controller.

The controller owns the reconciliation loop around the release migration
resource. Keys are processed by a fixed pool of worker tasks pulling from a
`WorkQueue`, so a key is never reconciled by two workers at once while
different keys proceed concurrently.

Each tick runs to completion and its outcome decides what happens next:
    - Success: the backoff bookkeeping of the key is reset.
    - Transient error: the key is requeued after the backoff delay, unless the
      total wait of its profile was exceeded in which case it is escalated.
    - Conflict or fatal error: the key is not requeued.

Every outcome is recorded in the status store.
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import Any

from chart_operator.backoff import BackoffProfile, BackoffTracker
from chart_operator.exceptions import (
    Disposition,
    ErrorKind,
    InputException,
    MigrationError,
    wrap_client_error,
)
from chart_operator.manifest import ChartDeploymentRequest
from chart_operator.release_migration import ReleaseMigrationResource

from .queue import WorkQueue
from .status import Status, StatusInfo, StatusStore

_LOGGER = logging.getLogger(__name__)

DEFAULT_WORKERS = 10
DEFAULT_TICK_TIMEOUT = 300.0


@dataclass(frozen=True)
class ControllerConfig:
    """Configuration for the ChartController."""

    workers: int = DEFAULT_WORKERS
    """Number of keys reconciled concurrently."""

    tick_timeout: float = DEFAULT_TICK_TIMEOUT
    """Seconds a single tick may take before it is abandoned."""


class ChartController:
    """Drives the release migration resource for every tracked deployment."""

    def __init__(
        self,
        resource: ReleaseMigrationResource,
        status: StatusStore,
        config: ControllerConfig | None = None,
        tracker: BackoffTracker | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            resource: The resource reconciled on every tick
            status: Store the outcome of every tick is recorded in
            config: The configuration for the controller
            tracker: Backoff bookkeeping, mostly useful for tests
        """
        self._resource = resource
        self._status = status
        self._config = config or ControllerConfig()
        self._tracker = tracker or BackoffTracker()
        self._queue = WorkQueue()
        self._desired: dict[str, ChartDeploymentRequest] = {}
        self._deleting: set[str] = set()
        self._workers: list[asyncio.Task[None]] = []

    @property
    def status(self) -> StatusStore:
        """The store outcomes are recorded in."""
        return self._status

    @property
    def scheduled(self) -> set[str]:
        """Keys waiting for a retry."""
        return self._queue.scheduled

    def add(self, desired: ChartDeploymentRequest) -> None:
        """Track the desired state of a deployment and schedule a tick."""
        key = desired.key
        if self._desired.get(key) == desired and key not in self._deleting:
            if key in self._queue.scheduled:
                _LOGGER.debug("Key %s is waiting for a retry", key)
                return
        else:
            # A changed desired state starts a new retry sequence.
            self._tracker.reset(key)
        self._desired[key] = desired
        self._deleting.discard(key)
        self._queue.add(key)

    def delete(self, desired: ChartDeploymentRequest) -> None:
        """Schedule teardown of the native release of a deployment."""
        key = desired.key
        self._tracker.reset(key)
        self._desired[key] = desired
        self._deleting.add(key)
        self._queue.add(key)

    def forget(self, key: str) -> None:
        """Stop tracking a deployment and drop its status."""
        _LOGGER.debug("Forgetting %s", key)
        self._desired.pop(key, None)
        self._tracker.reset(key)
        self._status.forget(key)

    def sync(self, docs: list[dict[str, Any]]) -> int:
        """Track every Chart custom resource, returning the number accepted.

        The documents are the complete set of Charts. A resource being deleted
        schedules teardown of its release, and deployments whose resource is
        gone are forgotten unless their teardown is still running. Resources
        that can't be parsed are skipped.
        """
        accepted = 0
        seen: set[str] = set()
        for doc in docs:
            try:
                desired = ChartDeploymentRequest.parse_doc(doc)
            except InputException as err:
                _LOGGER.warning("Skipping invalid Chart: %s", err)
                continue
            if (doc.get("metadata") or {}).get("deletionTimestamp"):
                self.delete(desired)
            else:
                self.add(desired)
            seen.add(desired.key)
            accepted += 1
        tracked = set(self._desired) | {key for key, _ in self._status.items()}
        for key in sorted(tracked - seen - self._deleting):
            self.forget(key)
        return accepted

    def start(self) -> None:
        """Start the worker tasks."""
        if self._workers:
            return
        _LOGGER.info("Starting %d workers", self._config.workers)
        for i in range(self._config.workers):
            self._workers.append(
                asyncio.create_task(self._worker(), name=f"chart-worker-{i}")
            )

    async def close(self) -> None:
        """Stop the workers, abandoning in-flight ticks."""
        self._queue.shutdown()
        for task in self._workers:
            task.cancel()
        for task in self._workers:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._workers.clear()

    async def wait_settled(self) -> None:
        """Wait until no key is queued, in flight, or waiting to be retried."""
        await self._queue.wait_idle()

    async def _worker(self) -> None:
        while True:
            key = await self._queue.get()
            try:
                await self.reconcile(key)
            finally:
                self._queue.done(key)

    async def reconcile(self, key: str) -> StatusInfo | None:
        """Run a single tick for a key and record its outcome."""
        if (desired := self._desired.get(key)) is None:
            _LOGGER.debug("Key %s is no longer tracked", key)
            return None
        deleting = key in self._deleting
        _LOGGER.debug("Reconciling %s (deleting=%s)", key, deleting)
        try:
            async with asyncio.timeout(self._config.tick_timeout):
                if deleting:
                    await self._resource.ensure_deleted(desired)
                else:
                    await self._resource.ensure_created(desired)
        except MigrationError as err:
            return await self._on_error(desired, err)
        except TimeoutError as err:
            return await self._on_error(
                desired,
                MigrationError(
                    ErrorKind.TIMEOUT,
                    f"Reconciling {key} took longer than "
                    f"{self._config.tick_timeout}s",
                    cause=err,
                ),
            )
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.exception("Failed to reconcile %s: %s", key, err)
            return await self._on_error(
                desired, wrap_client_error(err, f"Failed to reconcile {key}")
            )

        if key not in self._desired:
            _LOGGER.debug("Key %s was forgotten during its tick", key)
            return None
        self._tracker.reset(key)
        if deleting:
            self._desired.pop(key, None)
            self._deleting.discard(key)
        info = StatusInfo(Status.READY)
        await self._status.record(desired, info)
        return info

    async def _on_error(
        self, desired: ChartDeploymentRequest, err: MigrationError
    ) -> StatusInfo | None:
        key = desired.key
        if key not in self._desired:
            _LOGGER.debug("Key %s was forgotten during its tick: %s", key, err)
            return None
        if err.disposition == Disposition.TRANSIENT:
            decision = self._tracker.record_transient(
                key, err.profile or BackoffProfile.LONG
            )
            if decision.escalated:
                err = err.escalate(decision.elapsed)
                _LOGGER.error(
                    "Giving up on %s after %d attempts: %s",
                    key,
                    decision.attempts,
                    err,
                )
            else:
                _LOGGER.info(
                    "Reconciling %s did not converge, retry in %.1fs: %s",
                    key,
                    decision.delay,
                    err,
                )
                self._queue.add_after(key, decision.delay)
                info = StatusInfo(Status.PENDING, err.kind, err.message)
                await self._status.record(desired, info)
                return info
        else:
            self._tracker.reset(key)

        if err.disposition == Disposition.CONFLICT:
            info = StatusInfo(Status.CONFLICT, err.kind, err.message)
        else:
            info = StatusInfo(Status.FAILED, err.kind, err.message)
        await self._status.record(desired, info)
        return info

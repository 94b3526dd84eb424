"""Status conditions recorded for chart deployments.

The controller records the outcome of every reconciliation tick. The
Kubernetes backed store additionally writes it to the status of the Chart
custom resource the deployment was read from.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
import logging
from typing import Any

from chart_operator.exceptions import ChartOperatorException, ErrorKind
from chart_operator.kubernetes import KubernetesClient
from chart_operator.manifest import ChartDeploymentRequest

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "Status",
    "StatusInfo",
    "StatusStore",
    "InMemoryStatusStore",
    "ChartStatusStore",
]


class Status(StrEnum):
    """Reconciliation status of a chart deployment."""

    PENDING = "Pending"
    READY = "Ready"
    CONFLICT = "Conflict"
    FAILED = "Failed"

    @property
    def settled(self) -> bool:
        """True if the deployment is not going to be retried on its own."""
        return self != Status.PENDING


@dataclass(frozen=True)
class StatusInfo:
    """Status and optional error kind and message for a deployment."""

    status: Status
    kind: ErrorKind | None = None
    reason: str | None = None

    def __str__(self) -> str:
        """Return a string representation of the status."""
        if self.reason:
            return f"{self.status}: {self.reason}"
        return str(self.status)

    def to_status(self) -> dict[str, Any]:
        """Return the status sub-resource written to the Chart custom resource."""
        status: dict[str, Any] = {"release": {"status": str(self.status)}}
        status["reason"] = self.reason or ""
        if self.kind:
            status["errorKind"] = str(self.kind)
        return status


class StatusStore(ABC):
    """Records the latest status of each chart deployment."""

    @abstractmethod
    async def record(self, desired: ChartDeploymentRequest, info: StatusInfo) -> None:
        """Record the status of a deployment."""

    @abstractmethod
    def get(self, key: str) -> StatusInfo | None:
        """Return the latest status of a deployment key."""

    @abstractmethod
    def items(self) -> list[tuple[str, StatusInfo]]:
        """Return the latest status of every deployment key, sorted by key."""

    @abstractmethod
    def forget(self, key: str) -> None:
        """Drop the status of a deployment that is no longer tracked."""


class InMemoryStatusStore(StatusStore):
    """Keeps statuses in memory only."""

    def __init__(self) -> None:
        """Initialize InMemoryStatusStore."""
        self._status: dict[str, StatusInfo] = {}

    async def record(self, desired: ChartDeploymentRequest, info: StatusInfo) -> None:
        """Record the status of a deployment."""
        if info.status == Status.FAILED:
            _LOGGER.error("Chart %s status %s", desired.key, info)
        else:
            _LOGGER.debug("Chart %s status %s", desired.key, info)
        self._status[desired.key] = info

    def get(self, key: str) -> StatusInfo | None:
        """Return the latest status of a deployment key."""
        return self._status.get(key)

    def items(self) -> list[tuple[str, StatusInfo]]:
        """Return the latest status of every deployment key, sorted by key."""
        return sorted(self._status.items())

    def forget(self, key: str) -> None:
        """Drop the status of a deployment that is no longer tracked."""
        self._status.pop(key, None)


class ChartStatusStore(InMemoryStatusStore):
    """Also writes changed statuses to the owning Chart custom resource."""

    def __init__(self, kubernetes: KubernetesClient) -> None:
        """Initialize ChartStatusStore."""
        super().__init__()
        self._kubernetes = kubernetes
        self._unwritten: set[str] = set()

    async def record(self, desired: ChartDeploymentRequest, info: StatusInfo) -> None:
        """Record the status of a deployment and write it to the cluster."""
        previous = self.get(desired.key)
        await super().record(desired, info)
        if not desired.owner:
            return
        if previous == info and desired.key not in self._unwritten:
            return
        try:
            await self._kubernetes.update_chart_status(desired.owner, info.to_status())
        except ChartOperatorException as err:
            # Written again with the status of the next tick.
            _LOGGER.warning("Unable to set status of Chart %s: %s", desired.owner, err)
            self._unwritten.add(desired.key)
        else:
            self._unwritten.discard(desired.key)

    def forget(self, key: str) -> None:
        """Drop the status of a deployment whose Chart is gone."""
        super().forget(key)
        self._unwritten.discard(key)

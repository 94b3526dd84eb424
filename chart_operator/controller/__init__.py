"""Chart controller package.

This package contains the controller that repeatedly reconciles chart
deployments with the release migration resource, the work queue it pulls keys
from, and the status conditions it records.
"""

from .controller import ChartController, ControllerConfig
from .queue import WorkQueue
from .status import (
    ChartStatusStore,
    InMemoryStatusStore,
    Status,
    StatusInfo,
    StatusStore,
)

__all__ = [
    "ChartController",
    "ControllerConfig",
    "WorkQueue",
    "Status",
    "StatusInfo",
    "StatusStore",
    "InMemoryStatusStore",
    "ChartStatusStore",
]

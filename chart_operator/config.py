"""Configuration objects for chart-operator."""

from dataclasses import dataclass

from .command import DEFAULT_TIMEOUT
from .controller.controller import DEFAULT_TICK_TIMEOUT, DEFAULT_WORKERS
from .exceptions import ErrorKind, MigrationError
from .helm import HELM_BIN
from .kubernetes import KUBECTL_BIN

DEFAULT_LEGACY_NAMESPACE = "kube-system"
DEFAULT_HEALTH_HOST = "0.0.0.0"
DEFAULT_HEALTH_PORT = 8000
DEFAULT_RESYNC_PERIOD = 300.0


@dataclass(frozen=True)
class OperatorConfig:
    """Configuration for running chart-operator against a cluster."""

    helm_bin: str = HELM_BIN
    """The helm binary used to manage native releases."""

    kubectl_bin: str = KUBECTL_BIN
    """The kubectl binary used to manage legacy release objects."""

    kubeconfig: str | None = None
    """Path of the kubeconfig, the binaries' default when unset."""

    legacy_namespace: str = DEFAULT_LEGACY_NAMESPACE
    """Namespace legacy releases are stored in."""

    call_timeout: float = DEFAULT_TIMEOUT
    """Seconds a single helm or kubectl call may take."""

    tick_timeout: float = DEFAULT_TICK_TIMEOUT
    """Seconds a single reconciliation tick may take."""

    workers: int = DEFAULT_WORKERS
    """Number of chart deployments reconciled concurrently."""

    health_host: str = DEFAULT_HEALTH_HOST

    health_port: int = DEFAULT_HEALTH_PORT

    resync_period: float = DEFAULT_RESYNC_PERIOD
    """Seconds between re-reading Chart custom resources from the cluster."""

    def validate(self) -> None:
        """Reject a configuration the operator can't run with."""
        problems = []
        if not self.helm_bin:
            problems.append("helm_bin must not be empty")
        if not self.kubectl_bin:
            problems.append("kubectl_bin must not be empty")
        if not self.legacy_namespace:
            problems.append("legacy_namespace must not be empty")
        if self.call_timeout <= 0:
            problems.append("call_timeout must be positive")
        if self.tick_timeout <= 0:
            problems.append("tick_timeout must be positive")
        if self.workers < 1:
            problems.append("workers must be at least 1")
        if not 0 < self.health_port < 65536:
            problems.append(f"health_port {self.health_port} is not a valid port")
        if self.resync_period <= 0:
            problems.append("resync_period must be positive")
        if problems:
            raise MigrationError(
                ErrorKind.INVALID_CONFIG,
                f"Invalid {type(self).__name__}: {'; '.join(problems)}",
            )

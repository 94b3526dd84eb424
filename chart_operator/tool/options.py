"""Library for flags shared by the chart-operator commands."""

from argparse import ArgumentParser
from collections.abc import Iterator
from contextlib import contextmanager
import logging
import pathlib
import tempfile
from typing import Any

import yaml

from chart_operator.config import (
    DEFAULT_HEALTH_HOST,
    DEFAULT_HEALTH_PORT,
    DEFAULT_LEGACY_NAMESPACE,
    DEFAULT_RESYNC_PERIOD,
    OperatorConfig,
)
from chart_operator.command import DEFAULT_TIMEOUT
from chart_operator.controller import (
    ChartController,
    ChartStatusStore,
    ControllerConfig,
    StatusStore,
)
from chart_operator.controller.controller import DEFAULT_TICK_TIMEOUT, DEFAULT_WORKERS
from chart_operator.exceptions import InputException
from chart_operator.helm import HELM_BIN, Helm
from chart_operator.kubernetes import KUBECTL_BIN, Kubectl
from chart_operator.manifest import CHART_KIND
from chart_operator.release_migration import (
    ReleaseMigrationConfig,
    ReleaseMigrationResource,
)

_LOGGER = logging.getLogger(__name__)


def add_cluster_flags(args: ArgumentParser) -> None:
    """Add flags that configure how the cluster is reached."""
    args.add_argument(
        "--helm-bin",
        default=HELM_BIN,
        help="The helm binary used to manage native releases",
    )
    args.add_argument(
        "--kubectl-bin",
        default=KUBECTL_BIN,
        help="The kubectl binary used to manage legacy release objects",
    )
    args.add_argument(
        "--kubeconfig",
        default=None,
        help="Path of the kubeconfig file, the default of helm and kubectl if unset",
    )
    args.add_argument(
        "--legacy-namespace",
        default=DEFAULT_LEGACY_NAMESPACE,
        help="Namespace legacy Tiller releases are stored in",
    )
    args.add_argument(
        "--call-timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="Seconds a single helm or kubectl call may take",
    )
    args.add_argument(
        "--tick-timeout",
        type=float,
        default=DEFAULT_TICK_TIMEOUT,
        help="Seconds a single reconciliation of a chart may take",
    )
    args.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help="Number of charts reconciled concurrently",
    )


def add_server_flags(args: ArgumentParser) -> None:
    """Add flags for the long running operator."""
    args.add_argument(
        "--health-host",
        default=DEFAULT_HEALTH_HOST,
        help="Address the health endpoint listens on",
    )
    args.add_argument(
        "--health-port",
        type=int,
        default=DEFAULT_HEALTH_PORT,
        help="Port the health endpoint listens on",
    )
    args.add_argument(
        "--resync-period",
        type=float,
        default=DEFAULT_RESYNC_PERIOD,
        help="Seconds between reading Chart resources from the cluster",
    )


def build_config(**kwargs: Any) -> OperatorConfig:
    """Build a validated OperatorConfig from command line flags."""
    fields = {
        key: kwargs[key]
        for key in OperatorConfig.__dataclass_fields__
        if kwargs.get(key) is not None
    }
    config = OperatorConfig(**fields)
    config.validate()
    return config


@contextmanager
def create_controller(
    config: OperatorConfig,
    status: StatusStore | None = None,
) -> Iterator[tuple[ChartController, Kubectl]]:
    """Create a controller that manages releases in the cluster.

    The status store defaults to writing the status of each Chart resource.
    """
    kubectl = Kubectl(
        kubectl_bin=config.kubectl_bin,
        kubeconfig=config.kubeconfig,
        timeout=config.call_timeout,
    )
    with tempfile.TemporaryDirectory() as tmp_dir:
        helm = Helm(
            pathlib.Path(tmp_dir),
            helm_bin=config.helm_bin,
            kubeconfig=config.kubeconfig,
            timeout=config.call_timeout,
        )
        resource = ReleaseMigrationResource(
            ReleaseMigrationConfig(
                helm=helm,
                kubernetes=kubectl,
                legacy_namespace=config.legacy_namespace,
            )
        )
        controller = ChartController(
            resource,
            status if status is not None else ChartStatusStore(kubectl),
            ControllerConfig(workers=config.workers, tick_timeout=config.tick_timeout),
        )
        yield controller, kubectl


def read_charts(paths: list[pathlib.Path]) -> list[dict[str, Any]]:
    """Read the Chart custom resources from the yaml files."""
    docs: list[dict[str, Any]] = []
    for path in paths:
        try:
            content = path.read_text()
        except OSError as err:
            raise InputException(f"Unable to read {path}: {err}") from err
        try:
            file_docs = list(yaml.safe_load_all(content))
        except yaml.YAMLError as err:
            raise InputException(f"{path} failed to parse as yaml: {err}") from err
        for doc in file_docs:
            if not isinstance(doc, dict) or doc.get("kind") != CHART_KIND:
                _LOGGER.debug("Skipping non-Chart document in %s", path)
                continue
            docs.append(doc)
    return docs

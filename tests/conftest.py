"""Fixtures shared by the chart-operator tests."""

from collections.abc import Callable
from pathlib import Path
import stat

import pytest

from chart_operator.manifest import ChartDeploymentRequest
from chart_operator.release_migration import (
    ReleaseMigrationConfig,
    ReleaseMigrationResource,
)
from chart_operator.testing import FakeHelm, FakeKubernetes

LEGACY_NAMESPACE = "kube-system"
RELEASE_NAME = "kube-state-metrics"
TARBALL_URL = (
    "https://giantswarm.github.io/default-catalog/kube-state-metrics-app-1.2.0.tgz"
)


@pytest.fixture(name="calls")
def calls_fixture() -> list[tuple[str, ...]]:
    """Call log shared by the fake clients."""
    return []


@pytest.fixture(name="finalizer_reads")
def finalizer_reads_fixture() -> int:
    """Number of reads a deleted legacy object stays visible."""
    return 0


@pytest.fixture(name="helm")
def helm_fixture(calls: list[tuple[str, ...]]) -> FakeHelm:
    """Fake helm client."""
    return FakeHelm(calls=calls)


@pytest.fixture(name="kubernetes")
def kubernetes_fixture(
    calls: list[tuple[str, ...]], finalizer_reads: int
) -> FakeKubernetes:
    """Fake kubernetes client."""
    return FakeKubernetes(finalizer_reads=finalizer_reads, calls=calls)


@pytest.fixture(name="resource")
def resource_fixture(
    helm: FakeHelm, kubernetes: FakeKubernetes
) -> ReleaseMigrationResource:
    """Release migration resource using the fake clients."""
    return ReleaseMigrationResource(
        ReleaseMigrationConfig(
            helm=helm, kubernetes=kubernetes, legacy_namespace=LEGACY_NAMESPACE
        )
    )


@pytest.fixture(name="desired")
def desired_fixture() -> ChartDeploymentRequest:
    """Desired state of the deployment under test."""
    return ChartDeploymentRequest(
        release_name=RELEASE_NAME,
        namespace=LEGACY_NAMESPACE,
        chart_name=RELEASE_NAME,
        tarball_url=TARBALL_URL,
        version="1.2.0",
        values={"replicas": 1},
    )


@pytest.fixture(name="fake_bin")
def fake_bin_fixture(tmp_path: Path) -> Callable[[str, str], str]:
    """Return a factory for executable shell scripts standing in for a binary."""

    def write(name: str, body: str) -> str:
        path = tmp_path / "bin" / name
        path.parent.mkdir(exist_ok=True)
        path.write_text("#!/bin/sh\n" + body)
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return write

"""Tests for the status stores."""

import dataclasses

import pytest

from chart_operator.controller import ChartStatusStore, Status, StatusInfo
from chart_operator.exceptions import ErrorKind, KubernetesException
from chart_operator.manifest import ChartDeploymentRequest, ObjectReference
from chart_operator.testing import FakeKubernetes

OWNER = ObjectReference(name="kube-state-metrics", namespace="giantswarm")


@pytest.fixture(name="owned")
def owned_fixture(desired: ChartDeploymentRequest) -> ChartDeploymentRequest:
    """A deployment read from a Chart resource."""
    return dataclasses.replace(desired, owner=OWNER)


@pytest.fixture(name="store")
def store_fixture(kubernetes: FakeKubernetes) -> ChartStatusStore:
    """Status store writing to the fake cluster."""
    return ChartStatusStore(kubernetes)


async def test_write_status(
    store: ChartStatusStore,
    kubernetes: FakeKubernetes,
    owned: ChartDeploymentRequest,
) -> None:
    """Test the status is written to the Chart resource."""
    info = StatusInfo(Status.PENDING, ErrorKind.RELEASES_NOT_DELETED, "still there")
    await store.record(owned, info)
    assert store.get(owned.key) == info
    assert kubernetes.chart_status == {
        "giantswarm/kube-state-metrics": {
            "release": {"status": "Pending"},
            "reason": "still there",
            "errorKind": "releasesNotDeleted",
        }
    }

    await store.record(owned, StatusInfo(Status.READY))
    assert kubernetes.chart_status["giantswarm/kube-state-metrics"] == {
        "release": {"status": "Ready"},
        "reason": "",
    }
    assert store.items() == [(owned.key, StatusInfo(Status.READY))]


async def test_unchanged_status(
    store: ChartStatusStore,
    kubernetes: FakeKubernetes,
    owned: ChartDeploymentRequest,
) -> None:
    """Test an unchanged status is not written again."""
    await store.record(owned, StatusInfo(Status.READY))
    await store.record(owned, StatusInfo(Status.READY))
    assert len(kubernetes.mutations) == 1


async def test_write_failure(
    store: ChartStatusStore,
    kubernetes: FakeKubernetes,
    owned: ChartDeploymentRequest,
) -> None:
    """Test a status that could not be written is written with the next one."""
    kubernetes.fail("update_chart_status", KubernetesException("conflict"))
    await store.record(owned, StatusInfo(Status.READY))
    assert store.get(owned.key) == StatusInfo(Status.READY)
    assert kubernetes.chart_status == {}

    await store.record(owned, StatusInfo(Status.READY))
    assert kubernetes.chart_status["giantswarm/kube-state-metrics"] == {
        "release": {"status": "Ready"},
        "reason": "",
    }


async def test_no_owner(
    store: ChartStatusStore,
    kubernetes: FakeKubernetes,
    desired: ChartDeploymentRequest,
) -> None:
    """Test a deployment without a Chart resource is only kept in memory."""
    await store.record(desired, StatusInfo(Status.READY))
    assert store.get(desired.key) == StatusInfo(Status.READY)
    assert kubernetes.calls == []


async def test_forget(
    store: ChartStatusStore,
    kubernetes: FakeKubernetes,
    owned: ChartDeploymentRequest,
) -> None:
    """Test a forgotten deployment has no status and is written again if seen."""
    await store.record(owned, StatusInfo(Status.READY))
    store.forget(owned.key)
    assert store.get(owned.key) is None
    assert store.items() == []

    await store.record(owned, StatusInfo(Status.READY))
    assert len(kubernetes.mutations) == 2

"""In-memory Helm and Kubernetes clients.

These clients keep releases and objects in dictionaries so that the release
migration can be exercised without a cluster. They record every call, can be
told to fail specific calls, and model the delays of a real cluster: a
deleted object with a finalizer stays visible for a number of reads, and a
deleted release can be reported as uninstalling for a while.

```python
helm = FakeHelm()
kubernetes = FakeKubernetes(finalizer_reads=1)
kubernetes.add_legacy_release("kube-system", "kube-state-metrics")
resource = ReleaseMigrationResource(ReleaseMigrationConfig(helm, kubernetes))
```
"""

from collections.abc import Callable
from dataclasses import dataclass, field
import logging
from typing import Any

from .exceptions import (
    ChartOperatorException,
    KubernetesException,
    ReleaseAlreadyExistsError,
)
from .helm import HelmClient
from .kubernetes import KubernetesClient
from .manifest import (
    CONFIG_MAP_KIND,
    SECRET_KIND,
    ChartDeploymentRequest,
    ObjectReference,
    ReleaseStatus,
    TargetRelease,
)

__all__ = [
    "FakeHelm",
    "FakeKubernetes",
]

_LOGGER = logging.getLogger(__name__)

DELETION_TIMESTAMP = "2020-01-01T00:00:00Z"
LATEST_CHART_VERSION = "1.0.0"
MUTATING_HELM_CALLS = {"install", "delete"}
MUTATING_KUBERNETES_CALLS = {"delete_object", "update_chart_status"}


class _Failures:
    """Errors queued up to be raised by the next calls of a method."""

    def __init__(self) -> None:
        self._errors: dict[str, list[ChartOperatorException]] = {}

    def add(self, method: str, err: ChartOperatorException, times: int) -> None:
        self._errors.setdefault(method, []).extend([err] * times)

    def check(self, method: str) -> None:
        if errors := self._errors.get(method):
            raise errors.pop(0)


class FakeHelm(HelmClient):
    """A HelmClient backed by a dictionary of releases."""

    def __init__(
        self,
        uninstall_reads: int = 0,
        calls: list[tuple[str, ...]] | None = None,
        latest_version: str = LATEST_CHART_VERSION,
    ) -> None:
        """Initialize FakeHelm.

        Args:
            uninstall_reads: Number of reads a deleted release is still reported
                as uninstalling.
            calls: Call log, may be shared with a FakeKubernetes to check the
                order of calls across both clients.
            latest_version: Chart version installed when none is pinned.
        """
        self.releases: dict[tuple[str, str], TargetRelease] = {}
        self.calls: list[tuple[str, ...]] = calls if calls is not None else []
        self.on_install: Callable[[ChartDeploymentRequest], None] | None = None
        self._uninstall_reads = uninstall_reads
        self._latest_version = latest_version
        self._uninstalling: dict[tuple[str, str], int] = {}
        self._failures = _Failures()

    def add_release(
        self,
        namespace: str,
        name: str,
        version: str = "",
        values: dict[str, Any] | None = None,
        status: ReleaseStatus = ReleaseStatus.DEPLOYED,
    ) -> TargetRelease:
        """Add an existing native release."""
        release = TargetRelease(
            release_name=name,
            namespace=namespace,
            status=status,
            version=version,
            values=values or {},
        )
        self.releases[(namespace, name)] = release
        return release

    def fail(
        self, method: str, err: ChartOperatorException, times: int = 1
    ) -> None:
        """Raise the error from the next calls of the method."""
        self._failures.add(method, err, times)

    @property
    def mutations(self) -> list[tuple[str, ...]]:
        """Calls that changed releases."""
        return [call for call in self.calls if call[0] in MUTATING_HELM_CALLS]

    async def get_release(self, namespace: str, name: str) -> TargetRelease:
        """Return the current state of a release."""
        self.calls.append(("get_release", namespace, name))
        self._failures.check("get_release")
        key = (namespace, name)
        if key in self._uninstalling:
            if self._uninstalling[key] > 0:
                self._uninstalling[key] -= 1
                return TargetRelease(
                    release_name=name, namespace=namespace, status=ReleaseStatus.PENDING
                )
            del self._uninstalling[key]
        if (release := self.releases.get(key)) is None:
            return TargetRelease.absent(name, namespace)
        return release

    async def install(self, desired: ChartDeploymentRequest) -> None:
        """Install a release with the desired configuration."""
        self.calls.append(("install", desired.namespace, desired.release_name))
        if self.on_install is not None:
            self.on_install(desired)
        self._failures.check("install")
        key = (desired.namespace, desired.release_name)
        if key in self.releases or key in self._uninstalling:
            raise ReleaseAlreadyExistsError(
                f"Error: INSTALLATION FAILED: cannot re-use a name that is still "
                f"in use: {desired.release_name}"
            )
        self.add_release(
            desired.namespace,
            desired.release_name,
            version=desired.version or self._latest_version,
            values=desired.values,
        )

    async def delete(self, namespace: str, name: str) -> None:
        """Delete a release, succeeding if it does not exist."""
        self.calls.append(("delete", namespace, name))
        self._failures.check("delete")
        key = (namespace, name)
        if self.releases.pop(key, None) is not None and self._uninstall_reads:
            self._uninstalling[key] = self._uninstall_reads


@dataclass
class _StoredObject:
    kind: str
    doc: dict[str, Any]
    remaining_reads: int | None = None
    """Reads left before a terminating object is gone."""

    @property
    def labels(self) -> dict[str, str]:
        return self.doc["metadata"].get("labels") or {}


def _parse_selector(selector: str) -> dict[str, str]:
    labels = {}
    for term in selector.split(","):
        if not term:
            continue
        key, sep, value = term.partition("=")
        if not sep:
            raise KubernetesException(f"Unsupported label selector {selector}")
        labels[key.strip()] = value.strip()
    return labels


@dataclass
class FakeKubernetes(KubernetesClient):
    """A KubernetesClient backed by a dictionary of objects."""

    finalizer_reads: int = 0
    """Number of reads a deleted object stays visible as terminating."""

    charts: list[dict[str, Any]] = field(default_factory=list)
    """Chart custom resources returned by `list_charts`."""

    chart_status: dict[str, dict[str, Any]] = field(default_factory=dict)
    """Status written to each Chart custom resource, by reference."""

    namespaces: set[str] = field(default_factory=set)
    """Namespaces that exist in the cluster."""

    calls: list[tuple[str, ...]] = field(default_factory=list)

    _objects: dict[tuple[str, str, str], _StoredObject] = field(
        default_factory=dict, repr=False
    )
    _failures: _Failures = field(default_factory=_Failures, repr=False)

    def add_object(
        self,
        kind: str,
        namespace: str,
        name: str,
        labels: dict[str, str] | None = None,
    ) -> ObjectReference:
        """Add an object to the cluster."""
        metadata: dict[str, Any] = {"name": name, "namespace": namespace}
        if labels:
            metadata["labels"] = labels
        self._objects[(kind, namespace, name)] = _StoredObject(
            kind=kind,
            doc={"kind": kind, "apiVersion": "v1", "metadata": metadata},
        )
        return ObjectReference(name=name, namespace=namespace)

    def add_legacy_release(
        self, namespace: str, release_name: str, revisions: int = 1
    ) -> list[ObjectReference]:
        """Add the ConfigMaps and Secrets a legacy release is stored in."""
        labels = {"NAME": release_name, "OWNER": "TILLER"}
        refs = []
        for revision in range(1, revisions + 1):
            name = f"{release_name}.v{revision}"
            refs.append(self.add_object(CONFIG_MAP_KIND, namespace, name, labels))
            refs.append(self.add_object(SECRET_KIND, namespace, name, labels))
        return refs

    def exists(self, kind: str, ref: ObjectReference) -> bool:
        """Return true if the object has not been removed yet."""
        return (kind, ref.namespace, ref.name) in self._objects

    def fail(
        self, method: str, err: ChartOperatorException, times: int = 1
    ) -> None:
        """Raise the error from the next calls of the method."""
        self._failures.add(method, err, times)

    @property
    def mutations(self) -> list[tuple[str, ...]]:
        """Calls that deleted objects or wrote Chart status."""
        return [call for call in self.calls if call[0] in MUTATING_KUBERNETES_CALLS]

    def _read(self, key: tuple[str, str, str]) -> dict[str, Any] | None:
        """Return a copy of an object, removing it once its finalizers are done."""
        if (stored := self._objects.get(key)) is None:
            return None
        if stored.remaining_reads is not None:
            if stored.remaining_reads <= 0:
                _LOGGER.debug("Object %s finished terminating", key)
                del self._objects[key]
                return None
            stored.remaining_reads -= 1
        return {
            **stored.doc,
            "metadata": dict(stored.doc["metadata"]),
        }

    async def list_objects(
        self, kind: str, namespace: str, selector: str
    ) -> list[dict[str, Any]]:
        """List objects of a kind in a namespace matching a label selector."""
        self.calls.append(("list_objects", kind, namespace, selector))
        self._failures.check("list_objects")
        wanted = _parse_selector(selector)
        result = []
        for key, stored in list(self._objects.items()):
            if key[0] != kind or key[1] != namespace:
                continue
            if any(stored.labels.get(k) != v for k, v in wanted.items()):
                continue
            if (doc := self._read(key)) is not None:
                result.append(doc)
        return result

    async def get_object(
        self, kind: str, ref: ObjectReference
    ) -> dict[str, Any] | None:
        """Return the object, or None if it does not exist."""
        self.calls.append(("get_object", kind, str(ref)))
        self._failures.check("get_object")
        return self._read((kind, ref.namespace, ref.name))

    async def delete_object(self, kind: str, ref: ObjectReference) -> None:
        """Delete the object, succeeding if it does not exist."""
        self.calls.append(("delete_object", kind, str(ref)))
        self._failures.check("delete_object")
        key = (kind, ref.namespace, ref.name)
        if (stored := self._objects.get(key)) is None:
            return
        if not self.finalizer_reads:
            del self._objects[key]
            return
        if stored.remaining_reads is None:
            stored.doc["metadata"]["deletionTimestamp"] = DELETION_TIMESTAMP
            stored.remaining_reads = self.finalizer_reads

    async def create_namespace(self, name: str) -> None:
        """Create a namespace, succeeding if it already exists."""
        self.calls.append(("create_namespace", name))
        self._failures.check("create_namespace")
        self.namespaces.add(name)

    async def list_charts(self) -> list[dict[str, Any]]:
        """Return all Chart custom resources in the cluster."""
        self.calls.append(("list_charts",))
        self._failures.check("list_charts")
        return list(self.charts)

    async def update_chart_status(
        self, ref: ObjectReference, status: dict[str, Any]
    ) -> None:
        """Replace the status of a Chart custom resource."""
        self.calls.append(("update_chart_status", str(ref)))
        self._failures.check("update_chart_status")
        self.chart_status[str(ref)] = status

"""Library for reading and deleting Kubernetes objects with `kubectl`.

Only the handful of operations needed by chart-operator are exposed: list,
read and delete ConfigMaps and Secrets, create the namespace of a release,
list Chart custom resources, and write the status of a Chart custom
resource. Deletes are idempotent and treat objects that do not exist as
already deleted.
"""

from abc import ABC, abstractmethod
import json
import logging
from typing import Any

from . import command
from .exceptions import KubernetesException
from .manifest import CONFIG_MAP_KIND, SECRET_KIND, ObjectReference
from .project import NAME

__all__ = [
    "KubernetesClient",
    "Kubectl",
]

_LOGGER = logging.getLogger(__name__)


KUBECTL_BIN = "kubectl"
CHART_RESOURCE = "charts.application.giantswarm.io"
MANAGED_BY_LABEL = "giantswarm.io/managed-by"
ALREADY_EXISTS_TEXT = "AlreadyExists"

_RESOURCES = {
    CONFIG_MAP_KIND: "configmaps",
    SECRET_KIND: "secrets",
}


class KubernetesClient(ABC):
    """Capabilities of the Kubernetes API used by chart-operator."""

    @abstractmethod
    async def list_objects(
        self, kind: str, namespace: str, selector: str
    ) -> list[dict[str, Any]]:
        """List objects of a kind in a namespace matching a label selector."""

    @abstractmethod
    async def get_object(
        self, kind: str, ref: ObjectReference
    ) -> dict[str, Any] | None:
        """Return the object, or None if it does not exist."""

    @abstractmethod
    async def delete_object(self, kind: str, ref: ObjectReference) -> None:
        """Delete the object, succeeding if it does not exist.

        Deletion may complete asynchronously, e.g. when the object has
        finalizers, so the object can still be returned by `get_object`.
        """

    @abstractmethod
    async def create_namespace(self, name: str) -> None:
        """Create a namespace, succeeding if it already exists."""

    @abstractmethod
    async def list_charts(self) -> list[dict[str, Any]]:
        """Return all Chart custom resources in the cluster."""

    @abstractmethod
    async def update_chart_status(
        self, ref: ObjectReference, status: dict[str, Any]
    ) -> None:
        """Replace the status of a Chart custom resource."""


def _resource(kind: str) -> str:
    if (resource := _RESOURCES.get(kind)) is None:
        raise KubernetesException(f"Unsupported object kind {kind}")
    return resource


class Kubectl(KubernetesClient):
    """Manages Kubernetes objects by running the kubectl binary."""

    def __init__(
        self,
        kubectl_bin: str = KUBECTL_BIN,
        kubeconfig: str | None = None,
        timeout: float = command.DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize Kubectl."""
        self._kubectl_bin = kubectl_bin
        self._flags: list[str] = []
        if kubeconfig:
            self._flags.extend(["--kubeconfig", kubeconfig])
        self._timeout = timeout

    async def _run(self, args: list[str], stdin: bytes | None = None) -> str:
        return await command.run(
            command.Command(
                [self._kubectl_bin, *args, *self._flags],
                exc=KubernetesException,
                timeout=self._timeout,
            ),
            stdin,
        )

    async def _get_json(self, args: list[str]) -> dict[str, Any] | None:
        out = await self._run(["get", *args, "--output", "json"])
        if not out.strip():
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError as err:
            raise KubernetesException(f"Unable to parse kubectl output: {out}") from err

    async def list_objects(
        self, kind: str, namespace: str, selector: str
    ) -> list[dict[str, Any]]:
        """List objects of a kind in a namespace matching a label selector."""
        doc = await self._get_json(
            [_resource(kind), "--namespace", namespace, "--selector", selector]
        )
        return list((doc or {}).get("items", []))

    async def get_object(
        self, kind: str, ref: ObjectReference
    ) -> dict[str, Any] | None:
        """Return the object, or None if it does not exist."""
        return await self._get_json(
            [
                _resource(kind),
                ref.name,
                "--namespace",
                ref.namespace,
                "--ignore-not-found",
            ]
        )

    async def delete_object(self, kind: str, ref: ObjectReference) -> None:
        """Delete the object, succeeding if it does not exist."""
        _LOGGER.info("Deleting %s %s", kind, ref)
        await self._run(
            [
                "delete",
                _resource(kind),
                ref.name,
                "--namespace",
                ref.namespace,
                "--ignore-not-found",
                "--wait=false",
            ]
        )

    async def create_namespace(self, name: str) -> None:
        """Create a namespace labelled as managed by chart-operator."""
        doc = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": name, "labels": {MANAGED_BY_LABEL: NAME}},
        }
        try:
            await self._run(
                ["create", "--filename", "-"], stdin=json.dumps(doc).encode()
            )
        except KubernetesException as err:
            if ALREADY_EXISTS_TEXT not in str(err):
                raise
            _LOGGER.debug("Namespace %s already exists", name)
            return
        _LOGGER.info("Created namespace %s", name)

    async def list_charts(self) -> list[dict[str, Any]]:
        """Return all Chart custom resources in the cluster."""
        doc = await self._get_json([CHART_RESOURCE, "--all-namespaces"])
        return list((doc or {}).get("items", []))

    async def update_chart_status(
        self, ref: ObjectReference, status: dict[str, Any]
    ) -> None:
        """Replace the status of a Chart custom resource."""
        _LOGGER.debug("Setting status of Chart %s", ref)
        await self._run(
            [
                "patch",
                CHART_RESOURCE,
                ref.name,
                "--namespace",
                ref.namespace,
                "--subresource=status",
                "--type=merge",
                "--patch",
                json.dumps({"status": status}),
            ]
        )

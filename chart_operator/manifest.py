"""Representation of chart deployments and the releases that back them.

A `ChartDeploymentRequest` is the desired state of one chart deployment,
parsed from a `Chart` custom resource. The legacy and target releases are
observed state, read fresh from the cluster on every reconciliation tick.
"""

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "CHART_KIND",
    "ObjectReference",
    "ChartDeploymentRequest",
    "ReleaseStatus",
    "LegacyRelease",
    "TargetRelease",
    "MigrationState",
]

_LOGGER = logging.getLogger(__name__)

CHART_DOMAIN = "application.giantswarm.io"
CHART_KIND = "Chart"
CONFIG_MAP_KIND = "ConfigMap"
SECRET_KIND = "Secret"
VERSION_BUNDLE_ANNOTATION = "giantswarm.io/version-bundle"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


@dataclass(frozen=True)
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True)
class ObjectReference(BaseManifest):
    """Reference to a ConfigMap or Secret by namespace and name."""

    name: str = ""
    namespace: str = ""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any] | None) -> "ObjectReference":
        """Parse a reference from a `{name, namespace}` object."""
        if not doc:
            return cls()
        return cls(name=doc.get("name") or "", namespace=doc.get("namespace") or "")

    def __bool__(self) -> bool:
        return bool(self.name and self.namespace)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "ObjectReference":
        """Return a reference to a raw Kubernetes object."""
        metadata = obj.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""), namespace=metadata.get("namespace", "")
        )

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, kw_only=True)
class ChartDeploymentRequest(BaseManifest):
    """Desired state of a chart deployment for one reconciliation tick."""

    release_name: str
    """Name of the Helm release."""

    namespace: str
    """Namespace the release is installed into."""

    chart_name: str = ""
    """Name of the chart."""

    tarball_url: str = ""
    """Reference to the chart package to install."""

    version: str = ""
    """Chart version."""

    values: dict[str, Any] = field(default_factory=dict)
    """Values used to render the chart."""

    channel: str = ""
    """Release channel of the chart, informational."""

    version_bundle_version: str = ""
    """Version bundle that introduced this deployment, informational."""

    config_map: ObjectReference = field(default_factory=ObjectReference)
    """Legacy ConfigMap that may still hold prior release data."""

    secret: ObjectReference = field(default_factory=ObjectReference)
    """Legacy Secret that may still hold prior release data."""

    owner: ObjectReference = field(default_factory=ObjectReference)
    """The custom resource this request was read from, used for status."""

    @property
    def key(self) -> str:
        """Deployment identifier used to track per-key state."""
        return f"{self.namespace}/{self.release_name}"

    @property
    def chart_reference(self) -> str:
        """The chart to install, the tarball if set otherwise the chart name."""
        return self.tarball_url or self.chart_name

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ChartDeploymentRequest":
        """Parse a ChartDeploymentRequest from a Chart custom resource."""
        _check_version(doc, CHART_DOMAIN)
        if doc.get("kind") != CHART_KIND:
            raise InputException(f"Invalid {cls} expected kind {CHART_KIND}: {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid {cls} missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid {cls} missing metadata.name: {doc}")
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls} missing spec: {doc}")
        config = spec.get("config") or {}
        annotations = metadata.get("annotations") or {}
        return cls(
            release_name=spec.get("name") or "",
            namespace=spec.get("namespace") or "",
            chart_name=spec.get("chart") or name,
            tarball_url=spec.get("tarballURL") or "",
            version=spec.get("version") or "",
            values=spec.get("values") or {},
            channel=spec.get("channel") or "",
            version_bundle_version=annotations.get(VERSION_BUNDLE_ANNOTATION, ""),
            config_map=ObjectReference.parse_doc(config.get("configMap")),
            secret=ObjectReference.parse_doc(config.get("secret")),
            owner=ObjectReference(name=name, namespace=metadata.get("namespace", "")),
        )

    def validate(self) -> list[str]:
        """Return the names of required fields that are missing."""
        missing = []
        if not self.release_name:
            missing.append("release_name")
        if not self.namespace:
            missing.append("namespace")
        if not self.chart_reference:
            missing.append("chart_reference")
        return missing


class ReleaseStatus(StrEnum):
    """Observed deployment status of a native Helm release."""

    ABSENT = "absent"
    PENDING = "pending"
    DEPLOYED = "deployed"
    FAILED = "failed"

    @classmethod
    def from_helm(cls, status: str) -> "ReleaseStatus":
        """Map a status reported by helm to a release status."""
        status = status.lower()
        if status in ("deployed", "superseded"):
            return cls.DEPLOYED
        if status == "failed":
            return cls.FAILED
        if status.startswith("pending") or status == "uninstalling":
            return cls.PENDING
        _LOGGER.debug("Unknown helm release status %s, treating as failed", status)
        return cls.FAILED


@dataclass(frozen=True, kw_only=True)
class LegacyRelease:
    """A release stored by the legacy ConfigMap and Secret backed model."""

    release_name: str

    config_maps: list[ObjectReference] = field(default_factory=list)
    """Backing ConfigMaps that still exist."""

    secrets: list[ObjectReference] = field(default_factory=list)
    """Backing Secrets that still exist."""

    terminating: frozenset[tuple[str, ObjectReference]] = frozenset()
    """Backing objects, as (kind, reference), whose deletion is in progress."""

    @property
    def exists(self) -> bool:
        """True while any backing object of the legacy release remains."""
        return bool(self.config_maps or self.secrets)

    @property
    def objects(self) -> list[tuple[str, ObjectReference]]:
        """All remaining backing objects as (kind, reference)."""
        return [(CONFIG_MAP_KIND, ref) for ref in self.config_maps] + [
            (SECRET_KIND, ref) for ref in self.secrets
        ]

    def pending_deletes(self) -> list[tuple[str, ObjectReference]]:
        """Backing objects that have not been asked to be deleted yet."""
        return [obj for obj in self.objects if obj not in self.terminating]


@dataclass(frozen=True, kw_only=True)
class TargetRelease:
    """A native Helm release."""

    release_name: str

    namespace: str

    status: ReleaseStatus = ReleaseStatus.ABSENT

    version: str = ""
    """Chart version the release was installed with."""

    values: dict[str, Any] = field(default_factory=dict)
    """User supplied values the release was installed with."""

    @property
    def exists(self) -> bool:
        """True if helm knows about the release in any state."""
        return self.status != ReleaseStatus.ABSENT

    def matches(self, desired: ChartDeploymentRequest) -> bool:
        """Return true if the release was installed with the desired configuration.

        A deployment without a pinned version accepts whichever chart version
        helm resolved when installing it.
        """
        if desired.version and self.version != desired.version:
            return False
        return self.values == desired.values

    @classmethod
    def absent(cls, release_name: str, namespace: str) -> "TargetRelease":
        """Return a release that does not exist."""
        return cls(release_name=release_name, namespace=namespace)


@dataclass(frozen=True)
class MigrationState:
    """Observed state of the legacy and target release of one deployment."""

    legacy: LegacyRelease
    target: TargetRelease

"""Project metadata and the version bundle published for fleet upgrades.

The version bundle is a static descriptor read by a cluster-wide version
tracker. It is not consulted by the reconciliation logic.
"""

from dataclasses import dataclass, field
from enum import StrEnum

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
import yaml

__all__ = [
    "NAME",
    "VERSION",
    "ChangelogKind",
    "Changelog",
    "Component",
    "VersionBundle",
    "version_bundle",
]

NAME = "chart-operator"
DESCRIPTION = (
    "The chart-operator deploys Helm charts and migrates releases "
    "from Tiller to native Helm releases."
)
SOURCE = "https://github.com/giantswarm/chart-operator"
GIT_SHA = "n/a"
VERSION = "1.0.0"


class ChangelogKind(StrEnum):
    """Kind of change described by a changelog entry."""

    ADDED = "added"
    CHANGED = "changed"
    DEPRECATED = "deprecated"
    FIXED = "fixed"
    REMOVED = "removed"
    SECURITY = "security"


@dataclass(frozen=True)
class Changelog(DataClassDictMixin):
    """A human readable change in a version bundle."""

    component: str
    description: str
    kind: ChangelogKind


@dataclass(frozen=True)
class Component(DataClassDictMixin):
    """A dependency version shipped with a version bundle."""

    name: str
    version: str


@dataclass(frozen=True)
class VersionBundle(DataClassDictMixin):
    """Version and changes of a component for fleet-wide upgrade sequencing."""

    name: str
    version: str
    changelogs: list[Changelog] = field(default_factory=list)
    components: list[Component] = field(default_factory=list)
    git_sha: str = field(default=GIT_SHA, metadata=field_options(alias="gitSHA"))

    class Config(BaseConfig):
        serialize_by_alias = True

    def yaml(self) -> str:
        """Return a YAML string representation of the bundle."""
        return yaml.dump(self.to_dict(), sort_keys=False, explicit_start=True)


def version_bundle() -> VersionBundle:
    """Return the version bundle of this release of chart-operator."""
    return VersionBundle(
        name=NAME,
        version=VERSION,
        changelogs=[
            Changelog(
                component=NAME,
                description=(
                    "Migrate Tiller releases to native Helm releases without "
                    "overwriting existing releases."
                ),
                kind=ChangelogKind.ADDED,
            ),
            Changelog(
                component=NAME,
                description=(
                    "Retry transient failures with bounded backoff and report "
                    "releases that never converge."
                ),
                kind=ChangelogKind.ADDED,
            ),
        ],
    )

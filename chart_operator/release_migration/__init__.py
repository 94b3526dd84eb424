"""Release migration package.

This package contains the resource that migrates chart deployments from
legacy Tiller releases to native Helm releases, and the inspector it uses to
read the state of both.
"""

from .inspector import ReleaseStateInspector
from .resource import ReleaseMigrationConfig, ReleaseMigrationResource

__all__ = [
    "ReleaseMigrationConfig",
    "ReleaseMigrationResource",
    "ReleaseStateInspector",
]

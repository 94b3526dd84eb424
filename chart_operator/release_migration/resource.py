"""Release migration resource.

Migrates a chart deployment from a legacy release, stored by Tiller in
ConfigMaps and Secrets, to a native Helm release. Each call of
`ensure_created` is one reconciliation tick: it reads the current state,
performs at most the one remaining action needed to converge, and either
returns or raises a classified `MigrationError`.

The target release is only created once the legacy release is confirmed to
be gone, and an existing target release is never overwritten.
"""

from dataclasses import dataclass
import logging

from chart_operator.exceptions import (
    ChartOperatorException,
    ErrorKind,
    MigrationError,
    ReleaseAlreadyExistsError,
    wrap_client_error,
)
from chart_operator.helm import HelmClient
from chart_operator.kubernetes import KubernetesClient
from chart_operator.manifest import (
    ChartDeploymentRequest,
    LegacyRelease,
    ReleaseStatus,
    TargetRelease,
)

from .inspector import ReleaseStateInspector

_LOGGER = logging.getLogger(__name__)

NAME = "releasemigration"


@dataclass(frozen=True)
class ReleaseMigrationConfig:
    """Configuration for the ReleaseMigrationResource."""

    helm: HelmClient | None
    """Client used to manage native releases."""

    kubernetes: KubernetesClient | None
    """Client used to read and delete legacy release objects."""

    legacy_namespace: str = "kube-system"
    """Namespace legacy releases are stored in (the Tiller namespace)."""


class ReleaseMigrationResource:
    """Converges a chart deployment from its legacy release to a native release."""

    def __init__(self, config: ReleaseMigrationConfig) -> None:
        """Initialize the resource, rejecting an incomplete configuration."""
        if config.helm is None:
            raise MigrationError(
                ErrorKind.INVALID_CONFIG,
                f"{type(config).__name__}.helm must not be empty",
            )
        if config.kubernetes is None:
            raise MigrationError(
                ErrorKind.INVALID_CONFIG,
                f"{type(config).__name__}.kubernetes must not be empty",
            )
        if not config.legacy_namespace:
            raise MigrationError(
                ErrorKind.INVALID_CONFIG,
                f"{type(config).__name__}.legacy_namespace must not be empty",
            )
        self._helm = config.helm
        self._kubernetes = config.kubernetes
        self._inspector = ReleaseStateInspector(
            config.helm, config.kubernetes, config.legacy_namespace
        )

    @property
    def name(self) -> str:
        """Name of this resource."""
        return NAME

    async def ensure_created(self, desired: ChartDeploymentRequest) -> None:
        """Migrate the deployment to a native release with the desired configuration.

        Raises:
            MigrationError: When the tick did not converge. The error kind
                decides whether the key is retried.
        """
        if missing := desired.validate():
            raise MigrationError(
                ErrorKind.INVALID_CONFIG,
                f"Chart deployment {desired.key} is missing {', '.join(missing)}",
            )

        legacy = await self._inspector.legacy_release(desired)
        if legacy.exists:
            _LOGGER.debug("Release %s has a legacy release", desired.key)
            await self._delete_legacy(legacy)
            legacy = await self._inspector.legacy_release(desired)
            if legacy.exists:
                raise MigrationError(
                    ErrorKind.RELEASES_NOT_DELETED,
                    f"Legacy release {legacy.release_name} not deleted: "
                    + ", ".join(f"{kind} {ref}" for kind, ref in legacy.objects),
                )
            _LOGGER.info("Deleted legacy release %s", legacy.release_name)
        else:
            _LOGGER.debug("No legacy release for %s", desired.key)

        target = await self._inspector.target_release(desired)
        if target.exists:
            self._check_existing(desired, target)
            return

        try:
            await self._kubernetes.create_namespace(desired.namespace)
        except ChartOperatorException as err:
            raise wrap_client_error(
                err, f"Unable to create namespace {desired.namespace}"
            ) from err

        _LOGGER.info("Creating release %s", desired.key)
        try:
            await self._helm.install(desired)
        except ReleaseAlreadyExistsError:
            # Someone else created it since we looked.
            _LOGGER.debug("Release %s was created concurrently", desired.key)
            target = await self._inspector.target_release(desired)
            self._check_existing(desired, target)
            return
        except ChartOperatorException as err:
            raise wrap_client_error(
                err, f"Unable to create release {desired.key}"
            ) from err
        _LOGGER.info("Created release %s", desired.key)

    async def ensure_deleted(self, desired: ChartDeploymentRequest) -> None:
        """Delete the native release of the deployment.

        The legacy release is not touched, migration only goes one way.
        """
        if not desired.release_name or not desired.namespace:
            raise MigrationError(
                ErrorKind.INVALID_CONFIG,
                f"Chart deployment {desired.key} is missing release_name or namespace",
            )
        target = await self._inspector.target_release(desired)
        if not target.exists:
            _LOGGER.debug("Release %s already deleted", desired.key)
            return

        _LOGGER.info("Deleting release %s", desired.key)
        try:
            await self._helm.delete(desired.namespace, desired.release_name)
        except ChartOperatorException as err:
            raise wrap_client_error(
                err, f"Unable to delete release {desired.key}"
            ) from err

        target = await self._inspector.target_release(desired)
        if target.exists:
            raise MigrationError(
                ErrorKind.RELEASE_NOT_DELETED,
                f"Release {desired.key} not deleted, status {target.status}",
            )
        _LOGGER.info("Deleted release %s", desired.key)

    async def _delete_legacy(self, legacy: LegacyRelease) -> None:
        """Request deletion of the legacy release objects not already deleting.

        Failures are only logged, the caller re-reads the legacy release to
        find out what is left.
        """
        for kind, ref in legacy.pending_deletes():
            _LOGGER.info(
                "Deleting %s %s of legacy release %s", kind, ref, legacy.release_name
            )
            try:
                await self._kubernetes.delete_object(kind, ref)
            except ChartOperatorException as err:
                _LOGGER.warning("Unable to delete %s %s: %s", kind, ref, err)

    def _check_existing(
        self, desired: ChartDeploymentRequest, target: TargetRelease
    ) -> None:
        """Accept an existing release only if it has the desired configuration."""
        if not target.exists:
            # Gone again between the failed install and the re-read.
            raise MigrationError(
                ErrorKind.CLIENT_ERROR,
                f"Release {desired.key} was deleted while being created",
            )
        if not target.matches(desired):
            _LOGGER.warning(
                "Release %s already exists with version %s, want %s",
                desired.key,
                target.version,
                desired.version,
            )
            raise MigrationError(
                ErrorKind.RELEASE_ALREADY_EXISTS,
                f"Release {desired.key} already exists with a different "
                f"configuration (version {target.version!r}, want {desired.version!r})",
            )
        if target.status != ReleaseStatus.DEPLOYED:
            # Left behind by an install that failed or never finished.
            raise MigrationError(
                ErrorKind.CLIENT_ERROR,
                f"Release {desired.key} has the desired configuration but is "
                f"{target.status}",
            )
        _LOGGER.debug("Release %s is %s and up to date", desired.key, target.status)

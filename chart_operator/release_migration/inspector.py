"""Live view of the legacy and target release of a chart deployment."""

import logging
from typing import Any

from chart_operator.exceptions import ChartOperatorException, wrap_client_error
from chart_operator.helm import HelmClient
from chart_operator.kubernetes import KubernetesClient
from chart_operator.manifest import (
    CONFIG_MAP_KIND,
    SECRET_KIND,
    ChartDeploymentRequest,
    LegacyRelease,
    MigrationState,
    ObjectReference,
    TargetRelease,
)

_LOGGER = logging.getLogger(__name__)


def legacy_selector(release_name: str) -> str:
    """Label selector of the objects a legacy release is stored in."""
    return f"NAME={release_name},OWNER=TILLER"


class ReleaseStateInspector:
    """Queries the observable state of a release migration.

    Nothing is cached: every call reads from the cluster so that a decision is
    never made on state that was changed by someone else in the meantime. A
    failed query is raised and never reported as an absent release.
    """

    def __init__(
        self,
        helm: HelmClient,
        kubernetes: KubernetesClient,
        legacy_namespace: str,
    ) -> None:
        """Initialize ReleaseStateInspector."""
        self._helm = helm
        self._kubernetes = kubernetes
        self._legacy_namespace = legacy_namespace

    async def _legacy_objects(
        self, kind: str, selector: str, ref: ObjectReference
    ) -> list[dict[str, Any]]:
        objects = await self._kubernetes.list_objects(
            kind, self._legacy_namespace, selector
        )
        if ref and not any(ObjectReference.from_object(obj) == ref for obj in objects):
            if (obj := await self._kubernetes.get_object(kind, ref)) is not None:
                objects.append(obj)
        return objects

    async def legacy_release(self, desired: ChartDeploymentRequest) -> LegacyRelease:
        """Return the legacy release backing the deployment."""
        selector = legacy_selector(desired.release_name)
        try:
            config_maps = await self._legacy_objects(
                CONFIG_MAP_KIND, selector, desired.config_map
            )
            secrets = await self._legacy_objects(SECRET_KIND, selector, desired.secret)
        except ChartOperatorException as err:
            raise wrap_client_error(
                err, f"Unable to query legacy release {desired.release_name}"
            ) from err
        found = ((CONFIG_MAP_KIND, config_maps), (SECRET_KIND, secrets))
        terminating = frozenset(
            (kind, ObjectReference.from_object(obj))
            for kind, objects in found
            for obj in objects
            if (obj.get("metadata") or {}).get("deletionTimestamp")
        )
        legacy = LegacyRelease(
            release_name=desired.release_name,
            config_maps=[ObjectReference.from_object(obj) for obj in config_maps],
            secrets=[ObjectReference.from_object(obj) for obj in secrets],
            terminating=terminating,
        )
        _LOGGER.debug(
            "Legacy release %s: %d ConfigMaps, %d Secrets, %d terminating",
            desired.release_name,
            len(config_maps),
            len(secrets),
            len(terminating),
        )
        return legacy

    async def target_release(self, desired: ChartDeploymentRequest) -> TargetRelease:
        """Return the native Helm release of the deployment."""
        try:
            target = await self._helm.get_release(
                desired.namespace, desired.release_name
            )
        except ChartOperatorException as err:
            raise wrap_client_error(
                err, f"Unable to query release {desired.key}"
            ) from err
        _LOGGER.debug("Release %s is %s", desired.key, target.status)
        return target

    async def query(self, desired: ChartDeploymentRequest) -> MigrationState:
        """Return the state of both releases, the legacy release read first."""
        legacy = await self.legacy_release(desired)
        target = await self.target_release(desired)
        return MigrationState(legacy=legacy, target=target)

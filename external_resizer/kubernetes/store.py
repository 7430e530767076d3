import logging
from typing import Any

from aiohttp import ClientError
from kubernetes_asyncio.client import CoreV1Api
from kubernetes_asyncio.client.exceptions import ApiException

from ..exceptions import ResizerConflictError, ResizerKubernetesError, ResizerNotFoundError

logger = logging.getLogger(__name__)

MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"


def _translate(exc: ApiException | ClientError | TimeoutError, description: str) -> ResizerKubernetesError:
    if isinstance(exc, ApiException):
        detail = exc.body or exc.reason or str(exc)
        if exc.status == 409:
            return ResizerConflictError(f"Conflict while patching {description}: {detail}")
        if exc.status == 404:
            return ResizerNotFoundError(f"{description} not found")
        return ResizerKubernetesError(f"Failed to patch {description}: {detail}")
    return ResizerKubernetesError(f"Failed to patch {description}: {exc!r}")


class KubernetesStore:
    """Submits merge patches against the API server and returns the updated manifests."""

    def __init__(self, core_v1: CoreV1Api):
        self._core_v1 = core_v1

    def _serialize(self, obj: Any) -> dict[str, Any]:
        return self._core_v1.api_client.sanitize_for_serialization(obj)

    async def patch_claim_status(self, namespace: str, name: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            updated = await self._core_v1.patch_namespaced_persistent_volume_claim_status(
                name=name,
                namespace=namespace,
                body=body,
                _content_type=MERGE_PATCH_CONTENT_TYPE,
            )
        except (ApiException, ClientError, TimeoutError) as exc:
            raise _translate(exc, f"status of PersistentVolumeClaim {namespace}/{name}") from exc
        logger.debug("Patched status of PersistentVolumeClaim %s/%s with %s", namespace, name, body)
        return self._serialize(updated)

    async def patch_volume(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            updated = await self._core_v1.patch_persistent_volume(
                name=name,
                body=body,
                _content_type=MERGE_PATCH_CONTENT_TYPE,
            )
        except (ApiException, ClientError, TimeoutError) as exc:
            raise _translate(exc, f"PersistentVolume {name}") from exc
        logger.debug("Patched PersistentVolume %s with %s", name, body)
        return self._serialize(updated)

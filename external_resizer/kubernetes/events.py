import logging
from datetime import UTC, datetime
from typing import Literal, Protocol
from uuid import uuid4

from aiohttp import ClientError
from kubernetes_asyncio import client
from kubernetes_asyncio.client import CoreV1Api
from kubernetes_asyncio.client.exceptions import ApiException

from ..models import Claim

logger = logging.getLogger(__name__)

EventType = Literal["Normal", "Warning"]


class EventRecorder(Protocol):
    async def event(self, claim: Claim, type_: EventType, reason: str, message: str) -> None: ...


class KubernetesEventRecorder:
    """Records lifecycle events on claims as core/v1 Events.

    Emission is fire-and-forget: a failure to write the event is logged and
    never propagated to the caller.
    """

    def __init__(self, core_v1: CoreV1Api, identity: str):
        self._core_v1 = core_v1
        self._component = f"external-resizer {identity}"

    def _build_event(self, claim: Claim, type_: EventType, reason: str, message: str) -> client.CoreV1Event:
        now = datetime.now(UTC)
        return client.CoreV1Event(
            metadata=client.V1ObjectMeta(name=f"{claim.name}.{uuid4().hex[:16]}", namespace=claim.namespace),
            involved_object=client.V1ObjectReference(
                api_version="v1",
                kind="PersistentVolumeClaim",
                namespace=claim.namespace,
                name=claim.name,
                uid=claim.uid or None,
                resource_version=claim.resource_version or None,
            ),
            reason=reason,
            message=message,
            type=type_,
            source=client.V1EventSource(component=self._component),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )

    async def event(self, claim: Claim, type_: EventType, reason: str, message: str) -> None:
        logger.info("Event(%s): type: %r reason: %r %s", claim.key, type_, reason, message)
        try:
            await self._core_v1.create_namespaced_event(
                namespace=claim.namespace,
                body=self._build_event(claim, type_, reason, message),
            )
        except (ApiException, ClientError, TimeoutError) as exc:
            logger.warning("Failed to record event %s on PersistentVolumeClaim %s: %s", reason, claim.key, exc)

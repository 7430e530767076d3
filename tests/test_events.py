from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import claim_manifest
from kubernetes_asyncio.client.exceptions import ApiException

from external_resizer.kubernetes.events import KubernetesEventRecorder
from external_resizer.models import Claim


@pytest.mark.asyncio
async def test_event_is_created_on_claim():
    core_v1 = MagicMock()
    core_v1.create_namespaced_event = AsyncMock()
    recorder = KubernetesEventRecorder(core_v1, "resizer-a")
    claim = Claim.from_manifest(claim_manifest())

    await recorder.event(claim, "Normal", "Resizing", "External resizer is resizing volume pv-data")

    core_v1.create_namespaced_event.assert_awaited_once()
    kwargs = core_v1.create_namespaced_event.await_args.kwargs
    assert kwargs["namespace"] == "default"
    body = kwargs["body"]
    assert body.metadata.name.startswith("data.")
    assert body.involved_object.kind == "PersistentVolumeClaim"
    assert body.involved_object.name == "data"
    assert body.involved_object.uid == "uid-data"
    assert (body.type, body.reason) == ("Normal", "Resizing")
    assert body.source.component == "external-resizer resizer-a"


@pytest.mark.asyncio
async def test_event_names_are_unique():
    core_v1 = MagicMock()
    core_v1.create_namespaced_event = AsyncMock()
    recorder = KubernetesEventRecorder(core_v1, "resizer-a")
    claim = Claim.from_manifest(claim_manifest())

    await recorder.event(claim, "Normal", "Resizing", "first")
    await recorder.event(claim, "Normal", "Resizing", "second")

    names = {call.kwargs["body"].metadata.name for call in core_v1.create_namespaced_event.await_args_list}
    assert len(names) == 2


@pytest.mark.asyncio
async def test_event_failure_is_not_propagated(caplog):
    core_v1 = MagicMock()
    core_v1.create_namespaced_event = AsyncMock(side_effect=ApiException(status=403, reason="Forbidden"))
    recorder = KubernetesEventRecorder(core_v1, "resizer-a")

    await recorder.event(Claim.from_manifest(claim_manifest()), "Warning", "VolumeResizeFailed", "boom")

    assert "Failed to record event VolumeResizeFailed" in caplog.text

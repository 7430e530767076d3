import copy
from typing import Any

import pytest

from external_resizer._util import object_key, quantity_to_bytes
from external_resizer.controller import ResizeController
from external_resizer.controller.metrics import ResizeMetrics
from external_resizer.controller.queue import RateLimitingQueue
from external_resizer.exceptions import ResizerConflictError, ResizerNotFoundError
from external_resizer.kubernetes.informer import Informer
from external_resizer.models import ResizeOutcome, Volume
from external_resizer.resizers import Resizer


def claim_manifest(
    *,
    namespace: str = "default",
    name: str = "data",
    phase: str | None = "Bound",
    volume_name: str = "pv-data",
    requested: str = "10Gi",
    capacity: str | None = "5Gi",
    conditions: list[dict[str, Any]] | None = None,
    storage_class: str | None = "standard",
    resource_version: str = "1",
) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "accessModes": ["ReadWriteOnce"],
        "resources": {"requests": {"storage": requested}},
        "volumeName": volume_name,
    }
    if storage_class is not None:
        spec["storageClassName"] = storage_class
    status: dict[str, Any] = {"accessModes": ["ReadWriteOnce"]}
    if phase is not None:
        status["phase"] = phase
    if capacity is not None:
        status["capacity"] = {"storage": capacity}
    if conditions:
        status["conditions"] = conditions
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "namespace": namespace,
            "name": name,
            "uid": f"uid-{name}",
            "resourceVersion": resource_version,
        },
        "spec": spec,
        "status": status,
    }


def volume_manifest(
    *,
    name: str = "pv-data",
    capacity: str = "5Gi",
    host_path: str | None = "/mnt/data",
    resource_version: str = "1",
) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "accessModes": ["ReadWriteOnce"],
        "capacity": {"storage": capacity},
        "persistentVolumeReclaimPolicy": "Delete",
    }
    if host_path is not None:
        spec["hostPath"] = {"path": host_path, "type": "DirectoryOrCreate"}
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolume",
        "metadata": {"name": name, "uid": f"uid-{name}", "resourceVersion": resource_version},
        "spec": spec,
    }


def condition(type_: str, status: str = "True", **extra: Any) -> dict[str, Any]:
    return {"type": type_, "status": status, "lastTransitionTime": "2024-01-01T00:00:00Z", **extra}


def apply_merge_patch(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result


class FakeStore:
    """In-memory API server honouring resourceVersion preconditions on merge patches."""

    def __init__(self, *, claims: list[dict[str, Any]] = (), volumes: list[dict[str, Any]] = ()):
        self.claims = {object_key(c["metadata"]["namespace"], c["metadata"]["name"]): copy.deepcopy(c) for c in claims}
        self.volumes = {v["metadata"]["name"]: copy.deepcopy(v) for v in volumes}
        self.patches: list[tuple[str, str, dict[str, Any]]] = []
        self.errors: list[Exception] = []
        self.watchers: dict[str, Informer] = {}

    def _apply(self, kind: str, objects: dict[str, dict[str, Any]], key: str, body: dict[str, Any]) -> dict[str, Any]:
        self.patches.append((kind, key, body))
        if self.errors:
            raise self.errors.pop(0)
        if key not in objects:
            raise ResizerNotFoundError(f"{kind} {key} not found")

        current = objects[key]
        expected = (body.get("metadata") or {}).get("resourceVersion")
        if expected is not None and expected != current["metadata"]["resourceVersion"]:
            raise ResizerConflictError(f"{kind} {key} was modified")

        updated = apply_merge_patch(current, {k: v for k, v in body.items() if k != "metadata"})
        updated["metadata"]["resourceVersion"] = str(int(current["metadata"]["resourceVersion"]) + 1)
        objects[key] = updated
        if (informer := self.watchers.get(kind)) is not None:
            informer.handle_event({"type": "MODIFIED", "raw_object": copy.deepcopy(updated)})
        return copy.deepcopy(updated)

    async def patch_claim_status(self, namespace: str, name: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._apply("PersistentVolumeClaim", self.claims, object_key(namespace, name), body)

    async def patch_volume(self, name: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._apply("PersistentVolume", self.volumes, name, body)

    def claim_status(self, key: str = "default/data") -> dict[str, Any]:
        return self.claims[key]["status"]

    def volume_capacity(self, name: str = "pv-data") -> int | None:
        return quantity_to_bytes(self.volumes[name]["spec"]["capacity"]["storage"])


class FakeRecorder:
    def __init__(self):
        self.events: list[tuple[str, str, str, str]] = []

    async def event(self, claim, type_, reason, message) -> None:
        self.events.append((claim.key, type_, reason, message))

    def reasons(self, type_: str | None = None) -> list[str]:
        return [reason for _, t, reason, _ in self.events if type_ is None or t == type_]


class FakeResizer(Resizer):
    def __init__(self, *, fs_resize_required: bool = False, error: Exception | None = None, supported: bool = True):
        self.fs_resize_required = fs_resize_required
        self.error = error
        self.supported = supported
        self.calls: list[tuple[str, int]] = []

    @property
    def name(self) -> str:
        return "fake-resizer"

    def can_support(self, volume: Volume) -> bool:
        return self.supported

    async def resize(self, volume: Volume, requested: int) -> ResizeOutcome:
        self.calls.append((volume.name, requested))
        if self.error is not None:
            raise self.error
        return ResizeOutcome(new_size=requested, fs_resize_required=self.fs_resize_required)


def make_informer(name: str, items: list[dict[str, Any]]) -> Informer:
    informer = Informer(name=name, list_func=None, serialize=lambda obj: obj, resync_period=60)
    informer.replace(copy.deepcopy(items), "1")
    return informer


class Harness:
    def __init__(
        self,
        *,
        claims: list[dict[str, Any]],
        volumes: list[dict[str, Any]],
        resizer: FakeResizer | None = None,
        metrics: ResizeMetrics | None = None,
        watch: bool = False,
    ):
        self.store = FakeStore(claims=claims, volumes=volumes)
        self.recorder = FakeRecorder()
        self.resizer = resizer if resizer is not None else FakeResizer()
        self.claims = Informer(name="PersistentVolumeClaim", list_func=None, serialize=lambda obj: obj, resync_period=60)
        self.volumes = make_informer("PersistentVolume", volumes)
        self.queue = RateLimitingQueue("test-pvc")
        self.controller = ResizeController(
            identity="test",
            resizer=self.resizer,
            claims=self.claims,
            volumes=self.volumes,
            store=self.store,
            recorder=self.recorder,
            metrics=metrics,
            queue=self.queue,
        )
        # Populated after the controller registered its handlers, so every claim is enqueued.
        self.claims.replace(copy.deepcopy(claims), "1")
        if watch:
            self.store.watchers = {"PersistentVolumeClaim": self.claims, "PersistentVolume": self.volumes}


@pytest.fixture
def harness_factory():
    return Harness

from typing import Any, Literal, NamedTuple, Self

from pydantic import BaseModel, ConfigDict, Field

from ._util import bytes_to_quantity, object_key, quantity_to_bytes

ClaimPhase = Literal["Pending", "Bound", "Lost"]

CONDITION_RESIZING = "Resizing"
CONDITION_FILE_SYSTEM_RESIZE_PENDING = "FileSystemResizePending"

STORAGE_CLASS_ANNOTATION = "volume.beta.kubernetes.io/storage-class"


def _to_camel(string: str) -> str:
    parts = string.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True, frozen=True)


class ClaimCondition(CamelModel):
    # Unknown fields are carried along so rewriting the list never loses data.
    model_config = ConfigDict(extra="allow")

    type: str
    status: str = "True"
    last_probe_time: str | None = None
    last_transition_time: str | None = None
    reason: str | None = None
    message: str | None = None

    @property
    def is_true(self) -> bool:
        return self.status == "True"

    def to_manifest(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _storage(resources: dict[str, Any] | None) -> int:
    return quantity_to_bytes((resources or {}).get("storage")) or 0


class Claim(CamelModel):
    """Immutable snapshot of a PersistentVolumeClaim, reduced to what resizing needs."""

    namespace: str
    name: str
    uid: str = ""
    resource_version: str = ""
    phase: ClaimPhase | None = None
    volume_name: str = ""
    storage_class: str = ""
    requested: int = 0
    capacity: int = 0
    conditions: tuple[ClaimCondition, ...] = ()

    @property
    def key(self) -> str:
        return object_key(self.namespace, self.name)

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any]) -> Self:
        metadata = manifest.get("metadata") or {}
        spec = manifest.get("spec") or {}
        status = manifest.get("status") or {}
        annotations = metadata.get("annotations") or {}
        return cls(
            namespace=metadata.get("namespace", ""),
            name=metadata.get("name", ""),
            uid=metadata.get("uid") or "",
            resource_version=metadata.get("resourceVersion") or "",
            phase=status.get("phase"),
            volume_name=spec.get("volumeName") or "",
            storage_class=spec.get("storageClassName") or annotations.get(STORAGE_CLASS_ANNOTATION) or "",
            requested=_storage((spec.get("resources") or {}).get("requests")),
            capacity=_storage(status.get("capacity")),
            conditions=tuple(ClaimCondition.model_validate(c) for c in status.get("conditions") or ()),
        )

    def condition(self, type_: str) -> ClaimCondition | None:
        return next((c for c in self.conditions if c.type == type_), None)

    def has_true_condition(self, type_: str) -> bool:
        condition = self.condition(type_)
        return condition is not None and condition.is_true

    def with_status(
        self,
        *,
        capacity: int | None = None,
        conditions: tuple[ClaimCondition, ...] | list[ClaimCondition] | None = None,
    ) -> Self:
        update: dict[str, Any] = {}
        if capacity is not None:
            update["capacity"] = capacity
        if conditions is not None:
            update["conditions"] = tuple(conditions)
        return self.model_copy(update=update)

    def status_manifest(self) -> dict[str, Any]:
        """The subset of ``status`` this engine owns, in API form."""
        status: dict[str, Any] = {}
        if self.capacity:
            status["capacity"] = {"storage": bytes_to_quantity(self.capacity)}
        if self.conditions:
            status["conditions"] = [c.to_manifest() for c in self.conditions]
        return status


class Volume(CamelModel):
    """Immutable snapshot of a PersistentVolume."""

    name: str
    uid: str = ""
    resource_version: str = ""
    capacity: int = 0
    spec: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any]) -> Self:
        metadata = manifest.get("metadata") or {}
        spec = manifest.get("spec") or {}
        return cls(
            name=metadata.get("name", ""),
            uid=metadata.get("uid") or "",
            resource_version=metadata.get("resourceVersion") or "",
            capacity=_storage(spec.get("capacity")),
            spec=spec,
        )

    def with_capacity(self, capacity: int) -> Self:
        return self.model_copy(update={"capacity": capacity})

    def capacity_manifest(self) -> dict[str, Any]:
        return {"capacity": {"storage": bytes_to_quantity(self.capacity)}} if self.capacity else {}


class ResizeOutcome(NamedTuple):
    new_size: int
    fs_resize_required: bool

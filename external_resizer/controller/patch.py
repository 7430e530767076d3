"""Optimistic patch protocol.

State changes are never written as full objects. The old and the desired
snapshot are rendered to API documents, the difference between them becomes a
JSON merge patch (RFC 7386), and the patch carries the ``resourceVersion`` the
old snapshot was read at. The API server rejects the patch with a conflict if
anybody modified the object in between; the caller surfaces that as an
ordinary failure and the next attempt re-reads and re-diffs.
"""

import logging
from typing import Any, Protocol

from ..models import Claim, Volume

logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    async def patch_claim_status(self, namespace: str, name: str, body: dict[str, Any]) -> dict[str, Any]: ...

    async def patch_volume(self, name: str, body: dict[str, Any]) -> dict[str, Any]: ...


def create_merge_patch(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    """Return the merge patch turning `old` into `new`. Lists are replaced as a whole."""
    patch: dict[str, Any] = {}
    for key in old.keys() - new.keys():
        patch[key] = None
    for key, value in new.items():
        if key not in old:
            patch[key] = value
            continue
        previous = old[key]
        if isinstance(previous, dict) and isinstance(value, dict):
            if nested := create_merge_patch(previous, value):
                patch[key] = nested
        elif previous != value:
            patch[key] = value
    return patch


def _with_precondition(resource_version: str, patch: dict[str, Any]) -> dict[str, Any]:
    if resource_version:
        return {"metadata": {"resourceVersion": resource_version}, **patch}
    return patch


async def patch_claim_status(store: ObjectStore, old: Claim, new: Claim) -> Claim:
    """Persist the status difference between two snapshots of the same claim.

    Returns the claim as stored after the patch, or `old` when nothing changed.
    """
    diff = create_merge_patch(old.status_manifest(), new.status_manifest())
    if not diff:
        logger.debug("Status of PersistentVolumeClaim %s is unchanged, skipping patch", old.key)
        return old

    updated = await store.patch_claim_status(
        old.namespace,
        old.name,
        _with_precondition(old.resource_version, {"status": diff}),
    )
    return Claim.from_manifest(updated)


async def patch_volume_capacity(store: ObjectStore, volume: Volume, new_size: int) -> Volume:
    """Raise the declared capacity of `volume`. Capacity is never lowered."""
    desired = volume.with_capacity(max(volume.capacity, new_size))
    diff = create_merge_patch(volume.capacity_manifest(), desired.capacity_manifest())
    if not diff:
        logger.debug("Capacity of PersistentVolume %s is already up to date", volume.name)
        return volume

    updated = await store.patch_volume(volume.name, _with_precondition(volume.resource_version, {"spec": diff}))
    return Volume.from_manifest(updated)

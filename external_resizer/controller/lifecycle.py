"""Resize lifecycle of a single claim.

    Idle -> ResizeInProgress -> FileSystemResizePending | Finished

Any failure after the claim was marked as resizing leaves it in
ResizeInProgress. The next attempt re-enters from there: the decision engine
re-reads the volume size first, so a backend that already expanded the volume
is not asked to expand it again beyond the request.
"""

import logging
from typing import Final

from ..exceptions import ResizerBackendError
from ..kubernetes.events import EventRecorder
from ..models import CONDITION_FILE_SYSTEM_RESIZE_PENDING, CONDITION_RESIZING, Claim, ResizeOutcome, Volume
from ..resizers import Resizer
from .conditions import FILE_SYSTEM_RESIZE_PENDING_MESSAGE, merge_resize_conditions, new_condition
from .patch import ObjectStore, patch_claim_status, patch_volume_capacity

logger = logging.getLogger(__name__)

REASON_VOLUME_RESIZING: Final[str] = "Resizing"
REASON_VOLUME_RESIZE_FAILED: Final[str] = "VolumeResizeFailed"
REASON_VOLUME_RESIZE_SUCCESS: Final[str] = "VolumeResizeSuccessful"
REASON_FILE_SYSTEM_RESIZE_REQUIRED: Final[str] = "FileSystemResizeRequired"


class ResizeLifecycle:
    def __init__(self, *, resizer: Resizer, store: ObjectStore, recorder: EventRecorder):
        self._resizer = resizer
        self._store = store
        self._recorder = recorder

    async def run(self, claim: Claim, volume: Volume) -> Claim:
        """Drive `claim` from its current state to one of the terminal states. Returns the final snapshot."""
        claim = await self.mark_resize_in_progress(claim)
        await self._recorder.event(
            claim, "Normal", REASON_VOLUME_RESIZING, f"External resizer is resizing volume {volume.name}"
        )

        try:
            outcome = await self.resize_volume(claim, volume)
            if outcome.fs_resize_required:
                return await self.mark_file_system_resize_required(claim)
            return await self.mark_resize_finished(claim, outcome.new_size)
        except Exception as exc:
            await self._recorder.event(claim, "Warning", REASON_VOLUME_RESIZE_FAILED, str(exc))
            raise

    async def mark_resize_in_progress(self, claim: Claim) -> Claim:
        # An existing Resizing condition is kept as is, so re-entering this state writes nothing.
        progress = claim.condition(CONDITION_RESIZING)
        if progress is None or not progress.is_true:
            progress = new_condition(CONDITION_RESIZING)
        updated = claim.with_status(conditions=merge_resize_conditions(claim.conditions, [progress]))
        try:
            return await patch_claim_status(self._store, claim, updated)
        except Exception:
            logger.error("Mark PersistentVolumeClaim %s as resizing failed", claim.key)
            raise

    async def resize_volume(self, claim: Claim, volume: Volume) -> ResizeOutcome:
        """Expand the volume through the backend and record its new capacity."""
        try:
            outcome = await self._resizer.resize(volume, claim.requested)
        except Exception as exc:
            logger.error("Resize volume %s by resizer %s failed: %s", volume.name, self._resizer.name, exc)
            raise ResizerBackendError(f"resize volume {volume.name} failed: {exc}") from exc
        logger.debug("Resize volume succeeded for volume %s, updating its capacity", volume.name)

        try:
            await patch_volume_capacity(self._store, volume, outcome.new_size)
        except Exception:
            logger.error("Update capacity of volume %s to %s bytes failed", volume.name, outcome.new_size)
            raise
        logger.debug("Update capacity of volume %s to %s bytes succeeded", volume.name, outcome.new_size)
        return outcome

    async def mark_file_system_resize_required(self, claim: Claim) -> Claim:
        pending = new_condition(CONDITION_FILE_SYSTEM_RESIZE_PENDING, message=FILE_SYSTEM_RESIZE_PENDING_MESSAGE)
        updated = claim.with_status(conditions=merge_resize_conditions(claim.conditions, [pending]))
        try:
            claim = await patch_claim_status(self._store, claim, updated)
        except Exception:
            logger.error("Mark PersistentVolumeClaim %s as file system resize required failed", claim.key)
            raise

        logger.info("Marked PersistentVolumeClaim %s as file system resize required", claim.key)
        await self._recorder.event(
            claim, "Normal", REASON_FILE_SYSTEM_RESIZE_REQUIRED, "Require file system resize of volume on node"
        )
        return claim

    async def mark_resize_finished(self, claim: Claim, new_size: int) -> Claim:
        updated = claim.with_status(capacity=new_size, conditions=merge_resize_conditions(claim.conditions, []))
        try:
            claim = await patch_claim_status(self._store, claim, updated)
        except Exception:
            logger.error("Mark PersistentVolumeClaim %s as resize finished failed", claim.key)
            raise

        logger.info("Resize of PersistentVolumeClaim %s finished", claim.key)
        await self._recorder.event(claim, "Normal", REASON_VOLUME_RESIZE_SUCCESS, "Resize volume succeeded")
        return claim

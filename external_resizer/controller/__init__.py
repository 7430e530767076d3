"""Resize controller.

Claim and volume informers feed claim keys into a rate limited queue. A fixed
pool of workers drains the queue; each key is reconciled against the cached
claim and its bound volume:

1. ``claim_needs_resize`` filters claims that are unbound or already satisfied.
2. ``volume_needs_resize`` asks the backend whether it handles the volume and
   checks whether the volume was already expanded by an earlier attempt.
3. ``ResizeLifecycle`` marks the claim as resizing, expands the volume,
   records the new volume capacity and finally marks the claim as finished or
   as waiting for a file system resize on the node.

A successful reconciliation forgets the key's backoff; any failure puts the
key back with exponential backoff. Deleted claims and volumes are skipped
without error.
"""

import asyncio
import logging
from contextlib import nullcontext
from typing import Any

from ..exceptions import ResizerCacheSyncError, ResizerError, ResizerNotFoundError
from ..kubernetes.events import EventRecorder
from ..kubernetes.informer import Informer, manifest_key, wait_for_cache_sync
from ..models import Claim, Volume
from ..resizers import Resizer
from .decision import claim_needs_resize, volume_needs_resize
from .lifecycle import ResizeLifecycle
from .metrics import ResizeMetrics
from .patch import ObjectStore
from .queue import RateLimitingQueue

logger = logging.getLogger(__name__)


class ResizeController:
    def __init__(
        self,
        *,
        identity: str,
        resizer: Resizer,
        claims: Informer,
        volumes: Informer,
        store: ObjectStore,
        recorder: EventRecorder,
        metrics: ResizeMetrics | None = None,
        queue: RateLimitingQueue | None = None,
    ):
        self.identity = identity
        self.queue = queue if queue is not None else RateLimitingQueue(f"{identity}-pvc")
        self._resizer = resizer
        self._claims = claims
        self._volumes = volumes
        self._metrics = metrics
        self._lifecycle = ResizeLifecycle(resizer=resizer, store=store, recorder=recorder)

        # Resyncs arrive as updates, which re-enqueues claims whose request was raised again
        # while an earlier resize of the same claim was still being handled.
        claims.add_event_handler(on_add=self._add_claim, on_update=self._update_claim, on_delete=self._delete_claim)

    def _add_claim(self, obj: dict[str, Any]) -> None:
        if (key := manifest_key(obj)) is None:
            logger.error("Failed to get key from object %r", obj.get("metadata"))
            return
        self.queue.add(key)

    def _update_claim(self, _old: dict[str, Any], new: dict[str, Any]) -> None:
        self._add_claim(new)

    def _delete_claim(self, obj: dict[str, Any]) -> None:
        if (key := manifest_key(obj)) is None:
            logger.error("Failed to get key from object %r", obj.get("metadata"))
            return
        self.queue.forget(key)

    async def run(self, workers: int, stop_event: asyncio.Event) -> None:
        """Run the informers and `workers` workers until `stop_event` is set.

        Raises `ResizerCacheSyncError` without starting any worker when the caches do not sync
        before shutdown is requested.
        """
        logger.info("Starting external resizer %s", self.identity)
        informer_tasks = [
            asyncio.create_task(informer.run(stop_event), name=f"{informer.name} informer")
            for informer in (self._claims, self._volumes)
        ]
        worker_tasks: list[asyncio.Task[None]] = []
        try:
            if not await wait_for_cache_sync(stop_event, self._claims, self._volumes):
                raise ResizerCacheSyncError("Cannot sync PersistentVolume/PersistentVolumeClaim caches")

            worker_tasks = [
                asyncio.create_task(self._worker(worker_id), name=f"resize-worker-{worker_id}")
                for worker_id in range(workers)
            ]
            await stop_event.wait()
            self.queue.shut_down()
            # Workers finish the key they hold; nothing new is handed out.
            await asyncio.gather(*worker_tasks)
        finally:
            self.queue.shut_down()
            for task in (*worker_tasks, *informer_tasks):
                task.cancel()
            await asyncio.gather(*worker_tasks, *informer_tasks, return_exceptions=True)
            logger.info("Shutting down external resizer %s", self.identity)

    async def _worker(self, worker_id: int) -> None:
        logger.debug("resize-worker-%s started", worker_id)
        while await self.process_next_item():
            pass
        logger.debug("resize-worker-%s stopped", worker_id)

    async def process_next_item(self) -> bool:
        """Handle one key from the queue. Returns False once the queue is shut down."""
        key, quit_ = await self.queue.get()
        if quit_ or key is None:
            return False

        try:
            await self.sync_claim(key)
        except Exception as exc:
            delay = self.queue.add_rate_limited(key)
            logger.warning(
                "Failed to resize PersistentVolumeClaim %s (attempt %d), retrying in %.3fs: %s",
                key,
                self.queue.num_requeues(key),
                delay,
                exc,
                exc_info=not isinstance(exc, ResizerError),
            )
        else:
            self.queue.forget(key)
        finally:
            self.queue.done(key)
        return True

    async def sync_claim(self, key: str) -> None:
        logger.debug("Started PersistentVolumeClaim processing %s", key)

        if (claim_manifest := self._claims.get(key)) is None:
            logger.debug("PersistentVolumeClaim %s is deleted, no need to process it", key)
            return
        claim = Claim.from_manifest(claim_manifest)

        if not claim_needs_resize(claim):
            logger.debug("No need to resize PersistentVolumeClaim %s", key)
            return

        if (volume_manifest := self._volumes.get(claim.volume_name)) is None:
            logger.debug("PersistentVolume %s is deleted, no need to process it", claim.volume_name)
            return
        volume = Volume.from_manifest(volume_manifest)

        if not volume_needs_resize(claim, volume, self._resizer):
            logger.debug("No need to resize PersistentVolume %s", volume.name)
            return

        try:
            with self._metrics.observe(claim) if self._metrics is not None else nullcontext():
                await self._lifecycle.run(claim, volume)
        except ResizerNotFoundError as exc:
            logger.info("Object deleted while resizing PersistentVolumeClaim %s: %s", key, exc)

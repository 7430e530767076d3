"""Watch-fed object cache.

An `Informer` lists one resource kind, keeps the objects in memory keyed by
``namespace/name`` (or ``name`` for cluster scoped kinds), and follows a watch
from the listed resourceVersion. Registered handlers see every add, update
and delete. Every resync period the handlers additionally receive an update
for each cached object, so consumers get to re-examine objects that did not
change. Cached objects are the API documents as plain dicts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress
from typing import Any

from aiohttp import ClientError
from kubernetes_asyncio import watch
from kubernetes_asyncio.client.exceptions import ApiException

from .._util import object_key

logger = logging.getLogger(__name__)

INITIAL_BACKOFF_SECONDS = 1
MAX_BACKOFF_SECONDS = 30
WATCH_TIMEOUT_SECONDS = 60
SYNC_POLL_INTERVAL_SECONDS = 0.1

Manifest = dict[str, Any]
AddHandler = Callable[[Manifest], None]
UpdateHandler = Callable[[Manifest, Manifest], None]
DeleteHandler = Callable[[Manifest], None]


def manifest_key(manifest: Manifest) -> str | None:
    metadata = manifest.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        return None
    return object_key(metadata.get("namespace"), name)


class Informer:
    def __init__(
        self,
        *,
        name: str,
        list_func: Callable[..., Any],
        serialize: Callable[[Any], Manifest],
        resync_period: float,
        watch_timeout: float = WATCH_TIMEOUT_SECONDS,
    ):
        self.name = name
        self._list_func = list_func
        self._serialize = serialize
        self._resync_period = resync_period
        self._watch_timeout = watch_timeout

        self._cache: dict[str, Manifest] = {}
        self._resource_version: str | None = None
        self._has_synced = False
        self._add_handlers: list[AddHandler] = []
        self._update_handlers: list[UpdateHandler] = []
        self._delete_handlers: list[DeleteHandler] = []

    @property
    def has_synced(self) -> bool:
        """True once the initial list has been delivered to the handlers."""
        return self._has_synced

    def add_event_handler(
        self,
        *,
        on_add: AddHandler | None = None,
        on_update: UpdateHandler | None = None,
        on_delete: DeleteHandler | None = None,
    ) -> None:
        if on_add is not None:
            self._add_handlers.append(on_add)
        if on_update is not None:
            self._update_handlers.append(on_update)
        if on_delete is not None:
            self._delete_handlers.append(on_delete)

    def get(self, key: str) -> Manifest | None:
        return self._cache.get(key)

    def list(self) -> list[Manifest]:
        return list(self._cache.values())

    def _notify_add(self, obj: Manifest) -> None:
        for handler in self._add_handlers:
            handler(obj)

    def _notify_update(self, old: Manifest, new: Manifest) -> None:
        for handler in self._update_handlers:
            handler(old, new)

    def _notify_delete(self, obj: Manifest) -> None:
        for handler in self._delete_handlers:
            handler(obj)

    def replace(self, items: list[Manifest], resource_version: str | None) -> None:
        """Swap the cache for a fresh list, emitting the difference as events."""
        previous = self._cache
        current: dict[str, Manifest] = {}
        for item in items:
            if (key := manifest_key(item)) is not None:
                current[key] = item

        self._cache = current
        self._resource_version = resource_version
        for key, obj in current.items():
            if (old := previous.get(key)) is None:
                self._notify_add(obj)
            else:
                self._notify_update(old, obj)
        for key in previous.keys() - current.keys():
            self._notify_delete(previous[key])
        self._has_synced = True

    def handle_event(self, event: dict[str, Any]) -> None:
        """Apply one watch event to the cache."""
        event_type = event.get("type")
        obj = event.get("raw_object")
        if obj is None:
            obj = self._serialize(event.get("object"))

        if event_type == "ERROR":
            raise ApiException(status=obj.get("code"), reason=obj.get("message"))

        metadata = obj.get("metadata") or {}
        if resource_version := metadata.get("resourceVersion"):
            self._resource_version = resource_version
        if event_type == "BOOKMARK":
            return

        key = manifest_key(obj)
        if key is None:
            logger.error("%s informer received %s event for an object without name", self.name, event_type)
            return

        if event_type == "DELETED":
            self._cache.pop(key, None)
            self._notify_delete(obj)
            return

        old = self._cache.get(key)
        self._cache[key] = obj
        if old is None:
            self._notify_add(obj)
        else:
            self._notify_update(old, obj)

    def resync(self) -> None:
        for obj in self.list():
            self._notify_update(obj, obj)

    async def _list(self) -> None:
        response = await self._list_func()
        items = [self._serialize(item) for item in response.items or ()]
        resource_version = response.metadata.resource_version if response.metadata is not None else None
        self.replace(items, resource_version)
        logger.debug("%s informer listed %d objects at resourceVersion %s", self.name, len(items), resource_version)

    async def _watch(self, stop_event: asyncio.Event) -> None:
        kube_watch = watch.Watch()
        try:
            async for event in kube_watch.stream(
                self._list_func,
                resource_version=self._resource_version,
                timeout_seconds=int(self._watch_timeout),
                _request_timeout=self._watch_timeout + 5,
            ):
                if stop_event.is_set():
                    break
                self.handle_event(event)
        finally:
            kube_watch.stop()

    async def _resync_loop(self, stop_event: asyncio.Event) -> None:
        while not await _wait_for(stop_event, self._resync_period):
            if self._has_synced:
                logger.debug("%s informer resyncing %d objects", self.name, len(self._cache))
                self.resync()

    async def run(self, stop_event: asyncio.Event) -> None:
        """List and watch until `stop_event` is set, relisting whenever the watch expires."""
        resync = asyncio.create_task(self._resync_loop(stop_event), name=f"{self.name} informer resync")
        backoff_seconds = INITIAL_BACKOFF_SECONDS
        try:
            while not stop_event.is_set():
                try:
                    if self._resource_version is None:
                        await self._list()
                    await self._watch(stop_event)
                    backoff_seconds = INITIAL_BACKOFF_SECONDS
                except TimeoutError:
                    continue
                except (ApiException, ClientError) as exc:
                    if isinstance(exc, ApiException) and exc.status == 410:
                        logger.info("%s informer resource version expired; relisting", self.name)
                        self._resource_version = None
                        continue
                    logger.warning("%s informer list/watch failed: %s", self.name, exc)
                    await _wait_for(stop_event, backoff_seconds)
                    backoff_seconds = min(backoff_seconds * 2, MAX_BACKOFF_SECONDS)
                except Exception:  # pragma: no cover - defensive guard
                    logger.exception("%s informer unexpected failure; relisting", self.name)
                    self._resource_version = None
                    await _wait_for(stop_event, backoff_seconds)
                    backoff_seconds = min(backoff_seconds * 2, MAX_BACKOFF_SECONDS)
        finally:
            resync.cancel()
            with suppress(asyncio.CancelledError):
                await resync


async def _wait_for(event: asyncio.Event, timeout: float) -> bool:
    """Sleep for `timeout` seconds or until `event` is set; returns whether it was set."""
    with suppress(TimeoutError):
        await asyncio.wait_for(event.wait(), timeout=timeout)
    return event.is_set()


async def wait_for_cache_sync(stop_event: asyncio.Event, *informers: Informer) -> bool:
    """Block until every informer has synced. Returns False if `stop_event` is set first."""
    while not all(informer.has_synced for informer in informers):
        if await _wait_for(stop_event, SYNC_POLL_INTERVAL_SECONDS):
            return False
    return True

import asyncio
import logging
import signal
import sys
from contextlib import suppress
from functools import partial
from uuid import uuid4

from kubernetes_asyncio.client import CoreV1Api
from pydantic import ValidationError

from .controller import ResizeController
from .controller.metrics import ResizeMetrics, serve_metrics
from .exceptions import ResizerError
from .kubernetes import Informer, KubernetesEventRecorder, KubernetesStore, api_client
from .kubernetes.leaderelection import run_as_leader
from .resizers import Resizer
from .resizers.hostpath import HostPathResizer
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)


async def run(settings: Settings, resizer: Resizer) -> None:
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    identity = settings.identity or f"{resizer.name}-{uuid4()}"
    metrics_config = settings.metrics_config()
    leader_election_config = settings.leader_election_config(identity, resizer.name)

    async with api_client(settings.kubeconfig, timeout=settings.kube_api_timeout) as client:
        core_v1 = CoreV1Api(api_client=client)
        metrics = ResizeMetrics() if metrics_config is not None else None
        controller = ResizeController(
            identity=identity,
            resizer=resizer,
            claims=Informer(
                name="PersistentVolumeClaim",
                list_func=core_v1.list_persistent_volume_claim_for_all_namespaces,
                serialize=client.sanitize_for_serialization,
                resync_period=settings.resync_period,
                watch_timeout=settings.watch_timeout,
            ),
            volumes=Informer(
                name="PersistentVolume",
                list_func=core_v1.list_persistent_volume,
                serialize=client.sanitize_for_serialization,
                resync_period=settings.resync_period,
                watch_timeout=settings.watch_timeout,
            ),
            store=KubernetesStore(core_v1),
            recorder=KubernetesEventRecorder(core_v1, identity),
            metrics=metrics,
        )

        metrics_server = (
            asyncio.create_task(serve_metrics(metrics, metrics_config), name="metrics server")
            if metrics is not None and metrics_config is not None
            else None
        )
        try:
            reconcile = partial(controller.run, settings.workers, stop_event)
            if leader_election_config is None:
                await reconcile()
            else:
                await run_as_leader(client, leader_election_config, reconcile, stop_event)
        finally:
            if metrics_server is not None:
                metrics_server.cancel()
                with suppress(asyncio.CancelledError):
                    await metrics_server


def main() -> None:
    try:
        settings = get_settings()
    except ValidationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        sys.exit(2)

    try:
        asyncio.run(run(settings, HostPathResizer()))
    except ResizerError as exc:
        logger.critical("External resizer terminated: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

from ..models import Claim
from ..settings import MetricsConfig

logger = logging.getLogger(__name__)

SUBSYSTEM = "resize_controller"
NAMESPACE_LABEL = "namespace"
STORAGE_CLASS_LABEL = "storage_class"


class ResizeMetrics:
    """Resize counters and latency, registered on an explicitly owned registry."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        labels = (NAMESPACE_LABEL, STORAGE_CLASS_LABEL)
        self.resize_total = Counter(
            "pvc_resize_total",
            "Total number of persistent volume claims resized, broken down by namespace and storage class name.",
            labels,
            subsystem=SUBSYSTEM,
            registry=self.registry,
        )
        self.resize_failed = Counter(
            "pvc_resize_failed",
            "Total number of persistent volume claim resize failed attempts, "
            "broken down by namespace and storage class name.",
            labels,
            subsystem=SUBSYSTEM,
            registry=self.registry,
        )
        self.resize_duration = Histogram(
            "pvc_resize_duration_seconds",
            "Latency in seconds to resize persistent volume claims, broken down by namespace and storage class name.",
            labels,
            subsystem=SUBSYSTEM,
            registry=self.registry,
        )

    @contextmanager
    def observe(self, claim: Claim) -> Iterator[None]:
        """Count and time one resize attempt of `claim`; exceptions are counted as failures and re-raised."""
        labels = (claim.namespace, claim.storage_class)
        start = time.monotonic()
        try:
            yield
        except Exception:
            self.resize_failed.labels(*labels).inc()
            raise
        finally:
            self.resize_total.labels(*labels).inc()
            self.resize_duration.labels(*labels).observe(time.monotonic() - start)


def create_metrics_app(metrics: ResizeMetrics, path: str) -> FastAPI:
    app = FastAPI(openapi_url=None, docs_url=None, redoc_url=None)

    @app.get(path)
    def _metrics() -> Response:
        return Response(content=generate_latest(metrics.registry), media_type=CONTENT_TYPE_LATEST)

    return app


async def serve_metrics(metrics: ResizeMetrics, config: MetricsConfig) -> None:
    """Serve the metrics endpoint until cancelled."""
    server = uvicorn.Server(
        uvicorn.Config(
            create_metrics_app(metrics, config.path),
            host=config.host,
            port=config.port,
            log_config=None,
            access_log=False,
        )
    )
    logger.info("Serving metrics on %s:%s%s", config.host, config.port, config.path)
    await server.serve()

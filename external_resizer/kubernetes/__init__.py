"""Kubernetes side of the resizer: client setup, object caches, patch submission, events and leader election."""

from ._util import api_client
from .events import EventRecorder, KubernetesEventRecorder
from .informer import Informer, wait_for_cache_sync
from .store import KubernetesStore

__all__ = [
    "EventRecorder",
    "Informer",
    "KubernetesEventRecorder",
    "KubernetesStore",
    "api_client",
    "wait_for_cache_sync",
]

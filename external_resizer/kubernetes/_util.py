from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from aiohttp import ClientTimeout
from kubernetes_asyncio.client import ApiClient
from kubernetes_asyncio.config import load_incluster_config, load_kube_config
from kubernetes_asyncio.config.config_exception import ConfigException

from ..exceptions import ResizerConfigurationError

KUBE_API_SERVER_TIMEOUT = 10


class ApiClientWithTimeout(ApiClient):
    def __init__(self, *args, default_timeout=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.default_timeout = default_timeout

    async def call_api(self, *args, _request_timeout=None, **kwargs):
        if _request_timeout is None:
            _request_timeout = self.default_timeout
        if "_request_timeout" not in kwargs:
            kwargs["_request_timeout"] = _request_timeout
        return await super().call_api(*args, **kwargs)


async def _ensure_kubeconfig(kubeconfig: str | None) -> None:
    if kubeconfig:
        try:
            await load_kube_config(config_file=kubeconfig)
        except ConfigException as e:
            raise ResizerConfigurationError(f"Failed to load kubeconfig {kubeconfig!r}") from e
        return

    try:
        load_incluster_config()
    except ConfigException:
        try:
            await load_kube_config()
        except ConfigException as e:
            raise ResizerConfigurationError(
                "Kubernetes client not configured. Mount kubeconfig or run in-cluster."
            ) from e


@asynccontextmanager
async def api_client(
    kubeconfig: str | None = None,
    *,
    timeout: float = KUBE_API_SERVER_TIMEOUT,
) -> AsyncIterator[ApiClient]:
    await _ensure_kubeconfig(kubeconfig)
    async with ApiClientWithTimeout(default_timeout=timeout) as client:
        client.rest_client.pool_manager._timeout = ClientTimeout(sock_connect=timeout)
        yield client

import pytest

from external_resizer import __main__ as entrypoint
from external_resizer.exceptions import ResizerConfigurationError
from external_resizer.settings import get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_invalid_configuration_exits_with_usage_error(monkeypatch):
    monkeypatch.setenv("RESIZER_WORKERS", "0")

    with pytest.raises(SystemExit) as excinfo:
        entrypoint.main()

    assert excinfo.value.code == 2


def test_fatal_resizer_error_exits_with_failure(monkeypatch):
    monkeypatch.delenv("RESIZER_WORKERS", raising=False)

    async def _run(settings, resizer):
        assert resizer.name == "kubernetes-io-host-path"
        raise ResizerConfigurationError("Kubernetes client not configured")

    monkeypatch.setattr(entrypoint, "run", _run)

    with pytest.raises(SystemExit) as excinfo:
        entrypoint.main()

    assert excinfo.value.code == 1

import importlib

import pytest


@pytest.mark.parametrize(
    "module",
    [
        "external_resizer.controller",
        "external_resizer.kubernetes",
        "external_resizer.kubernetes.informer",
        "external_resizer.kubernetes.leaderelection",
        "external_resizer.__main__",
    ],
)
def test_module_imports(module):
    assert importlib.import_module(module) is not None

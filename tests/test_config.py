import pytest

from commatrix_mcp.config import DEFAULT_DEBUG_NAMESPACE, Settings
from commatrix_mcp.core.errors import InvalidConfiguration


def test_settings_defaults():
    s = Settings.from_env({"KUBECONFIG": "/tmp/kc"})
    assert s.kubeconfig == "/tmp/kc"
    assert s.debug_namespace == DEFAULT_DEBUG_NAMESPACE
    assert s.exec_retries == 3


def test_settings_overrides():
    s = Settings.from_env(
        {
            "KUBECONFIG": "/tmp/kc",
            "COMMATRIX_DEBUG_NAMESPACE": "dbg",
            "COMMATRIX_EXEC_RETRIES": "5",
            "COMMATRIX_POD_TIMEOUT": "30",
        }
    )
    assert (s.debug_namespace, s.exec_retries, s.pod_timeout) == ("dbg", 5, 30.0)


def test_kubeconfig_required():
    with pytest.raises(InvalidConfiguration):
        Settings.from_env({})


def test_bad_number():
    with pytest.raises(InvalidConfiguration):
        Settings.from_env({"KUBECONFIG": "/tmp/kc", "COMMATRIX_EXEC_RETRIES": "many"})

from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from commatrix_mcp.core.errors import InvalidConfiguration

DEFAULT_DEBUG_NAMESPACE = "openshift-commatrix-debug"
DEFAULT_DEBUG_IMAGE = "registry.redhat.io/rhel9/support-tools:latest"


@dataclass
class Settings:
    """
    Runtime settings read from the environment.

    kubeconfig
      Path from KUBECONFIG. Required.

    debug_namespace, debug_image
      Where and with what image debug pods are started on nodes.

    exec_retries, exec_interval
      Retry policy of a remote command inside a debug pod.

    pod_timeout
      Seconds to wait for a debug pod to become ready.
    """

    kubeconfig: str
    debug_namespace: str = DEFAULT_DEBUG_NAMESPACE
    debug_image: str = DEFAULT_DEBUG_IMAGE
    exec_retries: int = 3
    exec_interval: float = 5.0
    pod_timeout: float = 120.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if env is None else env

        kubeconfig = env.get("KUBECONFIG", "")
        if not kubeconfig:
            raise InvalidConfiguration("must set the KUBECONFIG environment variable")

        try:
            return cls(
                kubeconfig=kubeconfig,
                debug_namespace=env.get("COMMATRIX_DEBUG_NAMESPACE", DEFAULT_DEBUG_NAMESPACE),
                debug_image=env.get("COMMATRIX_DEBUG_IMAGE", DEFAULT_DEBUG_IMAGE),
                exec_retries=int(env.get("COMMATRIX_EXEC_RETRIES", 3)),
                exec_interval=float(env.get("COMMATRIX_EXEC_INTERVAL", 5.0)),
                pod_timeout=float(env.get("COMMATRIX_POD_TIMEOUT", 120.0)),
            )
        except ValueError as e:
            raise InvalidConfiguration(f"invalid numeric setting: {e}") from e

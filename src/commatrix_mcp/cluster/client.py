from __future__ import annotations
import logging

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from commatrix_mcp.core.errors import InvalidConfiguration

log = logging.getLogger(__name__)


class ClusterClient:
    """
    API handles for one cluster, built from a kubeconfig file.
    """

    def __init__(self, kubeconfig: str):
        try:
            api_client = config.new_client_from_config(config_file=kubeconfig)
        except (ConfigException, OSError) as e:
            raise InvalidConfiguration(f"failed creating the k8s client from {kubeconfig}: {e}") from e

        self.api_client = api_client
        self.core = client.CoreV1Api(api_client)
        self.discovery = client.DiscoveryV1Api(api_client)
        log.debug("kubernetes client ready for %s", kubeconfig)

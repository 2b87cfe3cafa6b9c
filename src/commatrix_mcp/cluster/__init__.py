"""
Kubernetes backed collaborators.

Core code only sees the protocols in commatrix_mcp.core.collaborators.
build_cluster_context wires the implementations from this package.
"""
from __future__ import annotations

import logging

from commatrix_mcp.config import Settings
from commatrix_mcp.core.collaborators import ClusterContext

from .client import ClusterClient
from .debug import DebugPodExecutor
from .endpointslices import EndpointSliceTranslator
from .nodes import KubeNodeLister

__all__ = ["build_cluster_context", "ClusterClient", "DebugPodExecutor", "EndpointSliceTranslator", "KubeNodeLister"]


def build_cluster_context(settings: Settings) -> ClusterContext:
    cs = ClusterClient(settings.kubeconfig)
    return ClusterContext(
        nodes=KubeNodeLister(cs.core),
        translator=EndpointSliceTranslator(cs.core, cs.discovery),
        executor=DebugPodExecutor(
            cs.core,
            namespace=settings.debug_namespace,
            image=settings.debug_image,
            retries=settings.exec_retries,
            interval=settings.exec_interval,
            pod_timeout=settings.pod_timeout,
        ),
        log=logging.getLogger("commatrix_mcp.cluster").info,
    )

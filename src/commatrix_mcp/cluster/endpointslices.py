"""
Translation of EndpointSlices into declared flows.

A slice is an ingress candidate when
  its service is NodePort or LoadBalancer, or
  one of its backing pods runs in the host network namespace.

Everything else is only reachable inside the pod network and has no place
in the node level matrix.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from kubernetes.client.exceptions import ApiException

from commatrix_mcp.core.collaborators import role_of
from commatrix_mcp.core.errors import SourceUnavailable
from commatrix_mcp.core.models import INGRESS, FlowRecord

from .nodes import to_node

log = logging.getLogger(__name__)

SERVICE_NAME_LABEL = "kubernetes.io/service-name"
OPTIONAL_LABEL = "optional"
INGRESS_SERVICE_TYPES = ("NodePort", "LoadBalancer")

Key = Tuple[str, str]


def _key(obj: Any) -> Key:
    return (obj.metadata.namespace or "", obj.metadata.name)


def _is_optional(service: Optional[Any]) -> bool:
    if service is None:
        return False
    labels = service.metadata.labels or {}
    return str(labels.get(OPTIONAL_LABEL, "")).lower() == "true"


def _slice_pods(ep_slice: Any, pods: Dict[Key, Any]) -> List[Any]:
    res = []
    for ep in ep_slice.endpoints or []:
        ref = ep.target_ref
        if ref is None or ref.kind != "Pod":
            continue
        pod = pods.get((ref.namespace or ep_slice.metadata.namespace, ref.name))
        if pod is not None:
            res.append(pod)
    return res


def _node_port(service: Optional[Any], port: Any) -> Optional[int]:
    if service is None or service.spec.type not in INGRESS_SERVICE_TYPES:
        return None
    for sp in service.spec.ports or []:
        if sp.name == port.name and sp.node_port:
            return int(sp.node_port)
    return None


def _container_for_port(pod: Any, port: int, protocol: str) -> str:
    for c in pod.spec.containers or []:
        for cp in c.ports or []:
            if int(cp.container_port) == port and (cp.protocol or "TCP") == protocol:
                return c.name
    return ""


def to_flow_records(slices: List[Any], services: List[Any], pods: List[Any], nodes: List[Any]) -> List[FlowRecord]:
    """
    Build FlowRecords from already listed API objects.

    One record per (slice port, backing pod). The port is the service node
    port for NodePort and LoadBalancer services, the endpoint port otherwise.
    """
    svc_by_key = {_key(s): s for s in services}
    pod_by_key = {_key(p): p for p in pods}
    role_by_node = {n.metadata.name: role_of(to_node(n)) for n in nodes}

    res: List[FlowRecord] = []
    for ep_slice in slices:
        ns = ep_slice.metadata.namespace or ""
        labels = ep_slice.metadata.labels or {}
        svc_name = labels.get(SERVICE_NAME_LABEL, "")
        service = svc_by_key.get((ns, svc_name))

        backing = _slice_pods(ep_slice, pod_by_key)
        exposed_service = service is not None and service.spec.type in INGRESS_SERVICE_TYPES
        host_network = any(bool(p.spec.host_network) for p in backing)
        if not exposed_service and not host_network:
            continue

        for pod in backing:
            role = role_by_node.get(pod.spec.node_name or "")
            if role is None:
                continue

            for port in ep_slice.ports or []:
                if port.port is None:
                    continue
                protocol = port.protocol or "TCP"
                node_port = _node_port(service, port)
                res.append(
                    FlowRecord(
                        direction=INGRESS,
                        protocol=protocol,
                        port=node_port if node_port is not None else int(port.port),
                        namespace=ns,
                        service=svc_name,
                        pod=pod.metadata.name,
                        container=_container_for_port(pod, int(port.port), protocol),
                        node_role=role,
                        optional=_is_optional(service),
                    )
                )
    return res


class EndpointSliceTranslator:
    def __init__(self, core_api: Any, discovery_api: Any):
        self.core = core_api
        self.discovery = discovery_api

    def translate(self) -> List[FlowRecord]:
        try:
            slices = self.discovery.list_endpoint_slice_for_all_namespaces().items
            services = self.core.list_service_for_all_namespaces().items
            pods = self.core.list_pod_for_all_namespaces().items
            nodes = self.core.list_node().items
        except ApiException as e:
            raise SourceUnavailable(f"failed listing cluster objects: {e.reason}") from e

        records = to_flow_records(slices, services, pods, nodes)
        log.info("%d endpointslices translated into %d flows", len(slices), len(records))
        return records

from __future__ import annotations
from typing import Any, List

from kubernetes.client.exceptions import ApiException

from commatrix_mcp.core.collaborators import Node
from commatrix_mcp.core.errors import SourceUnavailable


def to_node(obj: Any) -> Node:
    return Node(name=obj.metadata.name, labels=dict(obj.metadata.labels or {}))


class KubeNodeLister:
    def __init__(self, core_api: Any):
        self.core = core_api

    def list_nodes(self) -> List[Node]:
        try:
            items = self.core.list_node().items
        except ApiException as e:
            raise SourceUnavailable(f"failed listing nodes: {e.reason}") from e
        return [to_node(n) for n in items]

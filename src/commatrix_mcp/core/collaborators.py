from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, ContextManager, Dict, List, Protocol

from .models import FlowRecord, MASTER, WORKER

MASTER_LABELS = (
    "node-role.kubernetes.io/master",
    "node-role.kubernetes.io/control-plane",
)


@dataclass(frozen=True)
class Node:
    """
    Cluster node as the core sees it: a name plus its labels.
    """

    name: str
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def role(self) -> str:
        return role_of(self)


def role_of(node: Node) -> str:
    for label in MASTER_LABELS:
        if label in node.labels:
            return MASTER
    return WORKER


class NodeLister(Protocol):
    def list_nodes(self) -> List[Node]:
        ...


class EndpointTranslator(Protocol):
    """
    Turns workload network endpoints into flow candidates.
    """

    def translate(self) -> List[FlowRecord]:
        ...


class RemoteSession(Protocol):
    def exec(self, command: str) -> str:
        """
        Run a shell command on the node, return stdout.
        Raises RemoteExecutionError when the command fails.
        """
        ...


class RemoteExecutor(Protocol):
    """
    Required interface for running commands on a node.

    session(node) acquires whatever the executor needs on that node
    (a debug pod, an ssh connection) and releases it on every exit path.
    """

    def session(self, node: Node) -> ContextManager[RemoteSession]:
        ...


@dataclass
class ClusterContext:
    """
    Collaborators a matrix run needs, shared by the CLI and the MCP server.

    nodes
      NodeLister used for the observed matrix and firewall application.

    translator
      EndpointTranslator feeding the declared matrix.

    executor
      RemoteExecutor for ss capture and nft commands.

    log
      Simple logging function.
    """

    nodes: NodeLister
    translator: EndpointTranslator
    executor: RemoteExecutor
    log: Callable[[str], None] = print

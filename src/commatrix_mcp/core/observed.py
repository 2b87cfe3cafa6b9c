from __future__ import annotations
import asyncio
import logging
from typing import Dict, List, Tuple

from .collaborators import Node, RemoteExecutor
from .dedupe import deduplicate
from .models import ComMatrix, FlowRecord
from .ss import (
    SS_TCP_COMMAND,
    SS_UDP_COMMAND,
    filter_entries,
    parse_node_sockets,
    session_container_resolver,
    split_lines,
)
from .store import FlowStore
from .taskgroup import NodeTaskGroup

log = logging.getLogger(__name__)


class ObservedMatrixBuilder:
    """
    Builds the matrix of flows that are actually open on the nodes.

    One task per node:
      open a remote session
      run ss for TCP and UDP
      resolve pids to containers inside the same session
      parse into FlowRecord objects
      append them to the shared FlowStore

    raw_tcp and raw_udp keep the filtered ss lines per node so the caller
    can write them out next to the matrix.
    """

    def __init__(self, executor: RemoteExecutor, resolve_containers: bool = True):
        self.executor = executor
        self.resolve_containers = resolve_containers
        self.raw_tcp: Dict[str, List[str]] = {}
        self.raw_udp: Dict[str, List[str]] = {}

    def _inspect_node(self, node: Node) -> Tuple[List[FlowRecord], List[str], List[str]]:
        with self.executor.session(node) as session:
            tcp_lines = filter_entries(split_lines(session.exec(SS_TCP_COMMAND)))
            udp_lines = filter_entries(split_lines(session.exec(SS_UDP_COMMAND)))

            resolver = session_container_resolver(session) if self.resolve_containers else None
            records = parse_node_sockets(node, tcp_lines, udp_lines, resolver)

        return records, tcp_lines, udp_lines

    async def _run_node(self, node: Node, store: FlowStore) -> None:
        records, tcp_lines, udp_lines = await asyncio.to_thread(self._inspect_node, node)
        self.raw_tcp[node.name] = tcp_lines
        self.raw_udp[node.name] = udp_lines
        log.info("node %s: %d listening sockets", node.name, len(records))
        store.add_many(records)

    async def build(self, nodes: List[Node]) -> ComMatrix:
        store = FlowStore()
        group = NodeTaskGroup()
        for node in nodes:
            group.go(self._run_node(node, store), name=node.name)
        await group.wait()

        cleaned = deduplicate(store.snapshot())
        log.info("observed matrix has %d entries from %d nodes", len(cleaned), len(nodes))
        return ComMatrix(cleaned)

    def raw_text(self, protocol_lines: Dict[str, List[str]]) -> str:
        """
        Render raw ss lines per node, nodes in name order.
        """
        parts = []
        for name in sorted(protocol_lines):
            parts.append(f"node: {name}\n" + "\n".join(protocol_lines[name]))
        return "\n".join(parts) + ("\n" if parts else "")

from __future__ import annotations
import asyncio
import logging
from typing import List, Tuple

from .collaborators import Node, RemoteExecutor, role_of
from .errors import CommatrixError, NoPortsForRole, RemoteExecutionError
from .models import TCP, UDP, ComMatrix
from .taskgroup import NodeTaskGroup

log = logging.getLogger(__name__)

CHAIN = "FIREWALL"

_NFT_TEMPLATE = """#!/usr/sbin/nft -f

table inet openshift_filter {{
    chain OPENSHIFT {{
        type filter hook input priority 1; policy accept;

        # Allow loopback traffic
        iif lo accept

        # Allow established and related traffic
        ct state established,related accept

        # Allow ICMP on ipv4
        ip protocol icmp accept
        # Allow ICMP on ipv6
        ip6 nexthdr ipv6-icmp accept

        # Allow specific TCP and UDP ports
        tcp dport {{ {tcp} }} accept
        udp dport {{ {udp} }} accept

        # Logging and default drop
        log prefix "firewall " drop
    }}
}}
"""


def collect_ports(matrix: ComMatrix, role: str) -> Tuple[List[int], List[int]]:
    """
    Distinct TCP and UDP ports for a node role, first seen order.
    """
    tcp: List[int] = []
    udp: List[int] = []
    for cd in matrix.for_role(role):
        if cd.protocol == TCP and cd.port not in tcp:
            tcp.append(cd.port)
        elif cd.protocol == UDP and cd.port not in udp:
            udp.append(cd.port)
    return tcp, udp


def _port_sets(matrix: ComMatrix, role: str) -> Tuple[str, str]:
    tcp, udp = collect_ports(matrix, role)
    if not tcp or not udp:
        raise NoPortsForRole(
            f"role {role!r} has {len(tcp)} TCP and {len(udp)} UDP ports, both sets must be non empty"
        )
    return ", ".join(str(p) for p in tcp), ", ".join(str(p) for p in udp)


def to_nftables(matrix: ComMatrix, role: str) -> str:
    tcp, udp = _port_sets(matrix, role)
    return _NFT_TEMPLATE.format(tcp=tcp, udp=udp)


def firewall_commands(matrix: ComMatrix, role: str) -> List[str]:
    """
    nft commands that build the FIREWALL chain and hook it into INPUT.
    Order matters, the drop rule must come last.
    """
    tcp, udp = _port_sets(matrix, role)
    nft = "sudo nft"
    return [
        f"{nft} add chain ip filter {CHAIN}",
        f"{nft} add rule ip filter {CHAIN} iif lo accept",
        f"{nft} add rule ip filter {CHAIN} ct state established,related accept",
        f"{nft} add rule ip filter {CHAIN} tcp dport {{ 22 }} accept",
        f"{nft} add rule ip filter {CHAIN} udp dport {{ 67, 68 }} accept",
        f"{nft} add rule ip filter {CHAIN} ip protocol icmp accept",
        f"{nft} add rule ip filter {CHAIN} tcp dport {{ {tcp} }} accept",
        f"{nft} add rule ip filter {CHAIN} udp dport {{ {udp} }} accept",
        f"{nft} add rule ip filter {CHAIN} log prefix firewall drop",
        f"{nft} add rule ip filter INPUT jump {CHAIN}",
    ]


def _apply_node(executor: RemoteExecutor, node: Node, commands: List[str]) -> None:
    with executor.session(node) as session:
        for cmd in commands:
            try:
                session.exec(cmd)
            except CommatrixError:
                raise
            except Exception as e:
                raise RemoteExecutionError(f"node {node.name}: {cmd!r} failed: {e}") from e
    log.info("firewall rules applied on node %s", node.name)


async def apply_firewall_rules(executor: RemoteExecutor, nodes: List[Node], matrix: ComMatrix, role: str) -> List[str]:
    """
    Push the FIREWALL chain to every node with the given role, one task per node.

    Nodes that already succeeded are not rolled back when another one fails.
    Returns the names of the targeted nodes.
    """
    commands = firewall_commands(matrix, role)

    targets = [n for n in nodes if role_of(n) == role]
    group = NodeTaskGroup()
    for node in targets:
        group.go(asyncio.to_thread(_apply_node, executor, node, commands), name=node.name)
    await group.wait()

    return [n.name for n in targets]

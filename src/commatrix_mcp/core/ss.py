"""
Parsing of `ss` socket tables into FlowRecord objects.

Input is the headerless output of

  ss -anpltH   (TCP listeners)
  ss -anpluH   (UDP sockets)

One line per socket, for example:

  LISTEN 0 4096 0.0.0.0:111 0.0.0.0:* users:(("rpcbind",pid=1,fd=5),("systemd",pid=1,fd=82))

Field 3 is the local address, the port follows its last colon. Sockets whose
local address is a loopback address are dropped.
"""
from __future__ import annotations

import ipaddress
import json
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .collaborators import Node, RemoteSession, role_of
from .errors import RemoteExecutionError, SocketParseError
from .models import INGRESS, TCP, UDP, FlowRecord

log = logging.getLogger(__name__)

SS_TCP_COMMAND = "ss -anpltH"
SS_UDP_COMMAND = "ss -anpluH"

LOCAL_ADDR_FIELD = 3

_SERVICE_RE = re.compile(r'users:\(\("(?P<service>[^"]+)"')
_PID_RE = re.compile(r"pid=(?P<pid>\d+)")
_CONTAINER_ID_RE = re.compile(r"crio-(?P<id>[0-9a-f]+)\.scope")


@dataclass(frozen=True)
class ContainerInfo:
    namespace: str = ""
    pod: str = ""
    container: str = ""


ContainerResolver = Callable[[int], Optional[ContainerInfo]]


def split_lines(raw: str) -> List[str]:
    return [line for line in raw.splitlines() if line.strip()]


def split_address(local: str) -> Tuple[str, str]:
    """
    Split an ss local address into host and port.

      0.0.0.0:111           -> ("0.0.0.0", "111")
      [::1]:323             -> ("::1", "323")
      127.0.0.53%lo:53      -> ("127.0.0.53", "53")
      *:10250               -> ("*", "10250")
    """
    idx = local.rfind(":")
    if idx < 0:
        raise ValueError(f"no port in local address {local!r}")
    host = local[:idx]
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    host = host.split("%", 1)[0]
    return host, local[idx + 1 :]


def is_loopback_address(host: str) -> bool:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    mapped = getattr(ip, "ipv4_mapped", None)
    if mapped is not None:
        return mapped.is_loopback
    return ip.is_loopback


def is_loopback_line(line: str) -> bool:
    fields = line.split()
    if len(fields) <= LOCAL_ADDR_FIELD:
        return False
    try:
        host, _ = split_address(fields[LOCAL_ADDR_FIELD])
    except ValueError:
        return False
    return is_loopback_address(host)


def filter_entries(lines: List[str]) -> List[str]:
    """
    Drop sockets bound to loopback, they are not reachable from outside.
    Lines that do not parse are kept so the parser reports them.
    """
    return [line for line in lines if not is_loopback_line(line)]


def extract_service_name(line: str) -> str:
    m = _SERVICE_RE.search(line)
    return m.group("service") if m else ""


def extract_pid(line: str) -> Optional[int]:
    m = _PID_RE.search(line)
    return int(m.group("pid")) if m else None


def extract_port(line: str) -> int:
    fields = line.split()
    if len(fields) <= LOCAL_ADDR_FIELD:
        raise ValueError(f"unexpected ss line, too few fields: {line!r}")

    _, port = split_address(fields[LOCAL_ADDR_FIELD])
    return int(port)


def parse_line(line: str, protocol: str, node_role: str, resolver: Optional[ContainerResolver] = None) -> FlowRecord:
    info = None
    if resolver is not None:
        pid = extract_pid(line)
        if pid is not None:
            info = resolver(pid)
    if info is None:
        info = ContainerInfo()

    return FlowRecord(
        direction=INGRESS,
        protocol=protocol,
        port=extract_port(line),
        namespace=info.namespace,
        service=extract_service_name(line),
        pod=info.pod,
        container=info.container,
        node_role=node_role,
        optional=False,
    )


def parse_ss_output(lines: List[str], protocol: str, node_role: str, resolver: Optional[ContainerResolver] = None) -> List[FlowRecord]:
    return [parse_line(line, protocol, node_role, resolver) for line in lines]


def parse_node_sockets(
    node: Node,
    tcp_lines: List[str],
    udp_lines: List[str],
    resolver: Optional[ContainerResolver] = None,
) -> List[FlowRecord]:
    """
    FlowRecords for one node. UDP records come first, then TCP.
    Lines are expected to be filtered already.

    Raises SocketParseError when a line cannot be parsed.
    """
    role = role_of(node)
    res: List[FlowRecord] = []
    try:
        res.extend(parse_ss_output(udp_lines, UDP, role, resolver))
        res.extend(parse_ss_output(tcp_lines, TCP, role, resolver))
    except ValueError as e:
        raise SocketParseError(f"failed parsing ss output of {node.name}: {e}") from e
    return res


def session_container_resolver(session: RemoteSession) -> ContainerResolver:
    """
    Resolve a pid to its CRI-O container through the node's cgroup file and
    crictl. Host processes have no crio scope and resolve to None, so does a
    pid whose lookup fails (the process may have exited since ss ran).
    """
    cache = {}

    def resolve(pid: int) -> Optional[ContainerInfo]:
        if pid in cache:
            return cache[pid]

        cache[pid] = None
        try:
            cgroup = session.exec(f"cat /proc/{pid}/cgroup")
            m = _CONTAINER_ID_RE.search(cgroup)
            if m:
                cache[pid] = parse_crictl_ps(session.exec(f"crictl ps -o json --id {m.group('id')}"))
        except RemoteExecutionError as e:
            log.debug("could not resolve container of pid %d: %s", pid, e)
        return cache[pid]

    return resolve


def parse_crictl_ps(raw: str) -> Optional[ContainerInfo]:
    """
    Pick pod namespace, pod name and container name out of `crictl ps -o json`.
    """
    try:
        doc = json.loads(raw)
    except json.JSONDecodeError:
        return None

    if not isinstance(doc, dict):
        return None
    containers = doc.get("containers") or []
    if not isinstance(containers, list) or not containers or not isinstance(containers[0], dict):
        return None

    labels = containers[0].get("labels") or {}
    if not isinstance(labels, dict):
        return None
    return ContainerInfo(
        namespace=labels.get("io.kubernetes.pod.namespace", ""),
        pod=labels.get("io.kubernetes.pod.name", ""),
        container=labels.get("io.kubernetes.container.name", ""),
    )

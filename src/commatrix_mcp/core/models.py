from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Tuple

INGRESS = "Ingress"
EGRESS = "Egress"

TCP = "TCP"
UDP = "UDP"

MASTER = "master"
WORKER = "worker"

# Serialized key per attribute, in output column order.
FIELD_KEYS: Tuple[Tuple[str, str], ...] = (
    ("direction", "direction"),
    ("protocol", "protocol"),
    ("port", "port"),
    ("namespace", "namespace"),
    ("service", "service"),
    ("pod", "pod"),
    ("container", "container"),
    ("node_role", "nodeRole"),
    ("optional", "optional"),
)

CSV_HEADERS: Tuple[str, ...] = (
    "Direction",
    "Protocol",
    "Port",
    "Namespace",
    "Service",
    "Pod",
    "Container",
    "Node Role",
    "Optional",
)


@dataclass(frozen=True)
class FlowRecord:
    """
    One expected or observed inbound flow of the communication matrix.

    Fields:
      direction
        Ingress or Egress. Matrices built here only hold Ingress.

      protocol
        TCP or UDP.

      port
        Destination port on the node.

      namespace, service, pod, container
        Owner of the flow. Static catalogue entries leave pod and container
        empty, platform level flows leave namespace empty.

      node_role
        master or worker, selects which nodes the flow applies to.

      optional
        Flow is not needed for baseline cluster operation.
        Metadata only, it takes no part in equality or hashing.
    """

    direction: str
    protocol: str
    port: int
    namespace: str = ""
    service: str = ""
    pod: str = ""
    container: str = ""
    node_role: str = ""
    optional: bool = field(default=False, compare=False)

    def key(self) -> Tuple[str, str, int, str, str, str, str, str]:
        """
        Identity tuple used for dedup and containment.
        """
        return (
            self.direction,
            self.protocol,
            self.port,
            self.namespace,
            self.service,
            self.pod,
            self.container,
            self.node_role,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for attr, key in FIELD_KEYS}

    def to_row(self) -> Tuple[str, ...]:
        return (
            self.direction,
            self.protocol,
            str(self.port),
            self.namespace,
            self.service,
            self.pod,
            self.container,
            self.node_role,
            "true" if self.optional else "false",
        )

    def __str__(self) -> str:
        return ",".join(self.to_row())


def equals(a: FlowRecord, b: FlowRecord) -> bool:
    return a.key() == b.key()


class ComMatrix:
    """
    Ordered, read only collection of FlowRecord objects.

    Order is merge precedence from the pipeline that built it.
    Pipelines hand in deduplicated records, the matrix does not re-check.
    """

    def __init__(self, records: Iterable[FlowRecord] = ()):
        self._records: Tuple[FlowRecord, ...] = tuple(records)
        self._keys = frozenset(r.key() for r in self._records)

    @property
    def records(self) -> Tuple[FlowRecord, ...]:
        return self._records

    def contains(self, record: FlowRecord) -> bool:
        return record.key() in self._keys

    def for_role(self, role: str) -> Tuple[FlowRecord, ...]:
        return tuple(r for r in self._records if r.node_role == role)

    def __iter__(self) -> Iterator[FlowRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, record: object) -> bool:
        return isinstance(record, FlowRecord) and self.contains(record)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ComMatrix):
            return NotImplemented
        return self._records == other._records

    def __repr__(self) -> str:
        return f"ComMatrix({len(self._records)} records)"

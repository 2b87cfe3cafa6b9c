from __future__ import annotations
from typing import Iterable, List, Set, Tuple

from .models import FlowRecord


class FlowDeduper:
    """
    Remembers flow identities that were already seen.

    Example:
      The same node-exporter port is listed by two static tables and by the
      EndpointSlice of the node-exporter service. Only the first one is kept.
      The optional flag is not part of the identity, so a later copy that only
      differs in optional is dropped as well.
    """

    def __init__(self) -> None:
        self.seen: Set[Tuple] = set()

    def should_keep(self, record: FlowRecord) -> bool:
        """
        True means first time this identity shows up.
        False means a duplicate, drop it.
        """
        key = record.key()
        if key in self.seen:
            return False

        self.seen.add(key)
        return True


def deduplicate(records: Iterable[FlowRecord]) -> List[FlowRecord]:
    deduper = FlowDeduper()
    return [r for r in records if deduper.should_keep(r)]

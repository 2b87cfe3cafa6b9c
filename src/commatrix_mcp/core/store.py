from __future__ import annotations
import threading
from typing import List
from .models import FlowRecord


class FlowStore:
    """
    Shared accumulator for FlowRecord objects produced by per node tasks.

    Why a lock:
      Node tasks append from worker threads. A single lock keeps appends
      from interleaving.

    Important:
      The lock is held only for the append itself, never while a task talks
      to a node. Tasks parse first, then call add_many once.
    """

    def __init__(self) -> None:
        self._flows: List[FlowRecord] = []
        self._lock = threading.Lock()

    def add_many(self, flows: List[FlowRecord]) -> None:
        """
        Node tasks call this with parsed FlowRecord objects.
        """
        with self._lock:
            self._flows.extend(flows)

    def snapshot(self) -> List[FlowRecord]:
        """
        Copy of everything appended so far, in append order.
        """
        with self._lock:
            return list(self._flows)

    def __len__(self) -> int:
        with self._lock:
            return len(self._flows)

from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, List, Optional

log = logging.getLogger(__name__)


class NodeTaskGroup:
    """
    Fan-out / fan-in barrier for one task per cluster node.

    go() schedules a task, wait() blocks until every task finished and then
    re-raises the first error that was recorded. Later errors are logged and
    discarded. A failing task does not cancel the others, tasks in flight
    always run to completion.

    Must be used from inside a running event loop.
    """

    def __init__(self) -> None:
        self._tasks: List[asyncio.Task] = []
        self._error: Optional[BaseException] = None

    def go(self, aw: Awaitable[None], name: str = "") -> None:
        self._tasks.append(asyncio.ensure_future(self._guard(aw, name)))

    async def _guard(self, aw: Awaitable[None], name: str) -> None:
        try:
            await aw
        except Exception as exc:
            if self._error is None:
                self._error = exc
            else:
                log.debug("discarding later error from %s: %s", name or "task", exc)

    async def wait(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks)
        if self._error is not None:
            raise self._error

"""Alert outbox — bridges synchronous alert feeds to the async dispatcher."""

from __future__ import annotations

import asyncio

import structlog

from biomirror.models import SafetyAlert
from biomirror.notifications.handlers import DispatchResult, NotificationDispatcher

logger = structlog.get_logger(__name__)


class AlertOutbox:
    """Deliver alerts published from synchronous code without dropping any.

    :meth:`submit` can be subscribed straight to the safety monitor's alert
    feed.  Inside a running loop each alert becomes a tracked delivery task;
    outside one it is queued.  :meth:`flush` delivers the queue and awaits
    every outstanding task.
    """

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher
        self._queued: list[SafetyAlert] = []
        self._pending: set[asyncio.Task] = set()
        self._results: list[DispatchResult] = []

    def submit(self, alert: SafetyAlert) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._queued.append(alert)
            return
        task = loop.create_task(self._deliver(alert))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, alert: SafetyAlert) -> DispatchResult:
        result = await self._dispatcher.dispatch(alert)
        self._results.append(result)
        return result

    async def flush(self) -> list[DispatchResult]:
        """Deliver queued alerts, wait for in-flight deliveries and drain results.

        The returned results cover everything delivered since the previous
        flush, so one outbox can be reused across sessions.
        """
        queued, self._queued = self._queued, []
        for alert in queued:
            await self._deliver(alert)
        if self._pending:
            await asyncio.gather(*list(self._pending))
        results, self._results = self._results, []
        logger.debug("outbox.flushed", delivered=len(results))
        return results

    @property
    def pending_count(self) -> int:
        return len(self._queued) + len(self._pending)

    @property
    def results(self) -> list[DispatchResult]:
        return list(self._results)

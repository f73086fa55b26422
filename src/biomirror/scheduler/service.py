"""Timer service — named periodic and one-shot asyncio timers.

Architecture
~~~~~~~~~~~~
Every timer of a session (fusion tick, response delivery, session expiry,
phase boundaries) is an asyncio task owned by one ``TimerService`` and
addressed by name:

1. ``every(name, interval, cb)`` runs *cb* every *interval* seconds.
2. ``once(name, delay, cb)`` runs *cb* once after *delay* seconds.
3. Registering a name that is already scheduled cancels the old timer.
4. ``cancel_all()`` cancels synchronously, so no callback can fire after it
   returns.  The task calling it (e.g. an expiry timer that ends the
   session) is released but not cancelled.

Callbacks may be plain functions or coroutines.  A callback that raises is
logged; a periodic timer keeps running.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

TimerCallback = Callable[[], Any]


class TimerService:
    """Own and cancel the asyncio tasks behind named timers.

    Integration::

        timers = TimerService()
        timers.every("fusion", 0.2, engine_tick)
        timers.once("session.expiry", 1200, end_session)
        ...
        timers.cancel_all()
        await timers.close()
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancelled: list[asyncio.Task] = []
        self._stats = {"scheduled": 0, "fired": 0, "errors": 0, "cancelled": 0}

    # ── Scheduling ────────────────────────────────────────────

    def every(self, name: str, interval: float, callback: TimerCallback) -> None:
        """Run *callback* every *interval* seconds until cancelled."""
        if interval <= 0:
            raise ValueError(f"Timer interval must be positive, got {interval}")
        self._schedule(name, self._run_periodic(name, interval, callback))
        logger.debug("timer.scheduled", timer=name, interval=interval)

    def once(self, name: str, delay: float, callback: TimerCallback) -> None:
        """Run *callback* once after *delay* seconds (0 means next loop turn)."""
        self._schedule(name, self._run_once(name, max(0.0, delay), callback))
        logger.debug("timer.scheduled", timer=name, delay=delay)

    def _schedule(self, name: str, coro: Awaitable[None]) -> None:
        self.cancel(name)
        task = asyncio.get_running_loop().create_task(coro, name=f"timer:{name}")
        self._tasks[name] = task
        self._stats["scheduled"] += 1

    # ── Cancellation ──────────────────────────────────────────

    def cancel(self, name: str) -> bool:
        """Cancel the timer called *name*.  Return ``True`` if one existed."""
        task = self._tasks.pop(name, None)
        if task is None:
            return False
        self._release(task)
        return True

    def cancel_all(self) -> int:
        """Cancel every timer; return how many were registered."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            self._release(task)
        if tasks:
            logger.debug("timer.cancelled_all", count=len(tasks))
        return len(tasks)

    def _release(self, task: asyncio.Task) -> None:
        if task is _current_task() or task.done():
            return
        task.cancel()
        self._cancelled.append(task)
        self._stats["cancelled"] += 1

    async def close(self) -> None:
        """Cancel everything and wait until the cancelled tasks have exited."""
        self.cancel_all()
        pending = [t for t in self._cancelled if t is not _current_task()]
        self._cancelled.clear()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Introspection ─────────────────────────────────────────

    def is_scheduled(self, name: str) -> bool:
        return name in self._tasks

    @property
    def names(self) -> list[str]:
        return sorted(self._tasks)

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

    def __len__(self) -> int:
        return len(self._tasks)

    # ── Runners ───────────────────────────────────────────────

    async def _run_periodic(
        self, name: str, interval: float, callback: TimerCallback
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            await self._invoke(name, callback)

    async def _run_once(self, name: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        task = _current_task()
        if self._tasks.get(name) is task:
            del self._tasks[name]
        await self._invoke(name, callback)

    async def _invoke(self, name: str, callback: TimerCallback) -> None:
        self._stats["fired"] += 1
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            self._stats["errors"] += 1
            logger.exception("timer.callback_error", timer=name)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None

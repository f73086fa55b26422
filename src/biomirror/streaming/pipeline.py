"""In-process publish/subscribe primitives connecting sources → fusion → consumers.

Two building blocks:

* :class:`LatestValue` — a single-slot cell.  Producers overwrite it; the
  fusion tick reads whatever is there.  No queueing, no backpressure.
* :class:`Feed` — synchronous fan-out to registered subscribers.  Items are
  delivered in-line, in publish order, to every subscriber before
  :meth:`Feed.publish` returns.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class LatestValue(Generic[T]):
    """Single-writer / single-reader "latest sample" cell.

    ``version`` increases on every write so readers can tell whether the
    value changed since they last looked.
    """

    def __init__(self) -> None:
        self._value: T | None = None
        self._version = 0

    def set(self, value: T) -> None:
        self._value = value
        self._version += 1

    def get(self) -> T | None:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    def clear(self) -> None:
        self._value = None


class Subscription:
    """Handle returned by :meth:`Feed.subscribe`; cancelling is idempotent."""

    def __init__(self, feed: Feed, fn: Callable) -> None:
        self._feed = feed
        self._fn = fn
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._feed._remove(self._fn)
            self._active = False


class Feed(Generic[T]):
    """Synchronous observer list with per-subscriber error isolation.

    A subscriber that raises is logged and skipped; remaining subscribers
    still receive the item.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []
        self._published_total = 0

    # ── Configuration ─────────────────────────────────────────

    def subscribe(self, fn: Callable[[T], None]) -> Subscription:
        """Register a callback that receives every published item."""
        self._subscribers.append(fn)
        return Subscription(self, fn)

    def _remove(self, fn: Callable[[T], None]) -> None:
        try:
            self._subscribers.remove(fn)
        except ValueError:
            pass

    def clear(self) -> None:
        """Drop every subscriber."""
        self._subscribers.clear()

    # ── Producer side ─────────────────────────────────────────

    def publish(self, item: T) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(item)
            except Exception as exc:
                logger.error(
                    "feed.subscriber_error",
                    feed=self.name,
                    subscriber=getattr(subscriber, "__qualname__", repr(subscriber)),
                    error=str(exc),
                )
        self._published_total += 1

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @property
    def published_total(self) -> int:
        return self._published_total

"""Bounded in-memory history of fused states with windowed summaries."""

from __future__ import annotations

from collections import Counter, deque
from datetime import datetime, timedelta

from biomirror.models import EmotionType, IntegratedState

DEFAULT_HISTORY_SIZE = 1000


class StateHistory:
    """Ring buffer of the most recent :class:`IntegratedState` objects.

    Window queries take ``over`` in seconds and an explicit ``now``; only
    states strictly newer than ``now - over`` are considered.
    """

    def __init__(self, maxlen: int = DEFAULT_HISTORY_SIZE) -> None:
        self._states: deque[IntegratedState] = deque(maxlen=maxlen)

    def append(self, state: IntegratedState) -> None:
        self._states.append(state)

    def clear(self) -> None:
        self._states.clear()

    def __len__(self) -> int:
        return len(self._states)

    @property
    def latest(self) -> IntegratedState | None:
        return self._states[-1] if self._states else None

    def recent(self, limit: int | None = None) -> list[IntegratedState]:
        """Return the newest *limit* states in chronological order."""
        states = list(self._states)
        if limit is None:
            return states
        return states[-limit:] if limit > 0 else []

    def window(self, over: float, now: datetime) -> list[IntegratedState]:
        cutoff = now - timedelta(seconds=over)
        return [s for s in self._states if s.timestamp > cutoff]

    # ── Summaries ─────────────────────────────────────────────

    def dominant_emotion(
        self, over: float, now: datetime
    ) -> tuple[EmotionType, float] | None:
        """Most frequent dominant emotion in the window and its prevalence."""
        states = self.window(over, now)
        if not states:
            return None
        emotion, count = Counter(s.dominant_emotion for s in states).most_common(1)[0]
        return emotion, count / len(states)

    def average_coherence(self, over: float, now: datetime) -> float | None:
        states = self.window(over, now)
        if not states:
            return None
        return sum(s.coherence_index for s in states) / len(states)

    def volatility(self, over: float, now: datetime) -> float | None:
        """Share of consecutive states whose dominant emotion changed.

        Needs at least three states in the window.
        """
        states = self.window(over, now)
        if len(states) <= 2:
            return None
        changes = sum(
            1
            for prev, cur in zip(states, states[1:])
            if prev.dominant_emotion is not cur.dominant_emotion
        )
        return changes / (len(states) - 1)

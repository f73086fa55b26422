"""Record sinks — where fused states, episodes and alerts are handed off.

Durable persistence belongs to an external collaborator; the core only
needs a synchronous hand-off point it can call from the fusion tick.
:class:`InMemoryRecordSink` keeps everything in lists and serves the
simulator and the tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from biomirror.models import DissociationEpisode, IntegratedState, SafetyAlert


class RecordSink(ABC):
    """Contract for session record storage."""

    @abstractmethod
    def save_state(self, session_id: str, state: IntegratedState) -> None: ...

    @abstractmethod
    def save_episode(self, session_id: str, episode: DissociationEpisode) -> None: ...

    @abstractmethod
    def save_alert(self, alert: SafetyAlert) -> None: ...


class InMemoryRecordSink(RecordSink):
    """List-backed sink, keyed by session id."""

    def __init__(self) -> None:
        self._states: dict[str, list[IntegratedState]] = {}
        self._episodes: dict[str, list[DissociationEpisode]] = {}
        self._alerts: list[SafetyAlert] = []

    # ── Write ─────────────────────────────────────────────────

    def save_state(self, session_id: str, state: IntegratedState) -> None:
        self._states.setdefault(session_id, []).append(state)

    def save_episode(self, session_id: str, episode: DissociationEpisode) -> None:
        self._episodes.setdefault(session_id, []).append(episode)

    def save_alert(self, alert: SafetyAlert) -> None:
        self._alerts.append(alert)

    # ── Read ──────────────────────────────────────────────────

    def count_states(self, session_id: str) -> int:
        return len(self._states.get(session_id, []))

    def get_states(
        self,
        session_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[IntegratedState]:
        """States for *session_id*, optionally limited to ``[start, end]``."""
        states = self._states.get(session_id, [])
        return [
            s for s in states
            if (start is None or s.timestamp >= start)
            and (end is None or s.timestamp <= end)
        ]

    def get_episodes(self, session_id: str) -> list[DissociationEpisode]:
        return list(self._episodes.get(session_id, []))

    def get_alerts(self, session_id: str | None = None, limit: int = 50) -> list[SafetyAlert]:
        alerts = [a for a in self._alerts if session_id is None or a.session_id == session_id]
        return alerts[-limit:]

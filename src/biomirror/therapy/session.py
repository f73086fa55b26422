"""Therapeutic session aggregate and metric computation."""

from __future__ import annotations

import uuid
from datetime import datetime

import structlog

from biomirror.errors import PhaseTransitionError, SessionStateError
from biomirror.models import DissociationEpisode, EmotionType, IntegratedState
from biomirror.therapy.models import SessionMetrics, SessionPhase, TherapeuticResponse

logger = structlog.get_logger(__name__)

# An emotion counts as "expressed" once it dominates a state above this intensity.
EXPRESSED_INTENSITY = 0.3
HIGH_AROUSAL = 0.7
RECOVERED_AROUSAL = 0.4


class TherapeuticSession:
    """Mutable record of one session, owned by the session coordinator."""

    def __init__(
        self,
        *,
        start_time: datetime,
        phase: SessionPhase = SessionPhase.CONNECTION,
        planned_duration: float = 1200.0,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or str(uuid.uuid4())
        self.start_time = start_time
        self.end_time: datetime | None = None
        self.planned_duration = planned_duration
        self._phase = phase
        self.phase_history: list[tuple[SessionPhase, datetime]] = [(phase, start_time)]

        self.states: list[IntegratedState] = []
        self.episodes: list[DissociationEpisode] = []
        self.interventions: list[TherapeuticResponse] = []
        self._metrics: SessionMetrics | None = None

    # ── Mutation ──────────────────────────────────────────────

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    def advance_to_phase(self, phase: SessionPhase, now: datetime) -> bool:
        """Move forward to *phase*.  Return ``False`` if already there."""
        self._require_open()
        if phase.index < self._phase.index:
            raise PhaseTransitionError(self._phase.value, phase.value)
        if phase is self._phase:
            return False
        self._phase = phase
        self.phase_history.append((phase, now))
        return True

    def add_state(self, state: IntegratedState) -> None:
        self._require_open()
        self.states.append(state)

    def record_episode(self, episode: DissociationEpisode) -> None:
        self.episodes.append(episode)

    def add_intervention(self, response: TherapeuticResponse) -> None:
        self.interventions.append(response)

    def end(self, now: datetime) -> SessionMetrics:
        """Close the session and freeze its metrics."""
        self._require_open()
        self.end_time = now
        self._metrics = compute_metrics(self, now)
        logger.info(
            "session.finalized",
            session_id=self.id,
            duration=self._metrics.session_duration,
            states=self._metrics.state_count,
        )
        return self._metrics

    def _require_open(self) -> None:
        if self.end_time is not None:
            raise SessionStateError(f"Session {self.id} has already ended")

    # ── Queries ───────────────────────────────────────────────

    @property
    def is_finished(self) -> bool:
        return self.end_time is not None

    def duration(self, now: datetime) -> float:
        return ((self.end_time or now) - self.start_time).total_seconds()

    def metrics(self, now: datetime | None = None) -> SessionMetrics:
        """Final metrics once ended, otherwise a live snapshot up to *now*."""
        if self._metrics is not None:
            return self._metrics
        if now is None:
            now = self.states[-1].timestamp if self.states else self.start_time
        return compute_metrics(self, now)


# ── Metrics ───────────────────────────────────────────────────


def compute_metrics(session: TherapeuticSession, end: datetime) -> SessionMetrics:
    states = session.states
    duration = max(0.0, (end - session.start_time).total_seconds())

    metrics = SessionMetrics(
        session_duration=duration,
        state_count=len(states),
        dissociation_episode_count=len(session.episodes),
        total_dissociation_time=sum(e.duration for e in session.episodes),
        interventions_delivered=len(session.interventions),
    )
    if duration > 0:
        metrics.percentage_time_in_dissociation = min(
            1.0, metrics.total_dissociation_time / duration
        )
    if not states:
        return metrics

    metrics.average_coherence_index = sum(s.coherence_index for s in states) / len(states)
    metrics.average_masking_index = sum(s.emotional_masking_index for s in states) / len(states)
    metrics.average_dissociation_index = sum(s.dissociation_index for s in states) / len(states)
    metrics.emotions_expressed = {
        s.dominant_emotion for s in states if s.emotional_intensity > EXPRESSED_INTENSITY
    }
    metrics.emotional_range_index = len(metrics.emotions_expressed) / len(EmotionType)

    peak = max(states, key=lambda s: s.arousal_level)
    metrics.peak_arousal = peak.arousal_level
    metrics.time_of_peak_arousal = peak.timestamp
    metrics.regulation_recovery_time = _recovery_after_peak(states, peak)

    metrics.regulation_capacity = _regulation_capacity(states)
    metrics.regulation_improvement = _regulation_improvement(states)
    return metrics


def _regulated_ratio(states: list[IntegratedState]) -> float:
    if not states:
        return 0.0
    regulated = sum(1 for s in states if s.is_regulated)
    return regulated / len(states)


def _recovery_after_peak(states: list[IntegratedState], peak: IntegratedState) -> float:
    """Seconds from peak arousal until arousal first falls 0.2 below it."""
    for state in states:
        if state.timestamp <= peak.timestamp:
            continue
        if state.arousal_level < peak.arousal_level - 0.2:
            return (state.timestamp - peak.timestamp).total_seconds()
    return 0.0


def _regulation_capacity(states: list[IntegratedState]) -> float:
    """Mean of the regulated-state ratio and a recovery-speed score.

    Recovery speed is ``1 / (1 + minutes)`` averaged over every run of high
    arousal, measured until arousal drops below :data:`RECOVERED_AROUSAL`
    (or until the last state when it never does).
    """
    recoveries: list[float] = []
    run_start: IntegratedState | None = None
    for state in states:
        if run_start is None:
            if state.arousal_level > HIGH_AROUSAL:
                run_start = state
        elif state.arousal_level < RECOVERED_AROUSAL:
            recoveries.append((state.timestamp - run_start.timestamp).total_seconds())
            run_start = None
    if run_start is not None:
        recoveries.append((states[-1].timestamp - run_start.timestamp).total_seconds())

    if recoveries:
        average_minutes = sum(recoveries) / len(recoveries) / 60.0
        recovery_speed = 1.0 / (1.0 + average_minutes)
    else:
        recovery_speed = 1.0
    return (_regulated_ratio(states) + recovery_speed) / 2.0


def _regulation_improvement(states: list[IntegratedState]) -> float:
    """Regulated ratio in the final third minus that of the first third."""
    if len(states) < 3:
        return 0.0
    third = len(states) // 3
    return _regulated_ratio(states[-third:]) - _regulated_ratio(states[:third])

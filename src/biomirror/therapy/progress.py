"""Cross-session progress — running averages, milestones and phase advice.

Every finalized :class:`~biomirror.therapy.session.TherapeuticSession` folds
its metrics into one :class:`~biomirror.therapy.models.ProgressMetrics`.
:meth:`ProgressTracker.recommended_phase` turns those averages into the
phase the next session should start in:

============================================  ===============
Condition (checked in order)                  Phase
============================================  ===============
fewer than 3 sessions registered              connection
average coherence < 0.4                       awareness
average masking > 0.6 or dissociation > 0.5   integration
average regulation capacity < 0.5             regulation
coherence > 0.6, capacity > 0.6, > 10 done    transfer
otherwise                                     last phase used
============================================  ===============
"""

from __future__ import annotations

from datetime import datetime

import structlog

from biomirror.errors import SessionStateError
from biomirror.streaming.pipeline import Feed
from biomirror.therapy.models import (
    Milestone,
    ProgressMetrics,
    ProgressReport,
    ProgressUpdate,
    SessionPhase,
)
from biomirror.therapy.session import TherapeuticSession

logger = structlog.get_logger(__name__)

MIN_SESSIONS_BEFORE_ADVICE = 3
TRANSFER_MIN_SESSIONS = 10

LOW_COHERENCE = 0.4
HIGH_MASKING = 0.6
HIGH_DISSOCIATION = 0.5
LOW_REGULATION = 0.5
TRANSFER_COHERENCE = 0.6
TRANSFER_REGULATION = 0.6

NARROW_RANGE = 0.3
REGULATION_PRACTICE = 0.4
DISSOCIATION_BASELINE = 0.4

MILESTONE_COHERENCE = 0.7
MILESTONE_REGULATION = 0.7
SIGNIFICANT_CHANGE = 0.1


def _running_average(current: float, new: float, count: int) -> float:
    return (current * (count - 1) + new) / count


class ProgressTracker:
    """Accumulate session results across sessions for one person.

    Integration::

        tracker = ProgressTracker()
        coordinator = create_coordinator(settings, progress=tracker)
        await coordinator.start_session()  # starts in tracker.recommended_phase()
    """

    def __init__(self) -> None:
        self._sessions: dict[str, TherapeuticSession] = {}
        self._finalized: list[TherapeuticSession] = []
        self._metrics = ProgressMetrics()
        self.updates: Feed[ProgressUpdate] = Feed("progress.updates")

    # ── Registration ──────────────────────────────────────────

    def register_session(self, session: TherapeuticSession) -> None:
        self._sessions[session.id] = session

    def finalize_session(self, session: TherapeuticSession) -> ProgressUpdate:
        """Fold a finished session into the running averages."""
        if not session.is_finished:
            raise SessionStateError(f"Session {session.id} has not ended")
        if any(s.id == session.id for s in self._finalized):
            raise SessionStateError(f"Session {session.id} is already finalized")
        self.register_session(session)

        previous = self._metrics.model_copy(deep=True)
        previous_phase = self._finalized[-1].phase if self._finalized else None
        new_milestones = self._fold(session)
        self._finalized.append(session)

        metrics = session.metrics()
        coherence_change = metrics.average_coherence_index - previous.average_coherence
        regulation_change = metrics.regulation_capacity - previous.average_regulation_capacity

        improvements: list[str] = []
        if previous.total_sessions and coherence_change > SIGNIFICANT_CHANGE:
            improvements.append("Emotional awareness")
        if previous.total_sessions and regulation_change > SIGNIFICANT_CHANGE:
            improvements.append("Emotional regulation")
        if not session.episodes and previous.average_dissociation > DISSOCIATION_BASELINE:
            improvements.append("Reduced dissociation")

        update = ProgressUpdate(
            session_id=session.id,
            session_date=session.start_time,
            phase=session.phase,
            phase_changed=previous_phase is not None and previous_phase is not session.phase,
            coherence=metrics.average_coherence_index,
            coherence_change=coherence_change,
            regulation_capacity=metrics.regulation_capacity,
            regulation_change=regulation_change,
            emotional_range=metrics.emotional_range_index,
            improvements=tuple(improvements),
            new_milestones=tuple(new_milestones),
            recommended_phase=self.recommended_phase(),
        )
        logger.info(
            "progress.session_finalized",
            session_id=session.id,
            total_sessions=self._metrics.total_sessions,
            recommended_phase=update.recommended_phase.value,
            milestones=[m.value for m in new_milestones],
        )
        self.updates.publish(update)
        return update

    def _fold(self, session: TherapeuticSession) -> list[Milestone]:
        m = self._metrics
        session_metrics = session.metrics()
        m.total_sessions += 1
        n = m.total_sessions

        m.total_therapy_time += session_metrics.session_duration
        m.average_coherence = _running_average(
            m.average_coherence, session_metrics.average_coherence_index, n
        )
        m.average_masking = _running_average(
            m.average_masking, session_metrics.average_masking_index, n
        )
        m.average_dissociation = _running_average(
            m.average_dissociation, session_metrics.average_dissociation_index, n
        )
        m.average_regulation_capacity = _running_average(
            m.average_regulation_capacity, session_metrics.regulation_capacity, n
        )
        m.total_dissociation_episodes += len(session.episodes)
        m.emotional_range = max(m.emotional_range, session_metrics.emotional_range_index)

        reached: list[Milestone] = []
        if not session.episodes and m.total_dissociation_episodes > 0:
            reached.append(Milestone.NO_DISSOCIATION)
        if session_metrics.average_coherence_index > MILESTONE_COHERENCE:
            reached.append(Milestone.HIGH_COHERENCE)
        if session_metrics.regulation_capacity > MILESTONE_REGULATION:
            reached.append(Milestone.HIGH_REGULATION)

        new = [milestone for milestone in reached if milestone not in m.milestones]
        m.milestones.update(new)
        return new

    # ── Queries ───────────────────────────────────────────────

    @property
    def metrics(self) -> ProgressMetrics:
        return self._metrics.model_copy(deep=True)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def last_session_date(self) -> datetime | None:
        if not self._sessions:
            return None
        return max(s.start_time for s in self._sessions.values())

    def _last_phase(self) -> SessionPhase | None:
        if not self._sessions:
            return None
        return max(self._sessions.values(), key=lambda s: s.start_time).phase

    def recommended_phase(self) -> SessionPhase:
        m = self._metrics
        if self.session_count < MIN_SESSIONS_BEFORE_ADVICE:
            return SessionPhase.CONNECTION
        if m.average_coherence < LOW_COHERENCE:
            return SessionPhase.AWARENESS
        if m.average_masking > HIGH_MASKING or m.average_dissociation > HIGH_DISSOCIATION:
            return SessionPhase.INTEGRATION
        if m.average_regulation_capacity < LOW_REGULATION:
            return SessionPhase.REGULATION
        if (
            m.average_coherence > TRANSFER_COHERENCE
            and m.average_regulation_capacity > TRANSFER_REGULATION
            and m.total_sessions > TRANSFER_MIN_SESSIONS
        ):
            return SessionPhase.TRANSFER
        return self._last_phase() or SessionPhase.CONNECTION

    def recommendations(self) -> list[str]:
        m = self._metrics
        advice: list[str] = []
        if m.average_coherence < LOW_COHERENCE:
            advice.append("Continue work on emotional awareness and recognition")
        if m.average_masking > HIGH_MASKING:
            advice.append("Focus on connecting facial expressions with bodily feelings")
        if m.average_dissociation > HIGH_DISSOCIATION:
            advice.append("Prioritize grounding exercises and present-moment awareness")
        if m.emotional_range < NARROW_RANGE:
            advice.append("Explore a wider range of emotions in a safe context")
        if m.average_regulation_capacity < REGULATION_PRACTICE:
            advice.append("Practice regulation skills with gradually increasing intensity")
        return advice

    def report(self) -> ProgressReport:
        return ProgressReport(
            metrics=self.metrics,
            session_count=self.session_count,
            last_session_date=self.last_session_date(),
            recommended_phase=self.recommended_phase(),
            recommendations=tuple(self.recommendations()),
        )

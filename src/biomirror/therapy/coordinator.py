"""Session coordinator — owns one therapeutic session end to end.

Session states
~~~~~~~~~~~~~~
``preparing → active ⇄ paused → completed``, or ``preparing → error`` when a
sample source fails to start.  Every transition is published on
:attr:`SessionCoordinator.session_states`.

Per fused state
~~~~~~~~~~~~~~~
The coordinator subscribes to the fusion engine for the lifetime of a
session and runs the downstream chain in-line, in this order:

1. state history and the session record;
2. :class:`~biomirror.monitors.dissociation.DissociationTracker`;
3. :class:`~biomirror.monitors.safety.SafetyMonitor`;
4. :class:`~biomirror.therapy.scheduler.ResponseScheduler`;
5. the record sink, whose failures are logged as ``sink.save_failed``.

Timers
~~~~~~
``fusion`` and ``responses`` are periodic; ``session.expiry`` and one
``phase.<name>`` timer per later phase are one-shot, computed from active
(unpaused) time.  Pausing or ending cancels all of them before returning.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from functools import partial
from typing import Callable

import structlog

from biomirror.errors import SessionStateError, SourceUnavailableError
from biomirror.fusion.engine import StateFusionEngine
from biomirror.fusion.history import StateHistory
from biomirror.logger import bind_session_context, clear_session_context
from biomirror.models import (
    DissociationEpisode,
    FacialSample,
    IntegratedState,
    PhysiologicalSample,
    SafetyAlert,
)
from biomirror.monitors.dissociation import DissociationTracker
from biomirror.monitors.safety import SafetyMonitor
from biomirror.notifications.outbox import AlertOutbox
from biomirror.scheduler.service import TimerService
from biomirror.sources.base import SampleSource
from biomirror.storage.sink import RecordSink
from biomirror.streaming.pipeline import Feed, Subscription
from biomirror.therapy.models import (
    ResponsePreferences,
    SessionMetrics,
    SessionPhase,
    TherapeuticResponse,
    phase_boundaries,
)
from biomirror.therapy.progress import ProgressTracker
from biomirror.therapy.scheduler import TICK_SECONDS, ResponseScheduler
from biomirror.therapy.session import TherapeuticSession

logger = structlog.get_logger(__name__)

DEFAULT_SESSION_SECONDS = 1200.0


class SessionState(str, Enum):
    PREPARING = "preparing"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SessionProgress:
    """Snapshot of where the current session stands."""

    session_id: str
    state: SessionState
    phase: SessionPhase
    elapsed: float  # active seconds
    planned_duration: float
    termination_requested: bool

    @property
    def remaining(self) -> float:
        return max(0.0, self.planned_duration - self.elapsed)

    @property
    def fraction(self) -> float:
        if self.planned_duration <= 0:
            return 1.0
        return min(1.0, self.elapsed / self.planned_duration)


class SessionCoordinator:
    """Drive the fusion → monitoring → response chain for one session at a time.

    Integration::

        coordinator = create_coordinator(settings, facial_source=cam, physiological_source=watch)
        coordinator.scheduler.responses.subscribe(character.perform)
        await coordinator.start_session(SessionPhase.CONNECTION, duration=1200)
        ...
        metrics = await coordinator.end_session()
    """

    def __init__(
        self,
        *,
        engine: StateFusionEngine,
        tracker: DissociationTracker,
        safety: SafetyMonitor,
        scheduler: ResponseScheduler,
        history: StateHistory | None = None,
        timers: TimerService | None = None,
        facial_source: SampleSource | None = None,
        physiological_source: SampleSource | None = None,
        sink: RecordSink | None = None,
        outbox: AlertOutbox | None = None,
        progress: ProgressTracker | None = None,
        response_interval: float = TICK_SECONDS,
        default_duration: float = DEFAULT_SESSION_SECONDS,
        auto_end_on_termination: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.engine = engine
        self.tracker = tracker
        self.safety = safety
        self.scheduler = scheduler
        self.history = history or StateHistory()
        self.timers = timers or TimerService()
        self.facial_source = facial_source
        self.physiological_source = physiological_source
        self.sink = sink
        self.outbox = outbox
        self._progress = progress
        self.response_interval = response_interval
        self.default_duration = default_duration
        self.auto_end_on_termination = auto_end_on_termination
        self._clock = clock or (lambda: datetime.now(UTC))

        self.session: TherapeuticSession | None = None
        self.termination_requested = False
        self._state = SessionState.PREPARING
        self._ending = False
        self._subscriptions: list[Subscription] = []
        self._boundaries: list[tuple[SessionPhase, float]] = []
        self._active_seconds = 0.0
        self._resumed_at: datetime | None = None

        self.session_states: Feed[SessionState] = Feed("session.states")
        self.phases: Feed[SessionPhase] = Feed("session.phases")

    # ── State ─────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        logger.info(
            "session.state_changed",
            state=state.value,
            session_id=self.session.id if self.session else None,
        )
        self.session_states.publish(state)

    def _sources(self) -> list[SampleSource]:
        return [s for s in (self.facial_source, self.physiological_source) if s is not None]

    # ── Control surface ───────────────────────────────────────

    async def start_session(
        self,
        phase: SessionPhase | None = None,
        duration: float | None = None,
    ) -> TherapeuticSession:
        """Start sources, monitors and timers for a new session.

        Without an explicit *phase* the session starts in the progress
        tracker's recommended phase, or ``connection`` when there is none.

        Raises
        ------
        SessionStateError
            If a session is already active or paused.
        SourceUnavailableError
            If a sample source cannot start.  Sources already started are
            stopped again and the coordinator is left in ``error``.
        """
        if self._state in (SessionState.ACTIVE, SessionState.PAUSED):
            raise SessionStateError(f"Cannot start a session while {self._state.value}")

        duration = duration if duration is not None else self.default_duration
        if phase is None:
            phase = (
                self._progress.recommended_phase()
                if self._progress is not None
                else SessionPhase.CONNECTION
            )
        self.session = None
        self._set_state(SessionState.PREPARING)
        await self._start_sources()

        now = self._clock()
        session = TherapeuticSession(start_time=now, phase=phase, planned_duration=duration)
        self.session = session
        self.termination_requested = False
        self._ending = False
        bind_session_context(session.id)
        if self._progress is not None:
            self._progress.register_session(session)

        self.engine.reset()
        self.history.clear()
        self.tracker.reset()
        self.safety.start_monitoring(now, session_id=session.id)
        self.scheduler.start(phase)
        self._subscriptions = [
            self.engine.states.subscribe(self._on_state),
            self.tracker.episodes.subscribe(self._on_episode),
            self.safety.alerts.subscribe(self._on_alert),
            self.scheduler.responses.subscribe(session.add_intervention),
        ]

        self._boundaries = phase_boundaries(duration, phase)
        self._active_seconds = 0.0
        self._resumed_at = now
        self._set_state(SessionState.ACTIVE)
        self._schedule_timers()
        logger.info(
            "session.started",
            session_id=session.id,
            phase=phase.value,
            duration=duration,
        )
        return session

    async def _start_sources(self) -> None:
        started: list[SampleSource] = []
        pairs = [
            (self.facial_source, self.submit_facial_sample),
            (self.physiological_source, self.submit_physiological_sample),
        ]
        try:
            for source, sink in pairs:
                if source is None:
                    continue
                await source.start(sink)
                started.append(source)
        except SourceUnavailableError as exc:
            for source in reversed(started):
                await source.stop()
            logger.error(
                "session.start_failed",
                source=exc.source,
                reason=exc.reason,
                rolled_back=[s.name for s in started],
            )
            self._set_state(SessionState.ERROR)
            raise

    async def end_session(self) -> SessionMetrics:
        """Stop everything, finalise metrics and mark the session completed.

        The coordinator always reaches ``completed``, even when stopping a
        source or delivering pending alerts fails; such failures are logged
        and an alert-delivery error is re-raised afterwards.
        """
        session = self._require_session(SessionState.ACTIVE, SessionState.PAUSED)
        if self._ending:
            raise SessionStateError(f"Session {session.id} is already ending")
        self._ending = True

        now = self._clock()
        self.timers.cancel_all()
        for source in self._sources():
            source.pause()
        self._accumulate_active_time(now)

        self.tracker.flush(now)
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions = []
        self.safety.stop_monitoring()
        self.scheduler.stop()
        metrics = session.end(now)

        try:
            await self._stop_sources()
            if self.outbox is not None:
                await self.outbox.flush()
        finally:
            await self.timers.close()
            if self._progress is not None:
                self._progress.finalize_session(session)
            self._ending = False
            self._set_state(SessionState.COMPLETED)
            logger.info(
                "session.ended",
                session_id=session.id,
                duration=metrics.session_duration,
                active_seconds=self._active_seconds,
                interventions=metrics.interventions_delivered,
            )
            clear_session_context()
        return metrics

    async def _stop_sources(self) -> None:
        for source in self._sources():
            try:
                await source.stop()
            except Exception:
                logger.exception("session.source_stop_failed", source=source.name)

    async def pause_session(self) -> None:
        """Stop ingestion and timers; keep session and episode state."""
        self._require_session(SessionState.ACTIVE)
        now = self._clock()
        self.timers.cancel_all()
        for source in self._sources():
            source.pause()
        self._accumulate_active_time(now)
        self._set_state(SessionState.PAUSED)
        await self.timers.close()

    async def resume_session(self) -> None:
        self._require_session(SessionState.PAUSED)
        self.engine.reset()
        for source in self._sources():
            source.resume()
        self._resumed_at = self._clock()
        self._set_state(SessionState.ACTIVE)
        self._schedule_timers()

    def tune_responses(
        self,
        *,
        sensitivity: float | None = None,
        preferences: ResponsePreferences | None = None,
    ) -> None:
        """Apply therapist adjustments to the companion without restarting."""
        if sensitivity is not None:
            self.scheduler.set_sensitivity(sensitivity)
        if preferences is not None:
            self.scheduler.generator.set_preferences(preferences)
        logger.info(
            "session.responses_tuned",
            sensitivity=self.scheduler.sensitivity,
            response_delay=self.scheduler.response_delay,
        )

    async def advance_to_phase(self, phase: SessionPhase) -> bool:
        """Move the session forward to *phase*.

        Returns ``False`` when already in *phase*; raises
        :class:`~biomirror.errors.PhaseTransitionError` for a backward move.
        """
        self._require_session(SessionState.ACTIVE, SessionState.PAUSED)
        return self._apply_phase(phase, self._clock())

    def _apply_phase(self, phase: SessionPhase, now: datetime) -> bool:
        session = self.session
        previous = session.phase
        if not session.advance_to_phase(phase, now):
            return False
        self.scheduler.set_phase(phase)
        for stale in self._boundaries:
            if stale[0].index <= phase.index:
                self.timers.cancel(f"phase.{stale[0].value}")
        logger.info(
            "session.phase_changed",
            session_id=session.id,
            previous=previous.value,
            phase=phase.value,
        )
        self.phases.publish(phase)
        return True

    def _require_session(self, *allowed: SessionState) -> TherapeuticSession:
        if self.session is None or self._state not in allowed:
            raise SessionStateError(
                f"Operation not allowed while session is {self._state.value}"
            )
        return self.session

    # ── Inbound samples ───────────────────────────────────────

    def submit_facial_sample(self, sample: FacialSample) -> None:
        if self._state is SessionState.ACTIVE:
            self.engine.submit_facial(sample)

    def submit_physiological_sample(self, sample: PhysiologicalSample) -> None:
        if self._state is SessionState.ACTIVE:
            self.engine.submit_physiological(sample)

    # ── Ticks ─────────────────────────────────────────────────

    def fusion_tick(self, now: datetime | None = None) -> IntegratedState | None:
        """Fuse the latest pair; downstream processing runs via :meth:`_on_state`."""
        if self._state is not SessionState.ACTIVE:
            return None
        return self.engine.tick(now)

    def response_tick(self, now: datetime | None = None) -> TherapeuticResponse | None:
        if self._state is not SessionState.ACTIVE:
            return None
        return self.scheduler.tick(now)

    def _on_state(self, state: IntegratedState) -> None:
        session = self.session
        self.history.append(state)
        session.add_state(state)

        status = self.tracker.process(state)
        assessment = self.safety.process(state)
        self.scheduler.on_state(state, dissociation=status, safety=assessment)

        if assessment.terminate and not self.termination_requested:
            self.termination_requested = True
            logger.warning("session.termination_requested", session_id=session.id)
            if self.auto_end_on_termination:
                self.timers.once("session.terminate", 0, self.end_session)

        if self.sink is not None:
            self._persist("state", self.sink.save_state, session.id, state)

    def _on_episode(self, episode: DissociationEpisode) -> None:
        self.session.record_episode(episode)
        if self.sink is not None:
            self._persist("episode", self.sink.save_episode, self.session.id, episode)

    def _on_alert(self, alert: SafetyAlert) -> None:
        if self.outbox is not None:
            self.outbox.submit(alert)
        if self.sink is not None:
            self._persist("alert", self.sink.save_alert, alert)

    def _persist(self, record: str, save: Callable[..., None], *args: object) -> None:
        # The sink is an external collaborator; it never interrupts the safety chain.
        try:
            save(*args)
        except Exception:
            logger.exception(
                "sink.save_failed",
                record=record,
                session_id=self.session.id if self.session else None,
            )

    # ── Timers ────────────────────────────────────────────────

    def active_elapsed(self, now: datetime | None = None) -> float:
        """Seconds the session has spent active, excluding pauses."""
        elapsed = self._active_seconds
        if self._resumed_at is not None:
            elapsed += ((now or self._clock()) - self._resumed_at).total_seconds()
        return elapsed

    def _accumulate_active_time(self, now: datetime) -> None:
        if self._resumed_at is not None:
            self._active_seconds += (now - self._resumed_at).total_seconds()
            self._resumed_at = None

    def _schedule_timers(self) -> None:
        session = self.session
        elapsed = self.active_elapsed()
        self.timers.every("fusion", self.engine.interval, self.fusion_tick)
        self.timers.every("responses", self.response_interval, self.response_tick)
        self.timers.once(
            "session.expiry", session.planned_duration - elapsed, self._on_expiry
        )
        for phase, offset in self._boundaries:
            if phase.index <= session.phase.index:
                continue
            self.timers.once(
                f"phase.{phase.value}", offset - elapsed, partial(self._on_phase_timer, phase)
            )

    def _on_phase_timer(self, phase: SessionPhase) -> None:
        if self._state is not SessionState.ACTIVE:
            return
        if phase.index <= self.session.phase.index:
            return
        self._apply_phase(phase, self._clock())

    async def _on_expiry(self) -> None:
        if self._state is not SessionState.ACTIVE or self._ending:
            return
        logger.info("session.expired", session_id=self.session.id)
        await self.end_session()

    # ── Introspection ─────────────────────────────────────────

    def progress(self, now: datetime | None = None) -> SessionProgress:
        if self.session is None:
            raise SessionStateError("No session has been started")
        return SessionProgress(
            session_id=self.session.id,
            state=self._state,
            phase=self.session.phase,
            elapsed=self.active_elapsed(now),
            planned_duration=self.session.planned_duration,
            termination_requested=self.termination_requested,
        )

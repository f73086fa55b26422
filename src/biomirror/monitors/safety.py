"""Safety monitor — escalating alert levels and duration-based checks.

Alert level state machine
~~~~~~~~~~~~~~~~~~~~~~~~~
``NONE < LOW < MEDIUM < HIGH``.  :meth:`SafetyMonitor.evaluate` is the only
place the level changes:

* a triggered candidate strictly above the current level escalates and
  emits exactly one :class:`~biomirror.models.SafetyAlert`;
* a candidate at or below the current level changes nothing;
* a tick where no trigger fires resets the level to ``NONE``.

Ticks whose data quality is invalid or poor are skipped entirely, including
the distress timer below.  A ``HIGH`` level always requests termination.

Duration checks
~~~~~~~~~~~~~~~
:meth:`needs_intervention` and :meth:`should_terminate_session` share one
distress timer (arousal above the sustained-distress threshold).  Each
raises its side-effect alert once: the guardian alert once per session, the
therapist termination alert once per escalation.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Callable

import structlog

from biomirror.models import (
    AlertLevel,
    IntegratedState,
    Recipient,
    SafetyAction,
    SafetyAlert,
    SafetyAssessment,
    SafetyEvent,
)
from biomirror.monitors.thresholds import (
    DEFAULT_THRESHOLDS,
    SafetyThresholds,
    SafetyTrigger,
    default_safety_triggers,
    is_negative_state,
)
from biomirror.streaming.pipeline import Feed

logger = structlog.get_logger(__name__)


class SafetyMonitor:
    """Evaluate fused states against the safety threshold table.

    Integration::

        monitor = SafetyMonitor()
        monitor.alerts.subscribe(outbox.submit)
        monitor.start_monitoring(now)
        assessment = monitor.process(state)
    """

    def __init__(
        self,
        thresholds: SafetyThresholds | None = None,
        *,
        triggers: list[SafetyTrigger] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.thresholds = thresholds or DEFAULT_THRESHOLDS
        self._triggers = triggers or default_safety_triggers()
        self._clock = clock or (lambda: datetime.now(UTC))

        self._level = AlertLevel.NONE
        self._monitoring = False
        self._session_start: datetime | None = None
        self.session_id: str | None = None

        self._distress_since: datetime | None = None
        self._negative_since: datetime | None = None
        self._guardian_alerted = False
        self._termination_alerted = False
        self._alert_history: list[SafetyAlert] = []

        self.alerts: Feed[SafetyAlert] = Feed("safety.alerts")
        self.levels: Feed[AlertLevel] = Feed("safety.levels")
        self.assessments: Feed[SafetyAssessment] = Feed("safety.assessments")

    # ── Lifecycle ─────────────────────────────────────────────

    def start_monitoring(
        self, now: datetime | None = None, *, session_id: str | None = None
    ) -> None:
        self.reset()
        self._session_start = now or self._clock()
        self.session_id = session_id
        self._monitoring = True
        logger.info("safety.monitoring_started", session_id=session_id)

    def stop_monitoring(self) -> None:
        self._monitoring = False
        logger.info("safety.monitoring_stopped", session_id=self.session_id)

    def reset(self) -> None:
        """Clear level, timers and once-only flags for reuse across sessions."""
        self._level = AlertLevel.NONE
        self._session_start = None
        self._distress_since = None
        self._negative_since = None
        self._guardian_alerted = False
        self._termination_alerted = False
        self._alert_history.clear()

    @property
    def is_monitoring(self) -> bool:
        return self._monitoring

    @property
    def level(self) -> AlertLevel:
        return self._level

    @property
    def alert_history(self) -> list[SafetyAlert]:
        return list(self._alert_history)

    # ── Combined per-tick entry point ─────────────────────────

    def process(self, state: IntegratedState) -> SafetyAssessment:
        """Run every check for *state* and publish the assessment."""
        if not self._monitoring:
            return SafetyAssessment(
                timestamp=state.timestamp, level=self._level, evaluated=False
            )

        if not state.data_quality.is_trustworthy:
            logger.debug(
                "safety.evaluation_skipped", data_quality=state.data_quality.value
            )
            assessment = SafetyAssessment(
                timestamp=state.timestamp, level=self._level, evaluated=False
            )
            self.assessments.publish(assessment)
            return assessment

        alert = self.evaluate(state)
        intervention = self.needs_intervention(state)
        terminate = self.should_terminate_session(state)
        assessment = SafetyAssessment(
            timestamp=state.timestamp,
            level=self._level,
            alert=alert,
            needs_intervention=intervention,
            terminate=terminate or self._level is AlertLevel.HIGH,
        )
        self.assessments.publish(assessment)
        return assessment

    # ── Alert level state machine ─────────────────────────────

    def evaluate(self, state: IntegratedState) -> SafetyAlert | None:
        """Evaluate the trigger table; return the alert if the level escalated."""
        if not state.data_quality.is_trustworthy:
            logger.debug(
                "safety.evaluation_skipped", data_quality=state.data_quality.value
            )
            return None

        candidates = [
            (trigger.level, trigger.event)
            for trigger in self._triggers
            if trigger.condition(state, self.thresholds)
        ]
        if self._prolonged_negative(state):
            candidates.append((AlertLevel.LOW, SafetyEvent.PROLONGED_NEGATIVE_STATE))

        if not candidates:
            if self._level is not AlertLevel.NONE:
                logger.info("safety.level_reset", previous=self._level.name)
                self._set_level(AlertLevel.NONE)
            return None

        level, event = max(candidates, key=lambda c: c[0])
        if level <= self._level:
            return None

        previous = self._level
        self._set_level(level)
        alert = self._build_alert(level, event, state.timestamp)
        logger.warning(
            "safety.escalated",
            previous=previous.name,
            level=level.name,
            trigger=event.value,
            session_id=self.session_id,
        )
        self._emit(alert)
        return alert

    def _prolonged_negative(self, state: IntegratedState) -> bool:
        if not is_negative_state(state, self.thresholds):
            self._negative_since = None
            return False
        if self._negative_since is None:
            self._negative_since = state.timestamp
        elapsed = (state.timestamp - self._negative_since).total_seconds()
        return elapsed >= self.thresholds.negative_duration

    def _set_level(self, level: AlertLevel) -> None:
        self._level = level
        self.levels.publish(level)

    def _build_alert(
        self, level: AlertLevel, event: SafetyEvent, now: datetime
    ) -> SafetyAlert:
        if level is AlertLevel.HIGH:
            actions = (SafetyAction.SESSION_TERMINATION, SafetyAction.GUARDIAN_NOTIFICATION)
            recipients = (Recipient.THERAPIST, Recipient.GUARDIAN)
        elif level is AlertLevel.MEDIUM:
            actions = (SafetyAction.CALMING_INTERVENTION,)
            recipients = (Recipient.THERAPIST,)
            if self._elapsed_since_start(now) > self.thresholds.guardian_escalation_after:
                actions += (SafetyAction.GUARDIAN_NOTIFICATION,)
                recipients += (Recipient.GUARDIAN,)
        else:
            actions = (SafetyAction.THERAPIST_REVIEW,)
            recipients = (Recipient.THERAPIST,)

        return SafetyAlert(
            timestamp=now,
            level=level,
            event=event,
            actions=actions,
            recipients=recipients,
            message=event.description,
            session_id=self.session_id,
        )

    def _elapsed_since_start(self, now: datetime) -> float:
        if self._session_start is None:
            return 0.0
        return (now - self._session_start).total_seconds()

    # ── Duration-based checks ─────────────────────────────────

    def _track_distress(self, state: IntegratedState) -> float:
        """Update the shared distress timer; return seconds sustained so far."""
        if state.arousal_level > self.thresholds.sustained_arousal:
            if self._distress_since is None:
                self._distress_since = state.timestamp
            return (state.timestamp - self._distress_since).total_seconds()
        self._distress_since = None
        return 0.0

    def needs_intervention(self, state: IntegratedState) -> bool:
        if not state.data_quality.is_trustworthy:
            return False
        sustained = self._track_distress(state)

        if sustained > self.thresholds.intervention_after:
            if not self._guardian_alerted:
                self._guardian_alerted = True
                self._emit(
                    SafetyAlert(
                        timestamp=state.timestamp,
                        level=AlertLevel.MEDIUM,
                        event=SafetyEvent.SUSTAINED_DISTRESS,
                        actions=(
                            SafetyAction.MANDATORY_INTERVENTION,
                            SafetyAction.GUARDIAN_NOTIFICATION,
                        ),
                        recipients=(Recipient.GUARDIAN,),
                        message=SafetyEvent.SUSTAINED_DISTRESS.description,
                        session_id=self.session_id,
                    )
                )
            return True

        return state.dissociation_index > self.thresholds.severe_dissociation

    def should_terminate_session(self, state: IntegratedState) -> bool:
        if not state.data_quality.is_trustworthy:
            return False
        sustained = self._track_distress(state)
        distress = sustained > self.thresholds.termination_after
        dissociation = state.dissociation_index > self.thresholds.severe_dissociation

        if not (distress or dissociation):
            self._termination_alerted = False
            return False

        if not self._termination_alerted:
            self._termination_alerted = True
            event = (
                SafetyEvent.SUSTAINED_DISTRESS if distress else SafetyEvent.SEVERE_DISSOCIATION
            )
            self._emit(
                SafetyAlert(
                    timestamp=state.timestamp,
                    level=AlertLevel.HIGH,
                    event=event,
                    actions=(SafetyAction.SESSION_TERMINATION,),
                    recipients=(Recipient.THERAPIST,),
                    message=f"Session termination recommended: {event.description.lower()}",
                    session_id=self.session_id,
                )
            )
        return True

    # ── Internals ─────────────────────────────────────────────

    def _emit(self, alert: SafetyAlert) -> None:
        self._alert_history.append(alert)
        logger.warning(
            "safety.alert",
            alert_id=alert.id,
            level=alert.level.name,
            trigger=alert.event.value,
            actions=[a.value for a in alert.actions],
        )
        self.alerts.publish(alert)

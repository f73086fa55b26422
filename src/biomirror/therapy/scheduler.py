"""Response scheduler — throttled, non-overlapping companion responses.

Per fused state (:meth:`ResponseScheduler.on_state`):

1. **Safety** — when the safety assessment asks for calming, a calming (or,
   for severe dissociation, deep grounding) response jumps the queue and
   queued phase responses are dropped.  Only one safety response is queued
   or playing at a time.
2. **Dissociation** — entering each non-potential severity of an active
   episode queues one grounding response ahead of phase responses.  Phase
   responses are withheld while an episode is open.
3. **Phase** — a significant previous-vs-current change is turned into a
   phase response, subject to sensitivity-based gating.

Delivery (:meth:`ResponseScheduler.tick`, every 0.5 s) dequeues at most one
response when nothing is playing and at least ``response_delay`` seconds
passed since the last delivery.
"""

from __future__ import annotations

import random
from collections import deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable, Literal

import structlog

from biomirror.fusion.changes import StateChange
from biomirror.fusion.scoring import clamp
from biomirror.models import (
    DissociationSeverity,
    DissociationStatus,
    IntegratedState,
    SafetyAssessment,
)
from biomirror.streaming.pipeline import Feed
from biomirror.therapy.generator import ResponseGenerator
from biomirror.therapy.models import SessionPhase, TherapeuticResponse

logger = structlog.get_logger(__name__)

DEFAULT_SENSITIVITY = 0.7
DEFAULT_QUEUE_SIZE = 5
TICK_SECONDS = 0.5

ResponseOrigin = Literal["safety", "grounding", "phase"]


def response_delay(sensitivity: float) -> float:
    """Minimum spacing between deliveries: 3.0 s at 0 down to 0.5 s at 1."""
    return 3.0 - clamp(sensitivity) * 2.5


@dataclass(frozen=True, slots=True)
class _Queued:
    response: TherapeuticResponse
    origin: ResponseOrigin


class ResponseScheduler:
    """Turn the fused-state stream into a paced sequence of responses."""

    def __init__(
        self,
        generator: ResponseGenerator | None = None,
        *,
        sensitivity: float = DEFAULT_SENSITIVITY,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.generator = generator or ResponseGenerator()
        self._sensitivity = clamp(sensitivity)
        self._queue: deque[_Queued] = deque()
        self._queue_size = queue_size
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(UTC))

        self._running = False
        self._phase = SessionPhase.CONNECTION
        self._previous: IntegratedState | None = None
        self._grounded_severity: DissociationSeverity | None = None
        self._active: _Queued | None = None
        self._last_delivery: datetime | None = None
        self._delivered = 0

        self.responses: Feed[TherapeuticResponse] = Feed("responses.delivered")

    # ── Lifecycle ─────────────────────────────────────────────

    def start(self, phase: SessionPhase = SessionPhase.CONNECTION) -> None:
        self._clear()
        self._phase = phase
        self._running = True
        logger.info("responses.started", phase=phase.value, sensitivity=self._sensitivity)

    def stop(self) -> None:
        self._running = False
        self._clear()
        logger.info("responses.stopped", delivered=self._delivered)

    def _clear(self) -> None:
        self._queue.clear()
        self._previous = None
        self._grounded_severity = None
        self._active = None
        self._last_delivery = None

    @property
    def is_running(self) -> bool:
        return self._running

    # ── Configuration ─────────────────────────────────────────

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    def set_phase(self, phase: SessionPhase) -> None:
        self._phase = phase

    @property
    def sensitivity(self) -> float:
        return self._sensitivity

    def set_sensitivity(self, sensitivity: float) -> None:
        self._sensitivity = clamp(sensitivity)

    @property
    def response_delay(self) -> float:
        return response_delay(self._sensitivity)

    # ── Intake ────────────────────────────────────────────────

    def on_state(
        self,
        state: IntegratedState,
        *,
        dissociation: DissociationStatus | None = None,
        safety: SafetyAssessment | None = None,
    ) -> TherapeuticResponse | None:
        """Consider one fused state; return the response queued for it, if any."""
        if not self._running:
            return None

        previous, self._previous = self._previous, state
        now = state.timestamp

        if safety is not None and safety.requires_calming:
            return self._preempt_for_safety(state, now)

        if dissociation is not None and dissociation.is_active:
            return self._ground(dissociation, now)
        self._grounded_severity = None

        if previous is None:
            return None
        change = StateChange.between(previous, state)
        if not self.should_respond(change):
            return None
        response = self.generator.phase_response(state, self._phase, now)
        self._enqueue(_Queued(response, "phase"))
        return response

    def should_respond(self, change: StateChange) -> bool:
        """Significance gate with sensitivity-weighted randomness."""
        if not change.is_significant:
            return False
        if change.dissociation_changed or change.regulation_changed:
            return True
        if change.emotion_changed:
            return self._rng.random() < self._sensitivity
        if change.arousal_changed:
            return change.arousal_swing > 0.3 and self._rng.random() < self._sensitivity
        if change.coherence_changed:
            return self._rng.random() < self._sensitivity * 0.7
        return False

    def _preempt_for_safety(
        self, state: IntegratedState, now: datetime
    ) -> TherapeuticResponse | None:
        if self._has_safety_response(now):
            return None
        if state.dissociation_index > 0.8:
            response = self.generator.severe_grounding_response(now)
        else:
            response = self.generator.safety_response(now)

        dropped = sum(1 for q in self._queue if q.origin == "phase")
        self._queue = deque(q for q in self._queue if q.origin != "phase")
        self._queue.appendleft(_Queued(response, "safety"))
        self._trim()
        logger.info(
            "responses.safety_preempted",
            response_type=response.response_type.value,
            dropped=dropped,
        )
        return response

    def _has_safety_response(self, now: datetime) -> bool:
        if any(q.origin == "safety" for q in self._queue):
            return True
        return (
            self._active is not None
            and self._active.origin == "safety"
            and now < self._active.response.expires_at()
        )

    def _ground(
        self, status: DissociationStatus, now: datetime
    ) -> TherapeuticResponse | None:
        severity = status.severity
        if severity in (None, DissociationSeverity.POTENTIAL):
            return None
        if severity is self._grounded_severity:
            return None
        self._grounded_severity = severity

        response = self.generator.grounding_response(status, now)
        position = next(
            (i for i, q in enumerate(self._queue) if q.origin == "phase"),
            len(self._queue),
        )
        self._queue.insert(position, _Queued(response, "grounding"))
        self._trim()
        logger.info("responses.grounding_queued", severity=severity.value)
        return response

    def _enqueue(self, item: _Queued) -> None:
        self._queue.append(item)
        self._trim()

    def _trim(self) -> None:
        while len(self._queue) > self._queue_size:
            # Drop the oldest phase response first, otherwise the newest entry.
            victim = next((q for q in self._queue if q.origin == "phase"), self._queue[-1])
            self._queue.remove(victim)
            logger.debug("responses.queue_overflow", dropped=victim.origin)

    # ── Delivery ──────────────────────────────────────────────

    def tick(self, now: datetime | None = None) -> TherapeuticResponse | None:
        """Deliver the next queued response if pacing allows."""
        if not self._running:
            return None
        now = now or self._clock()

        if self._active is not None:
            if now < self._active.response.expires_at():
                return None
            self._active = None

        if not self._queue:
            return None
        if (
            self._last_delivery is not None
            and (now - self._last_delivery).total_seconds() < self.response_delay
        ):
            return None

        item = self._queue.popleft()
        response = item.response.restamped(now)
        self._active = _Queued(response, item.origin)
        self._last_delivery = now
        self._delivered += 1
        logger.debug(
            "responses.delivered",
            response_type=response.response_type.value,
            origin=item.origin,
            duration=response.duration,
        )
        self.responses.publish(response)
        return response

    # ── Introspection ─────────────────────────────────────────

    @property
    def pending(self) -> list[TherapeuticResponse]:
        return [q.response for q in self._queue]

    @property
    def active_response(self) -> TherapeuticResponse | None:
        return self._active.response if self._active else None

    @property
    def delivered_count(self) -> int:
        return self._delivered

"""Safety thresholds and the default trigger table.

One authoritative table drives both the per-tick alert evaluation and the
duration-based intervention / termination checks of
:class:`~biomirror.monitors.safety.SafetyMonitor`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from biomirror.models import AlertLevel, IntegratedState, SafetyEvent


@dataclass(frozen=True, slots=True)
class SafetyThresholds:
    """Numeric limits used by the safety monitor.

    Durations are in seconds.  The defaults are conservative and should be
    adjusted per clinical protocol.
    """

    # Severe distress → HIGH
    distress_intensity: float = 0.8
    distress_arousal: float = 0.7
    # Severe dissociation → MEDIUM
    severe_dissociation: float = 0.8
    # Extreme arousal → MEDIUM
    extreme_arousal: float = 0.9
    extreme_heart_rate: float = 120.0
    # Prolonged negative state → LOW
    negative_intensity: float = 0.6
    negative_duration: float = 60.0
    # Sustained distress timer
    sustained_arousal: float = 0.9
    intervention_after: float = 120.0
    termination_after: float = 240.0
    # Guardian notification for MEDIUM escalations
    guardian_escalation_after: float = 300.0


DEFAULT_THRESHOLDS = SafetyThresholds()


@dataclass(frozen=True, slots=True)
class SafetyTrigger:
    """One row of the trigger table: a condition on a single state."""

    event: SafetyEvent
    level: AlertLevel
    condition: Callable[[IntegratedState, SafetyThresholds], bool]


def _severe_distress(state: IntegratedState, t: SafetyThresholds) -> bool:
    return (
        state.dominant_emotion.is_negative
        and state.emotional_intensity > t.distress_intensity
        and state.arousal_level > t.distress_arousal
    )


def _severe_dissociation(state: IntegratedState, t: SafetyThresholds) -> bool:
    return state.dissociation_index > t.severe_dissociation


def _extreme_arousal(state: IntegratedState, t: SafetyThresholds) -> bool:
    return (
        state.arousal_level > t.extreme_arousal
        and state.physiological.heart.heart_rate > t.extreme_heart_rate
    )


def is_negative_state(state: IntegratedState, t: SafetyThresholds) -> bool:
    """Condition tracked over time for the prolonged-negative-state trigger."""
    return (
        state.dominant_emotion.is_negative
        and state.emotional_intensity > t.negative_intensity
    )


def default_safety_triggers() -> list[SafetyTrigger]:
    """Return the instantaneous triggers in priority order.

    The prolonged-negative-state trigger depends on elapsed time and is
    evaluated by the monitor itself.
    """
    return [
        SafetyTrigger(SafetyEvent.SEVERE_DISTRESS, AlertLevel.HIGH, _severe_distress),
        SafetyTrigger(
            SafetyEvent.SEVERE_DISSOCIATION, AlertLevel.MEDIUM, _severe_dissociation
        ),
        SafetyTrigger(SafetyEvent.EXTREME_AROUSAL, AlertLevel.MEDIUM, _extreme_arousal),
    ]

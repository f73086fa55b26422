"""Tests for the response scheduler."""

import random
from datetime import timedelta

import pytest

from biomirror.models import (
    DissociationSeverity,
    DissociationStatus,
    EmotionType,
    RegulationState,
    SafetyAssessment,
)
from biomirror.therapy.models import ResponseType, SessionPhase
from biomirror.therapy.scheduler import ResponseScheduler, response_delay

_EMOTIONS = [EmotionType.HAPPINESS, EmotionType.SADNESS]


def _burst(scheduler, make_state, t0, count, spacing=0.1):
    for i in range(count):
        scheduler.on_state(
            make_state(t0 + timedelta(seconds=i * spacing), emotion=_EMOTIONS[i % 2], intensity=0.6)
        )


def _run(scheduler, t0, seconds, step=0.1):
    delivered = []
    for i in range(int(seconds / step) + 1):
        response = scheduler.tick(t0 + timedelta(seconds=i * step))
        if response is not None:
            delivered.append(response)
    return delivered


class TestResponseDelay:
    @pytest.mark.parametrize(
        ("sensitivity", "expected"),
        [(0.0, 3.0), (1.0, 0.5), (0.4, 2.0), (-1.0, 3.0), (2.0, 0.5)],
    )
    def test_derived_from_sensitivity(self, sensitivity, expected):
        assert response_delay(sensitivity) == pytest.approx(expected)


class TestThrottling:
    """Unit tests for delivery pacing in :class:`ResponseScheduler`."""

    def test_burst_of_changes_is_throttled(self, response_scheduler, make_state, t0):
        _burst(response_scheduler, make_state, t0, 10)
        delivered = _run(response_scheduler, t0, 1.0)

        assert 1 <= len(delivered) <= 2
        assert len(response_scheduler.pending) <= 5

    def test_deliveries_never_overlap(self, response_scheduler, make_state, t0):
        _burst(response_scheduler, make_state, t0, 10)
        delivered = _run(response_scheduler, t0, 40.0)

        assert len(delivered) > 1
        for previous, current in zip(delivered, delivered[1:]):
            assert current.timestamp >= previous.expires_at()
            gap = (current.timestamp - previous.timestamp).total_seconds()
            assert gap >= response_scheduler.response_delay

    def test_delay_applies_after_short_responses(self, make_state, t0):
        scheduler = ResponseScheduler(sensitivity=0.0, rng=random.Random(1))
        scheduler.start(SessionPhase.CONNECTION)
        # Regulation changes always respond, regardless of sensitivity.
        scheduler.on_state(make_state(t0))
        scheduler.on_state(make_state(t0, regulation=RegulationState.MILD_DYSREGULATION))
        scheduler.on_state(make_state(t0, regulation=RegulationState.REGULATED))
        delivered = _run(scheduler, t0, 20.0)

        assert len(delivered) == 2
        gap = (delivered[1].timestamp - delivered[0].timestamp).total_seconds()
        assert gap >= 5.0  # connection responses last 5 s, longer than the 3 s delay

    def test_responses_are_restamped_on_delivery(self, response_scheduler, make_state, t0):
        _burst(response_scheduler, make_state, t0, 2)
        response = response_scheduler.tick(t0 + timedelta(seconds=2))
        assert response.timestamp == t0 + timedelta(seconds=2)
        assert response_scheduler.active_response == response
        assert response_scheduler.delivered_count == 1

    def test_stopped_scheduler_ignores_states(self, make_state, t0):
        scheduler = ResponseScheduler(sensitivity=1.0)
        _burst(scheduler, make_state, t0, 4)
        assert scheduler.pending == []
        assert scheduler.tick(t0) is None


class TestPreemption:
    """Safety and grounding responses jump ahead of phase responses."""

    def test_safety_response_replaces_phase_queue(self, response_scheduler, make_state, t0):
        _burst(response_scheduler, make_state, t0, 4)
        assert response_scheduler.pending

        calming = SafetyAssessment(timestamp=t0, needs_intervention=True)
        response = response_scheduler.on_state(make_state(t0 + timedelta(seconds=1)), safety=calming)

        assert response.response_type is ResponseType.REGULATION
        assert response_scheduler.pending == [response]

    def test_only_one_safety_response_at_a_time(self, response_scheduler, make_state, t0):
        calming = SafetyAssessment(timestamp=t0, needs_intervention=True)
        first = response_scheduler.on_state(make_state(t0), safety=calming)
        assert first is not None
        assert response_scheduler.on_state(make_state(t0 + timedelta(seconds=1)), safety=calming) is None

        delivered = response_scheduler.tick(t0 + timedelta(seconds=2))
        assert delivered.response_type is ResponseType.REGULATION
        # Still playing: no second calming response is queued.
        assert response_scheduler.on_state(make_state(t0 + timedelta(seconds=3)), safety=calming) is None
        # Once it has finished a new one can be queued.
        later = t0 + timedelta(seconds=2 + delivered.duration + 1)
        assert response_scheduler.on_state(make_state(later), safety=calming) is not None

    def test_severe_dissociation_gets_deep_grounding(self, response_scheduler, make_state, t0):
        calming = SafetyAssessment(timestamp=t0, needs_intervention=True)
        response = response_scheduler.on_state(make_state(t0, dissociation=0.85), safety=calming)
        assert response.response_type is ResponseType.GROUNDING
        assert response.duration == 30.0

    def test_grounding_once_per_severity(self, response_scheduler, make_state, t0):
        def status(severity, duration):
            return DissociationStatus.active(severity, duration, 0.7)

        state = make_state(t0, dissociation=0.7)
        assert response_scheduler.on_state(state, dissociation=status(DissociationSeverity.POTENTIAL, 1)) is None
        mild = response_scheduler.on_state(state, dissociation=status(DissociationSeverity.MILD, 6))
        assert mild.response_type is ResponseType.GROUNDING
        assert response_scheduler.on_state(state, dissociation=status(DissociationSeverity.MILD, 7)) is None
        moderate = response_scheduler.on_state(state, dissociation=status(DissociationSeverity.MODERATE, 31))
        assert moderate is not None
        assert len(response_scheduler.pending) == 2

    def test_phase_responses_withheld_during_episode(self, response_scheduler, make_state, t0):
        active = DissociationStatus.active(DissociationSeverity.POTENTIAL, 1.0, 0.7)
        for i in range(6):
            state = make_state(t0 + timedelta(seconds=i), emotion=_EMOTIONS[i % 2], intensity=0.6)
            response_scheduler.on_state(state, dissociation=active)
        assert response_scheduler.pending == []

    def test_grounding_queued_ahead_of_phase_responses(self, response_scheduler, make_state, t0):
        _burst(response_scheduler, make_state, t0, 3)
        grounding = response_scheduler.on_state(
            make_state(t0 + timedelta(seconds=1), dissociation=0.7),
            dissociation=DissociationStatus.active(DissociationSeverity.MILD, 5.0, 0.7),
        )
        assert response_scheduler.pending[0] == grounding

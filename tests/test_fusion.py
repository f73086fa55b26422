"""Tests for the state fusion engine, history and change detection."""

from datetime import timedelta

import pytest

from biomirror.fusion import StateChange, StateFusionEngine, StateHistory
from biomirror.models import EmotionType, RegulationState


class TestStateFusionEngine:
    """Unit tests for :class:`StateFusionEngine`."""

    def test_no_state_until_both_inputs_arrive(self, make_facial, make_physio, t0):
        engine = StateFusionEngine()
        assert engine.tick(t0) is None
        engine.submit_facial(make_facial())
        assert engine.tick(t0) is None
        engine.submit_physiological(make_physio())
        assert engine.tick(t0) is not None

    def test_publishes_fused_state(self, make_facial, make_physio, t0):
        engine = StateFusionEngine()
        received = []
        engine.states.subscribe(received.append)

        engine.submit_facial(make_facial(EmotionType.HAPPINESS, 0.7, confidence=1.0))
        engine.submit_physiological(make_physio(0.6, quality=1.0))
        state = engine.tick(t0)

        assert received == [state]
        assert state.timestamp == t0
        assert state.coherence_index == pytest.approx(1.0)
        assert state.stale is False

    def test_hold_policy_marks_repeated_pair_stale(self, make_facial, make_physio, t0):
        engine = StateFusionEngine(staleness_policy="hold")
        engine.submit_facial(make_facial())
        engine.submit_physiological(make_physio())

        first = engine.tick(t0)
        second = engine.tick(t0 + timedelta(seconds=0.2))

        assert first.stale is False
        assert second.stale is True
        assert engine.stats["stale"] == 1

    def test_skip_policy_suppresses_repeated_pair(self, make_facial, make_physio, t0):
        engine = StateFusionEngine(staleness_policy="skip")
        engine.submit_facial(make_facial())
        engine.submit_physiological(make_physio())

        assert engine.tick(t0) is not None
        assert engine.tick(t0 + timedelta(seconds=0.2)) is None
        engine.submit_facial(make_facial(timestamp=t0 + timedelta(seconds=0.3)))
        assert engine.tick(t0 + timedelta(seconds=0.4)) is not None
        assert engine.stats["skipped"] == 1

    def test_old_samples_count_as_stale(self, make_facial, make_physio, t0):
        engine = StateFusionEngine(max_sample_age=2.0)
        engine.submit_facial(make_facial(timestamp=t0))
        engine.submit_physiological(make_physio(timestamp=t0))

        state = engine.tick(t0 + timedelta(seconds=5))
        assert state.stale is True

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            StateFusionEngine(staleness_policy="drop")

    def test_reset_forgets_samples(self, make_facial, make_physio, t0):
        engine = StateFusionEngine()
        engine.submit_facial(make_facial())
        engine.submit_physiological(make_physio())
        engine.reset()
        assert engine.latest_facial is None
        assert engine.tick(t0) is None


class TestStateHistory:
    """Unit tests for :class:`StateHistory`."""

    def test_bounded(self, make_state, t0):
        history = StateHistory(maxlen=3)
        for i in range(5):
            history.append(make_state(t0 + timedelta(seconds=i)))
        assert len(history) == 3
        assert history.latest.timestamp == t0 + timedelta(seconds=4)
        assert [s.timestamp for s in history.recent(2)] == [
            t0 + timedelta(seconds=3),
            t0 + timedelta(seconds=4),
        ]

    def test_window_summaries(self, make_state, t0):
        history = StateHistory()
        history.append(make_state(t0, emotion=EmotionType.SADNESS, coherence=0.2))
        history.append(make_state(t0 + timedelta(seconds=10), emotion=EmotionType.FEAR, coherence=0.4))
        history.append(make_state(t0 + timedelta(seconds=11), emotion=EmotionType.FEAR, coherence=0.6))
        history.append(make_state(t0 + timedelta(seconds=12), emotion=EmotionType.ANGER, coherence=0.8))
        now = t0 + timedelta(seconds=12)

        assert len(history.window(5, now)) == 3
        emotion, prevalence = history.dominant_emotion(5, now)
        assert emotion is EmotionType.FEAR
        assert prevalence == pytest.approx(2 / 3)
        assert history.average_coherence(5, now) == pytest.approx(0.6)
        assert history.volatility(5, now) == pytest.approx(0.5)

    def test_empty_window(self, t0):
        history = StateHistory()
        assert history.dominant_emotion(30, t0) is None
        assert history.average_coherence(30, t0) is None
        assert history.volatility(30, t0) is None


class TestStateChange:
    """Unit tests for :class:`StateChange`."""

    def test_emotion_change_is_significant(self, make_state, t0):
        change = StateChange.between(
            make_state(t0, emotion=EmotionType.NEUTRAL),
            make_state(t0, emotion=EmotionType.SADNESS),
        )
        assert change.emotion_changed
        assert change.is_significant

    def test_small_drift_is_not_significant(self, make_state, t0):
        change = StateChange.between(
            make_state(t0, intensity=0.3, arousal=0.4),
            make_state(t0, intensity=0.35, arousal=0.45),
        )
        assert not change.is_significant

    def test_dissociation_change_needs_high_current_index(self, make_state, t0):
        rising = StateChange.between(make_state(t0, dissociation=0.3), make_state(t0, dissociation=0.7))
        falling = StateChange.between(make_state(t0, dissociation=0.7), make_state(t0, dissociation=0.3))
        assert rising.is_significant
        assert falling.dissociation_changed
        assert not falling.is_significant

    def test_arousal_change_needs_high_current_arousal(self, make_state, t0):
        up = StateChange.between(make_state(t0, arousal=0.5), make_state(t0, arousal=0.8))
        down = StateChange.between(make_state(t0, arousal=0.8), make_state(t0, arousal=0.5))
        assert up.is_significant
        assert up.arousal_swing == pytest.approx(0.3)
        assert not down.is_significant

    def test_regulation_change_is_significant(self, make_state, t0):
        change = StateChange.between(
            make_state(t0),
            make_state(t0, regulation=RegulationState.MILD_DYSREGULATION),
        )
        assert change.is_significant

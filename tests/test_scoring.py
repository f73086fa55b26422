"""Tests for the fusion scoring rules."""

import pytest

from biomirror.fusion import scoring
from biomirror.fusion.engine import fuse
from biomirror.models import (
    DataQuality,
    DetectionQuality,
    EmotionType,
    RegulationState,
)


class TestCoherence:
    """Unit tests for :func:`scoring.coherence_index`."""

    def test_arousal_at_band_centre_is_fully_coherent(self, make_facial, make_physio):
        facial = make_facial(EmotionType.HAPPINESS, 0.7, confidence=1.0)
        physio = make_physio(0.6, quality=1.0)
        assert scoring.coherence_index(facial, physio) == pytest.approx(1.0)

    def test_scaled_by_physiological_quality(self, make_facial, make_physio):
        facial = make_facial(EmotionType.HAPPINESS, 0.7, confidence=1.0)
        physio = make_physio(0.6, quality=0.9)
        assert scoring.coherence_index(facial, physio) == pytest.approx(0.9)

    def test_band_edges_and_falloff(self):
        band = (0.4, 0.8)
        assert scoring.band_coherence(0.6, band) == pytest.approx(1.0)
        assert scoring.band_coherence(0.4, band) == pytest.approx(0.5)
        assert scoring.band_coherence(0.8, band) == pytest.approx(0.5)
        assert scoring.band_coherence(0.1, band) == pytest.approx(0.2)
        assert scoring.band_coherence(1.5, band) == 0.0

    def test_freeze_corroborates_fear_at_low_arousal(self, make_facial, make_physio):
        facial = make_facial(EmotionType.FEAR, 0.8, confidence=1.0)
        frozen = make_physio(0.1, heart_rate=80.0, freeze=0.7, quality=1.0)
        moving = make_physio(0.1, heart_rate=80.0, freeze=0.0, quality=1.0)
        assert scoring.coherence_index(facial, frozen) == pytest.approx(1.0)
        assert scoring.coherence_index(facial, moving) == pytest.approx(0.0)

    def test_heart_metrics_corroborate_anger(self, make_physio):
        physio = make_physio(0.9, heart_rate=110.0, variability=20.0)
        assert scoring.corroboration_bonus(EmotionType.ANGER, physio) == pytest.approx(0.2)
        assert scoring.corroboration_bonus(EmotionType.SURPRISE, physio) == 0.0


class TestMaskingAndDissociation:
    """Unit tests for the masking and dissociation indices."""

    def test_neutral_face_over_high_arousal_is_masking(self, make_facial, make_physio):
        facial = make_facial(EmotionType.NEUTRAL, 0.2)
        physio = make_physio(0.8)
        assert scoring.masking_index(facial, physio, coherence=1.0) == pytest.approx(1.0)

    def test_low_coherence_raises_masking(self, make_facial, make_physio):
        facial = make_facial(EmotionType.SADNESS, 0.5)
        physio = make_physio(0.4)
        assert scoring.masking_index(facial, physio, coherence=0.3) == pytest.approx(0.7)

    def test_shutdown_profile_saturates_dissociation(self, make_facial, make_physio):
        facial = make_facial(EmotionType.NEUTRAL, 0.1, confidence=0.9)
        physio = make_physio(0.15, heart_rate=62.0, variability=15.0, freeze=0.8)
        coherence = scoring.coherence_index(facial, physio)
        assert scoring.dissociation_index(facial, physio, coherence) == 1.0

    def test_engaged_client_has_low_dissociation(self, make_facial, make_physio):
        facial = make_facial(EmotionType.HAPPINESS, 0.6, confidence=0.9)
        physio = make_physio(0.55, heart_rate=72.0, variability=65.0)
        coherence = scoring.coherence_index(facial, physio)
        assert coherence > 0.3
        # Only the missing micro-expression flag contributes.
        assert scoring.dissociation_index(facial, physio, coherence) == pytest.approx(0.2)


class TestDominantEmotion:
    """Unit tests for :func:`scoring.dominant_emotion`."""

    def test_confident_face_wins(self, make_facial, make_physio):
        facial = make_facial(EmotionType.HAPPINESS, 0.8, confidence=0.9)
        assert scoring.dominant_emotion(facial, make_physio(0.9), 0.9) is EmotionType.HAPPINESS

    def test_physiology_fills_in_for_unreliable_face(self, make_facial, make_physio):
        facial = make_facial(EmotionType.NEUTRAL, 0.2, confidence=0.3)
        assert scoring.dominant_emotion(facial, make_physio(0.9, freeze=0.8), 0.0) is EmotionType.FEAR
        assert scoring.dominant_emotion(facial, make_physio(0.9), 0.0) is EmotionType.ANGER
        assert scoring.dominant_emotion(facial, make_physio(0.2), 0.0) is EmotionType.SADNESS

    def test_dissociation_override(self, make_facial, make_physio):
        facial = make_facial(EmotionType.NEUTRAL, 0.2, confidence=0.6)
        assert scoring.dominant_emotion(facial, make_physio(0.5), 0.8) is EmotionType.DISSOCIATION


class TestIntensityRegulationQuality:
    def test_intensity_is_weighted_blend(self, make_facial, make_physio):
        facial = make_facial(EmotionType.ANGER, 0.8, confidence=1.0)
        physio = make_physio(0.4, quality=1.0)
        assert scoring.emotional_intensity(facial, physio) == pytest.approx(0.6)

    def test_regulation_bands(self, make_physio):
        assert scoring.regulation_state(make_physio(0.5, variability=70.0), 0.8) is RegulationState.REGULATED
        assert (
            scoring.regulation_state(make_physio(0.9, variability=20.0), 0.2)
            is RegulationState.SEVERE_DYSREGULATION
        )
        assert (
            scoring.regulation_state(make_physio(0.7, variability=35.0), 0.5)
            is RegulationState.MODERATE_DYSREGULATION
        )
        assert (
            scoring.regulation_state(make_physio(0.55, variability=45.0), 0.5)
            is RegulationState.MILD_DYSREGULATION
        )

    @pytest.mark.parametrize(
        ("detection", "bio", "expected"),
        [
            (DetectionQuality.NO_FACE, 0.95, DataQuality.INVALID),
            (DetectionQuality.EXCELLENT, 0.1, DataQuality.INVALID),
            (DetectionQuality.GOOD, 0.95, DataQuality.EXCELLENT),
            (DetectionQuality.GOOD, 0.9, DataQuality.GOOD),
            (DetectionQuality.FAIR, 0.5, DataQuality.FAIR),
            (DetectionQuality.POOR, 0.3, DataQuality.POOR),
        ],
    )
    def test_data_quality(self, make_facial, make_physio, detection, bio, expected):
        facial = make_facial(quality=detection)
        physio = make_physio(quality=bio)
        assert scoring.data_quality(facial, physio) is expected


class TestFusedStateBounds:
    @pytest.mark.parametrize("emotion", [EmotionType.NEUTRAL, EmotionType.FEAR, EmotionType.HAPPINESS])
    @pytest.mark.parametrize("arousal", [0.0, 0.5, 1.0])
    def test_indices_stay_in_unit_interval(self, make_facial, make_physio, t0, emotion, arousal):
        facial = make_facial(emotion, 1.0, confidence=1.0)
        physio = make_physio(arousal, heart_rate=140.0, variability=5.0, freeze=1.0, quality=1.0)
        state = fuse(facial, physio, t0)
        for value in (
            state.coherence_index,
            state.emotional_masking_index,
            state.dissociation_index,
            state.emotional_intensity,
            state.arousal_level,
        ):
            assert 0.0 <= value <= 1.0

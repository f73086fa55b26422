"""Tests for therapeutic response generation."""

import pytest

from biomirror.models import DissociationSeverity, DissociationStatus, EmotionType, RegulationState
from biomirror.therapy.generator import ResponseGenerator, infer_emotion_from_physiology
from biomirror.therapy.models import (
    BodyMovement,
    Breathing,
    GroundingTechnique,
    InterventionLevel,
    ResponsePreferences,
    ResponseType,
    SessionPhase,
)


class TestPhaseResponses:
    """Unit tests for the per-phase generators of :class:`ResponseGenerator`."""

    def test_connection_mirrors_at_reduced_intensity(self, generator, make_state, t0):
        happy = generator.connection_response(make_state(t0, emotion=EmotionType.HAPPINESS, intensity=0.6), t0)
        sad = generator.connection_response(make_state(t0, emotion=EmotionType.SADNESS, intensity=0.6), t0)

        assert happy.response_type is ResponseType.MIRRORING
        assert happy.character_intensity == pytest.approx(0.42)
        assert sad.character_intensity == pytest.approx(0.21)
        assert happy.duration == 5.0

    def test_awareness_applies_titration(self, make_state, t0):
        generator = ResponseGenerator(ResponsePreferences(mirroring_sensitivity=0.5))
        response = generator.awareness_response(
            make_state(t0, emotion=EmotionType.FEAR, intensity=0.8), t0
        )
        assert response.response_type is ResponseType.EXPLORATION
        assert response.character_intensity == pytest.approx(0.8 * 0.8)
        assert "very" in response.verbal

    def test_integration_addresses_masking(self, generator, make_state, t0):
        state = make_state(t0, emotion=EmotionType.NEUTRAL, arousal=0.9, masking=0.7)
        response = generator.integration_response(state, t0)

        assert response.response_type is ResponseType.MIRRORING
        assert response.character_emotion is EmotionType.FEAR
        assert response.character_intensity == pytest.approx(0.6)

    @pytest.mark.parametrize(
        ("coherence", "expected_type", "expected_intensity"),
        [
            (0.1, ResponseType.INTEGRATION, 0.5),
            (0.3, ResponseType.TITRATION, 0.35),
            (0.8, ResponseType.VALIDATION, 0.4),
        ],
    )
    def test_integration_by_coherence(
        self, generator, make_state, t0, coherence, expected_type, expected_intensity
    ):
        state = make_state(t0, emotion=EmotionType.SADNESS, intensity=0.5, coherence=coherence)
        response = generator.integration_response(state, t0)
        assert response.response_type is expected_type
        assert response.character_intensity == pytest.approx(expected_intensity)

    def test_titration_uses_gentle_movement(self, generator, make_state, t0):
        response = generator.integration_response(make_state(t0, coherence=0.3), t0)
        assert isinstance(response.action, BodyMovement)

    def test_regulation_scales_down_dysregulated_state(self, generator, make_state, t0):
        state = make_state(
            t0,
            emotion=EmotionType.ANGER,
            intensity=0.9,
            regulation=RegulationState.MODERATE_DYSREGULATION,
        )
        response = generator.regulation_response(state, t0)
        assert response.response_type is ResponseType.REGULATION
        assert response.character_intensity == pytest.approx(0.6)
        assert response.intervention_level is InterventionLevel.SIGNIFICANT

    def test_regulation_celebrates_regulated_state(self, generator, make_state, t0):
        response = generator.regulation_response(make_state(t0, intensity=0.9), t0)
        assert response.response_type is ResponseType.CELEBRATION
        assert response.character_emotion is EmotionType.HAPPINESS

    def test_transfer(self, generator, make_state, t0):
        response = generator.phase_response(
            make_state(t0, emotion=EmotionType.HAPPINESS, intensity=0.5), SessionPhase.TRANSFER, t0
        )
        assert response.response_type is ResponseType.TRANSFER
        assert response.character_intensity == pytest.approx(0.35)


class TestGroundingAndSafety:
    """Unit tests for grounding and safety responses."""

    @pytest.mark.parametrize(
        ("severity", "expected"),
        [
            (DissociationSeverity.SEVERE, GroundingTechnique.SENSORY),
            (DissociationSeverity.MODERATE, GroundingTechnique.BREATHING),
            (DissociationSeverity.MILD, GroundingTechnique.BREATHING),
        ],
    )
    def test_technique_respects_preferences(self, generator, severity, expected):
        assert generator.select_grounding_technique(severity) is expected

    def test_technique_table_with_everything_allowed(self):
        generator = ResponseGenerator(
            ResponsePreferences(preferred_grounding_techniques=tuple(GroundingTechnique))
        )
        assert generator.select_grounding_technique(DissociationSeverity.MODERATE) is GroundingTechnique.MOVEMENT
        assert generator.select_grounding_technique(DissociationSeverity.MILD) is GroundingTechnique.COGNITIVE

    def test_grounding_response_for_active_episode(self, generator, t0):
        status = DissociationStatus.active(DissociationSeverity.MODERATE, 40.0, 0.8)
        response = generator.grounding_response(status, t0)
        assert response.response_type is ResponseType.GROUNDING
        assert response.intervention_level is InterventionLevel.MODERATE
        assert response.duration == 15.0

    def test_generic_grounding_without_episode(self, generator, t0):
        response = generator.grounding_response(DissociationStatus.none(), t0)
        assert response.response_type is ResponseType.GROUNDING
        assert response.duration == 10.0

    def test_safety_response_is_slow_breathing(self, generator, t0):
        response = generator.safety_response(t0)
        assert response.response_type is ResponseType.REGULATION
        assert response.action == Breathing(speed=0.3, depth=0.8)
        assert response.intervention_level is InterventionLevel.INTENSIVE

    def test_severe_grounding_is_longer_and_deeper(self, generator, t0):
        response = generator.severe_grounding_response(t0)
        assert response.action.depth == pytest.approx(0.9)
        assert response.duration > generator.safety_response(t0).duration


class TestInferEmotion:
    @pytest.mark.parametrize(
        ("arousal", "heart_rate", "freeze", "expected"),
        [
            (0.5, 70.0, 0.8, EmotionType.FEAR),
            (0.9, 110.0, 0.0, EmotionType.ANGER),
            (0.9, 90.0, 0.0, EmotionType.FEAR),
            (0.7, 90.0, 0.0, EmotionType.SURPRISE),
            (0.2, 60.0, 0.0, EmotionType.SADNESS),
            (0.45, 70.0, 0.0, EmotionType.NEUTRAL),
        ],
    )
    def test_from_body_alone(self, make_physio, arousal, heart_rate, freeze, expected):
        physio = make_physio(arousal, heart_rate=heart_rate, freeze=freeze)
        assert infer_emotion_from_physiology(physio) is expected

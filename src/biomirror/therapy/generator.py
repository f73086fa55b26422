"""Response generation — maps a fused state to a companion response.

Three families of responses:

* **Safety** — calming breathing when the safety monitor asks for an
  intervention; a slower, deeper grounding variant for severe dissociation.
* **Grounding** — one technique per dissociation severity, restricted to the
  techniques allowed by :class:`ResponsePreferences`.
* **Phase** — one generator per :class:`SessionPhase`, each with its own
  intensity scaling and response type.

Wording is illustrative; the intensity scaling and type selection per phase
are what the scheduler and the tests rely on.
"""

from __future__ import annotations

from datetime import datetime

from biomirror.fusion.scoring import clamp
from biomirror.models import (
    DissociationSeverity,
    DissociationStatus,
    DissociationStatusKind,
    EmotionType,
    IntegratedState,
    PhysiologicalSample,
    RegulationState,
)
from biomirror.therapy.models import (
    Attention,
    AttentionFocus,
    BodyMovement,
    Breathing,
    CharacterAction,
    FacialExpression,
    GroundingTechnique,
    InterventionLevel,
    MovementType,
    ResponsePreferences,
    ResponseType,
    SessionPhase,
    TherapeuticResponse,
)

# ── Technique table ───────────────────────────────────────────

# severity → (preferred, fallback, default when neither is allowed)
_TECHNIQUE_TABLE: dict[
    DissociationSeverity,
    tuple[GroundingTechnique, GroundingTechnique, GroundingTechnique],
] = {
    DissociationSeverity.SEVERE: (
        GroundingTechnique.SENSORY,
        GroundingTechnique.BREATHING,
        GroundingTechnique.SENSORY,
    ),
    DissociationSeverity.MODERATE: (
        GroundingTechnique.MOVEMENT,
        GroundingTechnique.BREATHING,
        GroundingTechnique.BREATHING,
    ),
    DissociationSeverity.MILD: (
        GroundingTechnique.COGNITIVE,
        GroundingTechnique.NAMING,
        GroundingTechnique.NAMING,
    ),
    DissociationSeverity.POTENTIAL: (
        GroundingTechnique.COGNITIVE,
        GroundingTechnique.NAMING,
        GroundingTechnique.NAMING,
    ),
}

_GROUNDING_VERBAL = {
    GroundingTechnique.BREATHING: "Let's take a deep breath together. Breathe in... and out...",
    GroundingTechnique.SENSORY: "Can you notice something you can see right now? What colors do you notice?",
    GroundingTechnique.MOVEMENT: "Let's gently move our hands. Can you wiggle your fingers?",
    GroundingTechnique.COGNITIVE: "Let's count together. One, two, three...",
    GroundingTechnique.NAMING: "Can you name something you can see that is blue?",
}

_GROUNDING_LEVEL = {
    DissociationSeverity.POTENTIAL: InterventionLevel.MINIMAL,
    DissociationSeverity.MILD: InterventionLevel.MINIMAL,
    DissociationSeverity.MODERATE: InterventionLevel.MODERATE,
    DissociationSeverity.SEVERE: InterventionLevel.INTENSIVE,
}

_CONNECTION_VERBAL = {
    EmotionType.HAPPINESS: "I see your smile! It's nice to be happy together.",
    EmotionType.SADNESS: "I notice you might be feeling a bit sad. That's okay.",
    EmotionType.ANGER: "I can see you might be feeling frustrated. I understand.",
    EmotionType.FEAR: "It's okay if you're feeling worried. I'm here with you.",
    EmotionType.SURPRISE: "Oh! That seemed surprising to you.",
    EmotionType.NEUTRAL: "It's nice to be here together.",
}

_AWARENESS_VERBAL = {
    EmotionType.HAPPINESS: "I notice you're feeling {q}happy. I can see it in your smile!",
    EmotionType.SADNESS: "I see that you might be feeling {q}sad.",
    EmotionType.ANGER: "It looks like you're feeling {q}frustrated or angry.",
    EmotionType.FEAR: "I notice you might be feeling {q}worried or scared.",
    EmotionType.SURPRISE: "You look {q}surprised!",
    EmotionType.DISGUST: "It seems like you're feeling {q}uncomfortable with something.",
    EmotionType.NEUTRAL: "You're looking calm right now. How are you feeling inside?",
}

_TRANSFER_VERBAL = {
    EmotionType.HAPPINESS: "You're feeling happy! What helps you feel this way outside our sessions too?",
    EmotionType.SADNESS: "When you feel sad at home, what helps you feel a little better?",
    EmotionType.ANGER: "When you feel angry outside our sessions, what might help you calm down?",
    EmotionType.FEAR: "When you feel scared at home or school, what could help you feel safer?",
}


def infer_emotion_from_physiology(physio: PhysiologicalSample) -> EmotionType:
    """Rough emotion guess from the body alone, used to address masking."""
    arousal = physio.arousal_level
    if physio.motion.freeze_index > 0.7:
        return EmotionType.FEAR
    if arousal > 0.8:
        return EmotionType.ANGER if physio.heart.heart_rate > 100 else EmotionType.FEAR
    if arousal > 0.6:
        return EmotionType.SURPRISE
    if arousal < 0.3:
        return EmotionType.SADNESS
    return EmotionType.NEUTRAL


class ResponseGenerator:
    """Build :class:`TherapeuticResponse` descriptors for fused states."""

    def __init__(self, preferences: ResponsePreferences | None = None) -> None:
        self.preferences = preferences or ResponsePreferences()

    def set_preferences(self, preferences: ResponsePreferences) -> None:
        self.preferences = preferences

    # ── Safety ────────────────────────────────────────────────

    def safety_response(self, now: datetime) -> TherapeuticResponse:
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.REGULATION,
            character_emotion=EmotionType.NEUTRAL,
            character_intensity=0.3,
            action=Breathing(speed=0.3, depth=0.8),
            verbal="Let's take a moment to breathe together. Slow and gentle.",
            nonverbal="Calm, steady breathing with gentle movements",
            intervention_level=InterventionLevel.INTENSIVE,
            target_emotion=EmotionType.NEUTRAL,
            duration=20.0,
        )

    def severe_grounding_response(self, now: datetime) -> TherapeuticResponse:
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.GROUNDING,
            character_emotion=EmotionType.NEUTRAL,
            character_intensity=0.2,
            action=Breathing(speed=0.2, depth=0.9),
            verbal="Let's notice what's around us. Can you feel the ground beneath you?",
            nonverbal="Calm, steady presence with slow movements",
            intervention_level=InterventionLevel.INTENSIVE,
            target_emotion=EmotionType.NEUTRAL,
            duration=30.0,
        )

    # ── Grounding ─────────────────────────────────────────────

    def select_grounding_technique(
        self, severity: DissociationSeverity
    ) -> GroundingTechnique:
        allowed = self.preferences.preferred_grounding_techniques
        preferred, fallback, default = _TECHNIQUE_TABLE[severity]
        if preferred in allowed:
            return preferred
        if fallback in allowed:
            return fallback
        return allowed[0] if allowed else default

    def grounding_response(
        self, status: DissociationStatus, now: datetime
    ) -> TherapeuticResponse:
        if status.kind is DissociationStatusKind.NONE or status.severity is None:
            return self._generic_grounding(now)

        technique = self.select_grounding_technique(status.severity)
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.GROUNDING,
            character_emotion=EmotionType.NEUTRAL,
            character_intensity=0.3,
            action=_grounding_action(technique),
            verbal=_GROUNDING_VERBAL[technique],
            nonverbal="Maintains calm presence with grounding focus",
            intervention_level=_GROUNDING_LEVEL[status.severity],
            target_emotion=EmotionType.NEUTRAL,
            duration=15.0,
        )

    def _generic_grounding(self, now: datetime) -> TherapeuticResponse:
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.GROUNDING,
            character_emotion=EmotionType.NEUTRAL,
            character_intensity=0.3,
            action=Breathing(speed=0.4, depth=0.6),
            verbal="Let's notice where we are right now. Can you feel your feet on the ground?",
            nonverbal="Calm, grounding presence",
            intervention_level=InterventionLevel.MINIMAL,
            target_emotion=EmotionType.NEUTRAL,
            duration=10.0,
        )

    # ── Phase responses ───────────────────────────────────────

    def phase_response(
        self, state: IntegratedState, phase: SessionPhase, now: datetime
    ) -> TherapeuticResponse:
        builders = {
            SessionPhase.CONNECTION: self.connection_response,
            SessionPhase.AWARENESS: self.awareness_response,
            SessionPhase.INTEGRATION: self.integration_response,
            SessionPhase.REGULATION: self.regulation_response,
            SessionPhase.TRANSFER: self.transfer_response,
        }
        return builders[phase](state, now)

    def connection_response(
        self, state: IntegratedState, now: datetime
    ) -> TherapeuticResponse:
        emotion = state.dominant_emotion
        intensity = state.emotional_intensity * 0.7
        if emotion.is_negative:
            intensity *= 0.5
        intensity = clamp(intensity)
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.MIRRORING,
            character_emotion=emotion,
            character_intensity=intensity,
            action=FacialExpression(emotion=emotion, intensity=intensity),
            verbal=_CONNECTION_VERBAL.get(emotion, "I'm here with you."),
            nonverbal="Gentle mirroring of emotional state",
            intervention_level=InterventionLevel.MINIMAL,
            duration=5.0,
        )

    def awareness_response(
        self, state: IntegratedState, now: datetime
    ) -> TherapeuticResponse:
        emotion = state.dominant_emotion
        raw = state.emotional_intensity
        intensity = clamp(raw * (1.0 - self.preferences.titration_level))
        if raw > 0.7:
            qualifier = "very "
        elif raw > 0.4:
            qualifier = ""
        else:
            qualifier = "a little "
        template = _AWARENESS_VERBAL.get(
            emotion, "I'm noticing your feelings. Can you tell me about them?"
        )
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.EXPLORATION,
            character_emotion=emotion,
            character_intensity=intensity,
            action=FacialExpression(emotion=emotion, intensity=intensity),
            verbal=template.format(q=qualifier),
            nonverbal="Curious and attentive posture",
            intervention_level=InterventionLevel.MODERATE,
            target_emotion=emotion,
            duration=10.0,
        )

    def integration_response(
        self, state: IntegratedState, now: datetime
    ) -> TherapeuticResponse:
        emotion = state.dominant_emotion

        if state.is_masked:
            felt = infer_emotion_from_physiology(state.physiological)
            return TherapeuticResponse(
                timestamp=now,
                response_type=ResponseType.MIRRORING,
                character_emotion=felt,
                character_intensity=0.6,
                action=FacialExpression(emotion=felt, intensity=0.6),
                verbal=(
                    "I wonder if your body is feeling something different? "
                    "Sometimes our face shows one thing, but our body feels another."
                ),
                nonverbal="Attentive to both facial and bodily cues",
                intervention_level=InterventionLevel.MODERATE,
                target_emotion=felt,
                duration=12.0,
            )

        if state.coherence_index < 0.2:
            return TherapeuticResponse(
                timestamp=now,
                response_type=ResponseType.INTEGRATION,
                character_emotion=EmotionType.NEUTRAL,
                character_intensity=0.5,
                action=Attention(focus=AttentionFocus.SHARED),
                verbal="Let's notice how your body is feeling and connect it with your face.",
                nonverbal="Gentle, attentive presence focused on integration",
                intervention_level=InterventionLevel.MODERATE,
                target_emotion=emotion,
                duration=20.0,
            )

        if state.coherence_index < 0.4:
            intensity = clamp(state.emotional_intensity * 0.7)
            return TherapeuticResponse(
                timestamp=now,
                response_type=ResponseType.TITRATION,
                character_emotion=emotion,
                character_intensity=intensity,
                action=BodyMovement(movement=MovementType.GENTLE, intensity=0.5),
                verbal="Notice how your face and body are feeling different things.",
                nonverbal="Demonstrates connecting face and body expression",
                intervention_level=InterventionLevel.MODERATE,
                target_emotion=emotion,
                duration=25.0,
            )

        intensity = clamp(state.emotional_intensity * 0.8)
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.VALIDATION,
            character_emotion=emotion,
            character_intensity=intensity,
            action=FacialExpression(emotion=emotion, intensity=intensity),
            verbal=f"I can see you're feeling {emotion.value} in your face and your body.",
            nonverbal="Matching emotional expression",
            intervention_level=InterventionLevel.MINIMAL,
            target_emotion=emotion,
            duration=8.0,
        )

    def regulation_response(
        self, state: IntegratedState, now: datetime
    ) -> TherapeuticResponse:
        emotion = state.dominant_emotion
        if (
            state.emotional_regulation is not RegulationState.REGULATED
            and state.emotional_intensity > 0.7
        ):
            verbal, action = _regulation_strategy(emotion)
            return TherapeuticResponse(
                timestamp=now,
                response_type=ResponseType.REGULATION,
                character_emotion=emotion,
                character_intensity=clamp(max(0.3, state.emotional_intensity - 0.3)),
                action=action,
                verbal=verbal,
                nonverbal="Calming presence with regulatory focus",
                intervention_level=InterventionLevel.SIGNIFICANT,
                target_emotion=emotion,
                duration=15.0,
            )

        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.CELEBRATION,
            character_emotion=EmotionType.HAPPINESS,
            character_intensity=0.6,
            action=FacialExpression(emotion=EmotionType.HAPPINESS, intensity=0.6),
            verbal="You're handling your feelings really well right now.",
            nonverbal="Warm, affirming presence",
            intervention_level=InterventionLevel.MINIMAL,
            target_emotion=emotion,
            duration=5.0,
        )

    def transfer_response(
        self, state: IntegratedState, now: datetime
    ) -> TherapeuticResponse:
        emotion = state.dominant_emotion
        intensity = clamp(state.emotional_intensity * 0.7)
        return TherapeuticResponse(
            timestamp=now,
            response_type=ResponseType.TRANSFER,
            character_emotion=emotion,
            character_intensity=intensity,
            action=FacialExpression(emotion=emotion, intensity=intensity),
            verbal=_TRANSFER_VERBAL.get(
                emotion,
                "How could you use what we're learning together when you're at home or school?",
            ),
            nonverbal="Encouraging stance with real-world focus",
            intervention_level=InterventionLevel.MODERATE,
            target_emotion=emotion,
            duration=10.0,
        )


# ── Helpers ───────────────────────────────────────────────────


def _grounding_action(technique: GroundingTechnique) -> CharacterAction:
    if technique is GroundingTechnique.BREATHING:
        return Breathing(speed=0.3, depth=0.8)
    if technique is GroundingTechnique.MOVEMENT:
        return BodyMovement(movement=MovementType.GENTLE, intensity=0.6)
    if technique is GroundingTechnique.COGNITIVE:
        return FacialExpression(emotion=EmotionType.INTEREST, intensity=0.7)
    # sensory, naming
    return Attention(focus=AttentionFocus.DIRECT)


def _regulation_strategy(emotion: EmotionType) -> tuple[str, CharacterAction]:
    if emotion is EmotionType.ANGER:
        return (
            "I can see you're feeling really strong emotions. Let's take a deep breath together.",
            Breathing(speed=0.3, depth=0.8),
        )
    if emotion is EmotionType.FEAR:
        return (
            "It's okay to feel scared sometimes. What's one thing you can see right now?",
            Attention(focus=AttentionFocus.SHARED),
        )
    if emotion is EmotionType.SADNESS:
        return (
            "It's okay to feel sad. Would you like to take a gentle breath with me?",
            FacialExpression(emotion=EmotionType.SADNESS, intensity=0.4),
        )
    return (
        "Let's notice how we're feeling right now. Can we take a moment to breathe together?",
        Breathing(speed=0.5, depth=0.6),
    )

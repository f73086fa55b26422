"""Fusion scoring — pure functions mapping a sample pair onto state indices.

Every rule used by :class:`~biomirror.fusion.engine.StateFusionEngine`
lives here as a standalone function so it can be exercised in isolation.

Scoring rules
-------------
=====================  ==========================================================
Index                  Derivation
=====================  ==========================================================
Coherence              Arousal vs. the emotion's expected arousal band, plus
                       physiological corroboration, scaled by confidence and
                       physiological quality
Masking                Neutral face over high arousal, happiness over low HRV,
                       and ``1 − coherence``
Dissociation           Weighted flags: flat affect, freeze, low HRV + low HR,
                       missing micro-expressions, very low coherence
Dominant emotion       Confident face > physiology > dissociation override
Intensity              Confidence/quality-weighted blend of face and arousal
Regulation             Normalised HRV, coherence and arousal bands
Data quality           Detection quality × physiological quality index
=====================  ==========================================================
"""

from __future__ import annotations

from biomirror.models import (
    DataQuality,
    DetectionQuality,
    EmotionType,
    FacialSample,
    PhysiologicalSample,
    RegulationState,
)

# ── Expected arousal bands ────────────────────────────────────

EXPECTED_AROUSAL: dict[EmotionType, tuple[float, float]] = {
    EmotionType.NEUTRAL: (0.0, 0.3),
    EmotionType.HAPPINESS: (0.4, 0.8),
    EmotionType.ANGER: (0.6, 1.0),
    EmotionType.SURPRISE: (0.5, 0.9),
    EmotionType.FEAR: (0.6, 1.0),
    EmotionType.SADNESS: (0.2, 0.6),
    EmotionType.DISGUST: (0.3, 0.7),
    EmotionType.CONTEMPT: (0.3, 0.7),
    EmotionType.DISSOCIATION: (0.0, 0.3),
    EmotionType.HYPERVIGILANCE: (0.6, 1.0),
    EmotionType.FREEZE: (0.0, 0.4),
    EmotionType.CONFUSION: (0.3, 0.7),
    EmotionType.INTEREST: (0.3, 0.7),
    EmotionType.SHAME: (0.2, 0.6),
    EmotionType.PRIDE: (0.4, 0.8),
}

_OUTSIDE_FALLOFF = 0.5  # arousal distance beyond a band edge at which coherence hits 0
_FREEZE_CORROBORATES_FEAR = 0.6

# ── Dissociation weights ──────────────────────────────────────

_FLAT_AFFECT_WEIGHT = 0.4
_FREEZE_WEIGHT = 0.4
_LOW_HRV_LOW_HR_WEIGHT = 0.3
_NO_MICRO_EXPRESSION_WEIGHT = 0.2
_LOW_COHERENCE_WEIGHT = 0.3


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp *value* into ``[low, high]``."""
    return max(low, min(high, value))


# ── Coherence ─────────────────────────────────────────────────


def band_coherence(arousal: float, band: tuple[float, float]) -> float:
    """Score how well *arousal* sits in *band*.

    1.0 at the band centre, 0.5 at either edge, then falling linearly to 0
    over :data:`_OUTSIDE_FALLOFF` beyond the edge.
    """
    low, high = band
    centre = (low + high) / 2
    half_width = (high - low) / 2
    if low <= arousal <= high:
        if half_width <= 0:
            return 1.0
        return 1.0 - 0.5 * abs(arousal - centre) / half_width
    distance = low - arousal if arousal < low else arousal - high
    return 0.5 * (1.0 - min(1.0, distance / _OUTSIDE_FALLOFF))


def corroboration_bonus(emotion: EmotionType, physio: PhysiologicalSample) -> float:
    """Extra coherence when heart metrics independently confirm the emotion."""
    hr = physio.heart.heart_rate
    sdnn = physio.heart.variability
    if emotion is EmotionType.ANGER and hr > 100 and sdnn < 30:
        return 0.2
    if emotion is EmotionType.FEAR and hr > 100:
        return 0.2
    if emotion is EmotionType.HAPPINESS and sdnn > 50:
        return 0.1
    if emotion is EmotionType.SADNESS and hr < 75:
        return 0.1
    if emotion is EmotionType.NEUTRAL and sdnn > 50:
        return 0.1
    return 0.0


def coherence_index(facial: FacialSample, physio: PhysiologicalSample) -> float:
    emotion = facial.primary_emotion
    low, high = EXPECTED_AROUSAL[emotion]
    if (
        emotion is EmotionType.FEAR
        and physio.motion.freeze_index > _FREEZE_CORROBORATES_FEAR
    ):
        base = 1.0
    else:
        base = band_coherence(physio.arousal_level, (low, high))

    score = min(1.0, base + corroboration_bonus(emotion, physio))
    return clamp(score * facial.confidence * physio.quality_index)


# ── Masking ───────────────────────────────────────────────────


def masking_index(
    facial: FacialSample,
    physio: PhysiologicalSample,
    coherence: float,
) -> float:
    arousal = physio.arousal_level
    masking = 0.0

    if facial.primary_emotion is EmotionType.NEUTRAL and arousal > 0.6:
        masking = min(1.0, arousal * 1.5)

    if (
        facial.primary_emotion is EmotionType.HAPPINESS
        and physio.heart.normalized_variability < 0.3
        and arousal > 0.7
    ):
        masking = max(masking, 0.8)

    return clamp(max(masking, 1.0 - coherence))


# ── Dissociation ──────────────────────────────────────────────


def dissociation_index(
    facial: FacialSample,
    physio: PhysiologicalSample,
    coherence: float,
) -> float:
    score = 0.0

    # Flat affect
    if facial.primary_emotion is EmotionType.NEUTRAL and facial.primary_intensity < 0.3:
        score += _FLAT_AFFECT_WEIGHT

    if physio.motion.freeze_index > 0.7:
        score += _FREEZE_WEIGHT

    if physio.heart.variability < 20 and physio.heart.heart_rate < 70:
        score += _LOW_HRV_LOW_HR_WEIGHT

    if not facial.micro_expressions and facial.confidence > 0.8:
        score += _NO_MICRO_EXPRESSION_WEIGHT

    if coherence < 0.3:
        score += _LOW_COHERENCE_WEIGHT * (1.0 - coherence)

    return clamp(score)


# ── Dominant emotion / intensity / regulation ─────────────────


def dominant_emotion(
    facial: FacialSample,
    physio: PhysiologicalSample,
    dissociation: float,
) -> EmotionType:
    if facial.confidence > 0.7 and facial.primary_intensity > 0.5:
        return facial.primary_emotion

    if facial.confidence < 0.4 and physio.quality_index > 0.7:
        if physio.arousal_level > 0.8:
            if physio.motion.freeze_index > 0.7:
                return EmotionType.FEAR
            return EmotionType.ANGER
        if physio.arousal_level < 0.3:
            return EmotionType.SADNESS

    if dissociation > 0.7:
        return EmotionType.DISSOCIATION

    return facial.primary_emotion


def emotional_intensity(facial: FacialSample, physio: PhysiologicalSample) -> float:
    facial_weight = facial.confidence
    physio_weight = physio.quality_index
    total = facial_weight + physio_weight
    if total > 0:
        blended = (
            facial.primary_intensity * facial_weight
            + physio.arousal_level * physio_weight
        ) / total
    else:
        blended = (facial.primary_intensity + physio.arousal_level) / 2
    return clamp(blended)


def regulation_state(physio: PhysiologicalSample, coherence: float) -> RegulationState:
    hrv = physio.heart.normalized_variability
    arousal = physio.arousal_level

    if hrv > 0.6 and coherence > 0.6:
        return RegulationState.REGULATED
    if arousal > 0.8 and hrv < 0.3:
        return RegulationState.SEVERE_DYSREGULATION
    if arousal > 0.6 and hrv < 0.4:
        return RegulationState.MODERATE_DYSREGULATION
    if arousal > 0.5 and hrv < 0.5:
        return RegulationState.MILD_DYSREGULATION
    return RegulationState.REGULATED


# ── Data quality ──────────────────────────────────────────────


def data_quality(facial: FacialSample, physio: PhysiologicalSample) -> DataQuality:
    """Collapse detection quality and the physiological quality index."""
    face = facial.detection_quality
    bio = physio.quality_index

    if face is DetectionQuality.NO_FACE or bio < 0.2:
        return DataQuality.INVALID

    if (face is DetectionQuality.EXCELLENT and bio > 0.8) or (
        face is DetectionQuality.GOOD and bio > 0.9
    ):
        return DataQuality.EXCELLENT

    if (
        (face is DetectionQuality.EXCELLENT and bio > 0.6)
        or (face is DetectionQuality.GOOD and bio > 0.7)
        or (face is DetectionQuality.FAIR and bio > 0.8)
    ):
        return DataQuality.GOOD

    if (face is DetectionQuality.POOR and bio < 0.5) or (
        face is DetectionQuality.FAIR and bio < 0.4
    ):
        return DataQuality.POOR

    return DataQuality.FAIR

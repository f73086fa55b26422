"""Shared Pydantic models used across the framework.

Samples arrive from external collaborators (facial analysis, wearable
biometrics); everything downstream of the fusion engine is derived from
them.  All models here are immutable value objects.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ── Enums ─────────────────────────────────────────────────────


class EmotionType(str, Enum):
    """Facial-emotion taxonomy shared by samples, states and responses."""

    NEUTRAL = "neutral"
    HAPPINESS = "happiness"
    SADNESS = "sadness"
    ANGER = "anger"
    FEAR = "fear"
    SURPRISE = "surprise"
    DISGUST = "disgust"
    CONTEMPT = "contempt"

    # Trauma-specific states
    DISSOCIATION = "dissociation"
    HYPERVIGILANCE = "hypervigilance"
    FREEZE = "freeze"

    # Complex emotions
    CONFUSION = "confusion"
    INTEREST = "interest"
    SHAME = "shame"
    PRIDE = "pride"

    @property
    def is_negative(self) -> bool:
        return self in NEGATIVE_EMOTIONS


NEGATIVE_EMOTIONS = frozenset(
    {EmotionType.SADNESS, EmotionType.ANGER, EmotionType.FEAR, EmotionType.DISGUST}
)


class DetectionQuality(str, Enum):
    """Face-detection quality reported by the facial-analysis collaborator."""

    NO_FACE = "no_face"
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"


class DataQuality(str, Enum):
    """Combined quality of a fused state."""

    INVALID = "invalid"
    POOR = "poor"
    FAIR = "fair"
    GOOD = "good"
    EXCELLENT = "excellent"

    @property
    def is_trustworthy(self) -> bool:
        """``False`` for data that must never drive a safety decision."""
        return self not in (DataQuality.INVALID, DataQuality.POOR)


class RegulationState(str, Enum):
    REGULATED = "regulated"
    MILD_DYSREGULATION = "mild_dysregulation"
    MODERATE_DYSREGULATION = "moderate_dysregulation"
    SEVERE_DYSREGULATION = "severe_dysregulation"


class DissociationSeverity(str, Enum):
    """Severity of a dissociation episode.

    ``POTENTIAL`` is only reported while an episode is still too short to
    classify.
    """

    POTENTIAL = "potential"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class DissociationStatusKind(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    RECENT = "recent"


class AlertLevel(IntEnum):
    """Totally ordered safety alert level."""

    NONE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3


class SafetyEvent(str, Enum):
    SEVERE_DISTRESS = "severe_distress"
    SEVERE_DISSOCIATION = "severe_dissociation"
    EXTREME_AROUSAL = "extreme_arousal"
    PROLONGED_NEGATIVE_STATE = "prolonged_negative_state"
    SUSTAINED_DISTRESS = "sustained_distress"

    @property
    def description(self) -> str:
        return _EVENT_DESCRIPTIONS[self]


_EVENT_DESCRIPTIONS = {
    SafetyEvent.SEVERE_DISTRESS: "Severe emotional distress detected",
    SafetyEvent.SEVERE_DISSOCIATION: "Severe dissociative state detected",
    SafetyEvent.EXTREME_AROUSAL: "Extreme physiological arousal detected",
    SafetyEvent.PROLONGED_NEGATIVE_STATE: "Prolonged negative emotional state detected",
    SafetyEvent.SUSTAINED_DISTRESS: "Sustained high arousal detected",
}


class SafetyAction(str, Enum):
    """Side effects requested from external collaborators."""

    THERAPIST_REVIEW = "therapist_review"
    CALMING_INTERVENTION = "calming_intervention"
    SESSION_TERMINATION = "session_termination"
    GUARDIAN_NOTIFICATION = "guardian_notification"
    MANDATORY_INTERVENTION = "mandatory_intervention"


class Recipient(str, Enum):
    THERAPIST = "therapist"
    GUARDIAN = "guardian"


# ── Samples ───────────────────────────────────────────────────


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Vector3(_Frozen):
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class MicroExpression(_Frozen):
    """A brief involuntary expression detected between full samples."""

    timestamp: datetime
    duration: float  # seconds
    emotion: EmotionType
    intensity: float = Field(ge=0.0, le=1.0)


class FacialSample(_Frozen):
    """One facial-emotion reading from the facial-analysis collaborator."""

    timestamp: datetime = Field(default_factory=_utcnow)
    primary_emotion: EmotionType = EmotionType.NEUTRAL
    primary_intensity: float = Field(0.0, ge=0.0, le=1.0)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    secondary_emotions: dict[EmotionType, float] = Field(default_factory=dict)
    detection_quality: DetectionQuality = DetectionQuality.GOOD
    micro_expressions: tuple[MicroExpression, ...] = ()


class HeartRateMetrics(_Frozen):
    heart_rate: float = 0.0  # bpm
    variability: float = 0.0  # SDNN, ms
    rmssd: float = 0.0
    pnn50: float = 0.0
    quality: float = Field(0.0, ge=0.0, le=1.0)

    @property
    def normalized_variability(self) -> float:
        """SDNN mapped onto [0, 1] with 100 ms as the ceiling."""
        return min(100.0, max(0.0, self.variability)) / 100.0


class ElectrodermalMetrics(_Frozen):
    skin_conductance_level: float = 0.0  # µS
    response_count: int = 0
    peak_amplitude: float = 0.0
    quality: float = Field(0.0, ge=0.0, le=1.0)


class MotionMetrics(_Frozen):
    acceleration: Vector3 = Field(default_factory=Vector3)
    rotation_rate: Vector3 = Field(default_factory=Vector3)
    tremor: float = Field(0.0, ge=0.0, le=1.0)
    freeze_index: float = Field(0.0, ge=0.0, le=1.0)
    quality: float = Field(0.0, ge=0.0, le=1.0)


class RespirationMetrics(_Frozen):
    rate: float = 0.0  # breaths per minute
    irregularity: float = 0.0
    depth: float = 0.0
    quality: float = Field(0.0, ge=0.0, le=1.0)


class PhysiologicalSample(_Frozen):
    """One physiological reading from the wearable collaborator."""

    timestamp: datetime = Field(default_factory=_utcnow)
    heart: HeartRateMetrics = Field(default_factory=HeartRateMetrics)
    electrodermal: ElectrodermalMetrics = Field(default_factory=ElectrodermalMetrics)
    motion: MotionMetrics = Field(default_factory=MotionMetrics)
    respiration: RespirationMetrics = Field(default_factory=RespirationMetrics)
    arousal_level: float = Field(0.0, ge=0.0, le=1.0)
    quality_index: float = Field(0.0, ge=0.0, le=1.0)


# ── Fused state ───────────────────────────────────────────────


class IntegratedState(_Frozen):
    """The fused emotional state produced once per fusion tick."""

    timestamp: datetime
    facial: FacialSample
    physiological: PhysiologicalSample
    coherence_index: float = Field(ge=0.0, le=1.0)
    emotional_masking_index: float = Field(ge=0.0, le=1.0)
    dissociation_index: float = Field(ge=0.0, le=1.0)
    dominant_emotion: EmotionType
    emotional_intensity: float = Field(ge=0.0, le=1.0)
    emotional_regulation: RegulationState
    arousal_level: float = Field(ge=0.0, le=1.0)
    data_quality: DataQuality
    stale: bool = False  # re-fused from samples that did not change

    @property
    def is_masked(self) -> bool:
        return self.emotional_masking_index > 0.6

    @property
    def is_dissociated(self) -> bool:
        return self.dissociation_index > 0.6

    @property
    def is_regulated(self) -> bool:
        return self.emotional_regulation is RegulationState.REGULATED


# ── Dissociation ──────────────────────────────────────────────


class DissociationEpisode(_Frozen):
    """A closed dissociation episode long enough to be recorded."""

    start_time: datetime
    end_time: datetime
    duration: float  # seconds
    max_intensity: float = Field(ge=0.0, le=1.0)

    @property
    def severity(self) -> DissociationSeverity:
        if self.duration > 120 or self.max_intensity > 0.9:
            return DissociationSeverity.SEVERE
        if self.duration > 30 or self.max_intensity > 0.8:
            return DissociationSeverity.MODERATE
        return DissociationSeverity.MILD


class DissociationStatus(_Frozen):
    """Per-tick output of the dissociation tracker."""

    kind: DissociationStatusKind = DissociationStatusKind.NONE
    severity: DissociationSeverity | None = None
    duration: float = 0.0
    intensity: float = 0.0

    @classmethod
    def none(cls) -> DissociationStatus:
        return cls()

    @classmethod
    def active(
        cls, severity: DissociationSeverity, duration: float, intensity: float
    ) -> DissociationStatus:
        return cls(
            kind=DissociationStatusKind.ACTIVE,
            severity=severity,
            duration=duration,
            intensity=intensity,
        )

    @classmethod
    def recent(
        cls, severity: DissociationSeverity, duration: float, intensity: float
    ) -> DissociationStatus:
        return cls(
            kind=DissociationStatusKind.RECENT,
            severity=severity,
            duration=duration,
            intensity=intensity,
        )

    @property
    def is_active(self) -> bool:
        return self.kind is DissociationStatusKind.ACTIVE


# ── Safety ────────────────────────────────────────────────────


class SafetyAlert(_Frozen):
    """An alert raised by the safety monitor for external collaborators."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime
    level: AlertLevel
    event: SafetyEvent
    actions: tuple[SafetyAction, ...] = ()
    recipients: tuple[Recipient, ...] = ()
    message: str = ""
    session_id: str | None = None

    def requires(self, action: SafetyAction) -> bool:
        return action in self.actions


class SafetyAssessment(_Frozen):
    """Everything the safety monitor concluded about a single state."""

    timestamp: datetime
    level: AlertLevel = AlertLevel.NONE
    alert: SafetyAlert | None = None
    needs_intervention: bool = False
    terminate: bool = False
    evaluated: bool = True  # False when the tick was skipped for bad data

    @property
    def requires_calming(self) -> bool:
        if self.needs_intervention:
            return True
        return self.alert is not None and (
            self.alert.requires(SafetyAction.CALMING_INTERVENTION)
            or self.alert.requires(SafetyAction.SESSION_TERMINATION)
        )

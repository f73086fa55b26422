"""Therapy-layer data models: responses, character actions, phases, metrics."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from biomirror.models import EmotionType

# ── Enums ─────────────────────────────────────────────────────


class ResponseType(str, Enum):
    MIRRORING = "mirroring"
    EXPLORATION = "exploration"
    VALIDATION = "validation"
    REGULATION = "regulation"
    GROUNDING = "grounding"
    TRANSFER = "transfer"
    CELEBRATION = "celebration"
    INTEGRATION = "integration"
    TITRATION = "titration"


class InterventionLevel(str, Enum):
    MINIMAL = "minimal"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"
    INTENSIVE = "intensive"


class GroundingTechnique(str, Enum):
    BREATHING = "breathing"
    SENSORY = "sensory"
    MOVEMENT = "movement"
    COGNITIVE = "cognitive"
    NAMING = "naming"


class MovementType(str, Enum):
    GENTLE = "gentle"
    RHYTHMIC = "rhythmic"
    ENERGETIC = "energetic"


class VocalizationType(str, Enum):
    HUM = "hum"
    SIGH = "sigh"
    LAUGH = "laugh"


class AttentionFocus(str, Enum):
    DIRECT = "direct"
    SHARED = "shared"
    AVERTED = "averted"


class SessionPhase(str, Enum):
    """Linear therapeutic progression: connection → … → transfer."""

    CONNECTION = "connection"
    AWARENESS = "awareness"
    INTEGRATION = "integration"
    REGULATION = "regulation"
    TRANSFER = "transfer"

    @property
    def index(self) -> int:
        return _PHASE_ORDER.index(self)

    @property
    def allocation(self) -> float:
        """Share of the total session duration assigned to this phase."""
        return PHASE_ALLOCATIONS[self]

    @property
    def next_phase(self) -> SessionPhase | None:
        i = self.index + 1
        return _PHASE_ORDER[i] if i < len(_PHASE_ORDER) else None


_PHASE_ORDER = list(SessionPhase)

PHASE_ALLOCATIONS: dict[SessionPhase, float] = {
    SessionPhase.CONNECTION: 0.15,
    SessionPhase.AWARENESS: 0.30,
    SessionPhase.INTEGRATION: 0.30,
    SessionPhase.REGULATION: 0.15,
    SessionPhase.TRANSFER: 0.10,
}


def phase_boundaries(
    total_seconds: float, start: SessionPhase = SessionPhase.CONNECTION
) -> list[tuple[SessionPhase, float]]:
    """Offsets (seconds of active time) at which each later phase begins.

    Offsets are cumulative allocations of *total_seconds*.  A session that
    starts after ``CONNECTION`` spreads the whole duration over the remaining
    phases, keeping their relative shares.
    """
    remaining = _PHASE_ORDER[start.index :]
    share = sum(PHASE_ALLOCATIONS[p] for p in remaining)
    boundaries: list[tuple[SessionPhase, float]] = []
    cumulative = 0.0
    for phase in remaining[:-1]:
        cumulative += PHASE_ALLOCATIONS[phase]
        boundaries.append((phase.next_phase, cumulative / share * total_seconds))
    return boundaries


# ── Character actions ─────────────────────────────────────────


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Breathing(_Frozen):
    kind: Literal["breathing"] = "breathing"
    speed: float = Field(ge=0.0, le=1.0)
    depth: float = Field(ge=0.0, le=1.0)


class FacialExpression(_Frozen):
    kind: Literal["facial_expression"] = "facial_expression"
    emotion: EmotionType
    intensity: float = Field(ge=0.0, le=1.0)


class BodyMovement(_Frozen):
    kind: Literal["body_movement"] = "body_movement"
    movement: MovementType
    intensity: float = Field(ge=0.0, le=1.0)


class Vocalization(_Frozen):
    kind: Literal["vocalization"] = "vocalization"
    vocalization: VocalizationType


class Attention(_Frozen):
    kind: Literal["attention"] = "attention"
    focus: AttentionFocus


CharacterAction = Annotated[
    Union[Breathing, FacialExpression, BodyMovement, Vocalization, Attention],
    Field(discriminator="kind"),
]


# ── Responses ─────────────────────────────────────────────────


class TherapeuticResponse(_Frozen):
    """What the companion character should do next."""

    timestamp: datetime
    response_type: ResponseType
    character_emotion: EmotionType
    character_intensity: float = Field(ge=0.0, le=1.0)
    action: CharacterAction
    verbal: str = ""
    nonverbal: str = ""
    intervention_level: InterventionLevel = InterventionLevel.MINIMAL
    target_emotion: EmotionType | None = None
    duration: float = Field(gt=0.0)  # seconds

    def restamped(self, timestamp: datetime) -> TherapeuticResponse:
        return self.model_copy(update={"timestamp": timestamp})

    def expires_at(self) -> datetime:
        return self.timestamp + timedelta(seconds=self.duration)


class ResponsePreferences(_Frozen):
    """User / therapist tuning of the companion's behaviour."""

    mirroring_sensitivity: float = Field(0.8, ge=0.0, le=1.0)
    preferred_grounding_techniques: tuple[GroundingTechnique, ...] = (
        GroundingTechnique.BREATHING,
        GroundingTechnique.SENSORY,
    )
    preferred_intervention_level: InterventionLevel = InterventionLevel.MODERATE

    @property
    def titration_level(self) -> float:
        """How much mirrored intensity is damped in the awareness phase."""
        return 0.4 * (1.0 - self.mirroring_sensitivity)


# ── Session metrics ───────────────────────────────────────────


class SessionMetrics(BaseModel):
    """Derived per-session summary, finalized when the session ends."""

    session_duration: float = 0.0
    state_count: int = 0
    average_coherence_index: float = 0.0
    emotions_expressed: set[EmotionType] = Field(default_factory=set)
    emotional_range_index: float = 0.0
    regulation_capacity: float = 0.0
    regulation_improvement: float = 0.0
    peak_arousal: float = 0.0
    time_of_peak_arousal: datetime | None = None
    regulation_recovery_time: float = 0.0
    dissociation_episode_count: int = 0
    total_dissociation_time: float = 0.0
    percentage_time_in_dissociation: float = 0.0
    interventions_delivered: int = 0
    average_masking_index: float = 0.0
    average_dissociation_index: float = 0.0


# ── Cross-session progress ────────────────────────────────────


class Milestone(str, Enum):
    NO_DISSOCIATION = "no_dissociation"
    HIGH_COHERENCE = "high_coherence"
    HIGH_REGULATION = "high_regulation"


class ProgressMetrics(BaseModel):
    """Running averages over every finalized session of one person."""

    total_sessions: int = 0
    total_therapy_time: float = 0.0  # seconds
    average_coherence: float = 0.0
    average_masking: float = 0.0
    average_dissociation: float = 0.0
    average_regulation_capacity: float = 0.0
    total_dissociation_episodes: int = 0
    emotional_range: float = 0.0  # best session so far
    milestones: set[Milestone] = Field(default_factory=set)


class ProgressUpdate(_Frozen):
    """How one finalized session moved the running averages."""

    session_id: str
    session_date: datetime
    phase: SessionPhase
    phase_changed: bool
    coherence: float
    coherence_change: float
    regulation_capacity: float
    regulation_change: float
    emotional_range: float
    improvements: tuple[str, ...] = ()
    new_milestones: tuple[Milestone, ...] = ()
    recommended_phase: SessionPhase


class ProgressReport(_Frozen):
    metrics: ProgressMetrics
    session_count: int
    last_session_date: datetime | None = None
    recommended_phase: SessionPhase
    recommendations: tuple[str, ...] = ()

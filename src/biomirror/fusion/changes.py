"""Previous-vs-current diff of two fused states."""

from __future__ import annotations

from dataclasses import dataclass

from biomirror.models import IntegratedState

INTENSITY_THRESHOLD = 0.25
AROUSAL_THRESHOLD = 0.2
COHERENCE_THRESHOLD = 0.2
DISSOCIATION_THRESHOLD = 0.2


@dataclass(frozen=True, slots=True)
class StateChange:
    """Which aspects of the fused state moved enough to matter."""

    previous: IntegratedState
    current: IntegratedState
    emotion_changed: bool
    intensity_changed: bool
    arousal_changed: bool
    coherence_changed: bool
    dissociation_changed: bool
    regulation_changed: bool

    @classmethod
    def between(cls, previous: IntegratedState, current: IntegratedState) -> StateChange:
        return cls(
            previous=previous,
            current=current,
            emotion_changed=previous.dominant_emotion is not current.dominant_emotion,
            intensity_changed=abs(
                current.emotional_intensity - previous.emotional_intensity
            ) > INTENSITY_THRESHOLD,
            arousal_changed=abs(current.arousal_level - previous.arousal_level)
            > AROUSAL_THRESHOLD,
            coherence_changed=abs(current.coherence_index - previous.coherence_index)
            > COHERENCE_THRESHOLD,
            dissociation_changed=abs(
                current.dissociation_index - previous.dissociation_index
            ) > DISSOCIATION_THRESHOLD,
            regulation_changed=previous.emotional_regulation
            is not current.emotional_regulation,
        )

    @property
    def arousal_swing(self) -> float:
        return abs(self.current.arousal_level - self.previous.arousal_level)

    @property
    def is_significant(self) -> bool:
        if self.emotion_changed or self.intensity_changed or self.regulation_changed:
            return True
        if self.dissociation_changed and self.current.dissociation_index > 0.5:
            return True
        return self.arousal_changed and self.current.arousal_level > 0.7

"""Synthetic sample sources for simulation and demos.

Each source replays a *scenario*: a timeline of ``(offset_seconds, profile)``
pairs.  A profile is a named archetype of the client's state (calm,
distress, dissociation, masking) from which samples are generated with a
small amount of seeded jitter, so two runs with the same seed produce the
same stream.
"""

from __future__ import annotations

import asyncio
import random
from abc import abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable

import structlog

from biomirror.errors import SourceUnavailableError
from biomirror.models import (
    DetectionQuality,
    EmotionType,
    FacialSample,
    HeartRateMetrics,
    MotionMetrics,
    PhysiologicalSample,
    RespirationMetrics,
)
from biomirror.sources.base import SampleSink, SampleSource

logger = structlog.get_logger(__name__)


# ── Profiles ──────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Profile:
    """Archetypal values a profile centres its samples on."""

    emotion: EmotionType
    intensity: float
    confidence: float
    heart_rate: float
    variability: float  # SDNN, ms
    arousal: float
    freeze: float = 0.0
    respiration_rate: float = 14.0
    quality: float = 0.9


PROFILES: dict[str, Profile] = {
    "calm": Profile(
        emotion=EmotionType.HAPPINESS, intensity=0.6, confidence=0.9,
        heart_rate=72.0, variability=65.0, arousal=0.55,
    ),
    "distress": Profile(
        emotion=EmotionType.FEAR, intensity=0.9, confidence=0.9,
        heart_rate=130.0, variability=18.0, arousal=0.95, respiration_rate=24.0,
    ),
    "dissociation": Profile(
        emotion=EmotionType.NEUTRAL, intensity=0.1, confidence=0.9,
        heart_rate=62.0, variability=15.0, arousal=0.15, freeze=0.8,
        respiration_rate=10.0,
    ),
    "masking": Profile(
        emotion=EmotionType.NEUTRAL, intensity=0.4, confidence=0.9,
        heart_rate=105.0, variability=25.0, arousal=0.8, respiration_rate=20.0,
    ),
}

Timeline = tuple[tuple[float, str], ...]

SCENARIOS: dict[str, Timeline] = {
    "calm": ((0.0, "calm"),),
    "distress": ((0.0, "calm"), (10.0, "distress")),
    "dissociation": ((0.0, "calm"), (10.0, "dissociation"), (50.0, "calm")),
    "masking": ((0.0, "masking"),),
    "mixed": (
        (0.0, "calm"),
        (20.0, "masking"),
        (40.0, "distress"),
        (60.0, "calm"),
        (80.0, "dissociation"),
        (120.0, "calm"),
    ),
}


def profile_at(timeline: Timeline, elapsed: float) -> Profile:
    """Return the profile in effect *elapsed* seconds into *timeline*."""
    name = timeline[0][1]
    for offset, candidate in timeline:
        if elapsed >= offset:
            name = candidate
        else:
            break
    return PROFILES[name]


def _jitter(rng: random.Random, value: float, spread: float, *, lo: float = 0.0, hi: float = 1.0) -> float:
    return min(hi, max(lo, value + rng.uniform(-spread, spread)))


# ── Sources ───────────────────────────────────────────────────


class _SyntheticSource(SampleSource):
    """Shared timeline, clock and emission loop."""

    def __init__(
        self,
        scenario: str | Timeline = "calm",
        *,
        interval: float = 0.2,
        seed: int | None = None,
        available: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__()
        if isinstance(scenario, str):
            if scenario not in SCENARIOS:
                raise ValueError(f"Unknown scenario '{scenario}'")
            timeline = SCENARIOS[scenario]
        else:
            timeline = tuple(scenario)
        self._timeline = timeline
        self._interval = interval
        self._rng = random.Random(seed)
        self._available = available
        self._clock = clock or (lambda: datetime.now(UTC))
        self._task: asyncio.Task | None = None
        self._origin: datetime | None = None
        self.emitted = 0

    async def start(self, sink: SampleSink) -> None:
        if not self._available:
            raise SourceUnavailableError(self.name, "device not available")
        if self._task is not None:
            return
        self._origin = self._clock()
        self._task = asyncio.create_task(self._run(sink), name=f"source.{self.name}")
        logger.info("source.started", source=self.name, interval=self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("source.stopped", source=self.name, emitted=self.emitted)

    @property
    def running(self) -> bool:
        return self._task is not None

    async def _run(self, sink: SampleSink) -> None:
        while True:
            if not self.paused:
                now = self._clock()
                elapsed = (now - self._origin).total_seconds() if self._origin else 0.0
                sink(self.sample(now, elapsed))
                self.emitted += 1
            await asyncio.sleep(self._interval)

    @abstractmethod
    def sample(self, now: datetime, elapsed: float = 0.0):
        """Build the sample for *elapsed* seconds into the scenario."""


class SyntheticFacialSource(_SyntheticSource):
    name = "synthetic_facial"

    def sample(self, now: datetime, elapsed: float = 0.0) -> FacialSample:
        """Generate the facial sample for *elapsed* seconds into the scenario."""
        profile = profile_at(self._timeline, elapsed)
        return FacialSample(
            timestamp=now,
            primary_emotion=profile.emotion,
            primary_intensity=_jitter(self._rng, profile.intensity, 0.05),
            confidence=_jitter(self._rng, profile.confidence, 0.03),
            detection_quality=DetectionQuality.GOOD,
        )


class SyntheticPhysiologicalSource(_SyntheticSource):
    name = "synthetic_physiological"

    def sample(self, now: datetime, elapsed: float = 0.0) -> PhysiologicalSample:
        """Generate the physiological sample for *elapsed* seconds into the scenario."""
        profile = profile_at(self._timeline, elapsed)
        rng = self._rng
        return PhysiologicalSample(
            timestamp=now,
            heart=HeartRateMetrics(
                heart_rate=_jitter(rng, profile.heart_rate, 2.0, hi=220.0),
                variability=_jitter(rng, profile.variability, 2.0, hi=200.0),
                quality=profile.quality,
            ),
            motion=MotionMetrics(
                freeze_index=_jitter(rng, profile.freeze, 0.03) if profile.freeze else 0.0,
                quality=profile.quality,
            ),
            respiration=RespirationMetrics(
                rate=_jitter(rng, profile.respiration_rate, 1.0, hi=60.0),
                quality=profile.quality,
            ),
            arousal_level=_jitter(rng, profile.arousal, 0.03),
            quality_index=profile.quality,
        )

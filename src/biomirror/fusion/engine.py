"""State fusion engine — turns two asynchronous sample streams into one state.

Architecture
~~~~~~~~~~~~
Facial and physiological collaborators write into single-slot
:class:`~biomirror.streaming.pipeline.LatestValue` cells at their own rate.
A fixed-rate tick (5 Hz by default, driven by the session's timer service)
calls :meth:`StateFusionEngine.tick`, which reads the latest pair, scores it
with :mod:`biomirror.fusion.scoring` and publishes one
:class:`~biomirror.models.IntegratedState` on :attr:`StateFusionEngine.states`.

Staleness
~~~~~~~~~
When neither cell changed since the previous emission the pair is *stale*.
``staleness_policy="hold"`` re-fuses it and marks the state ``stale=True``;
``"skip"`` suppresses the emission.  ``max_sample_age`` additionally treats a
pair as stale when either sample is older than the given number of seconds.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Callable, Literal

import structlog

from biomirror.fusion import scoring
from biomirror.models import FacialSample, IntegratedState, PhysiologicalSample
from biomirror.streaming.pipeline import Feed, LatestValue

logger = structlog.get_logger(__name__)

StalenessPolicy = Literal["hold", "skip"]

DEFAULT_INTERVAL_SECONDS = 0.2


def fuse(
    facial: FacialSample,
    physio: PhysiologicalSample,
    timestamp: datetime,
    *,
    stale: bool = False,
) -> IntegratedState:
    """Score a single sample pair into an :class:`IntegratedState`."""
    coherence = scoring.coherence_index(facial, physio)
    dissociation = scoring.dissociation_index(facial, physio, coherence)

    return IntegratedState(
        timestamp=timestamp,
        facial=facial,
        physiological=physio,
        coherence_index=coherence,
        emotional_masking_index=scoring.masking_index(facial, physio, coherence),
        dissociation_index=dissociation,
        dominant_emotion=scoring.dominant_emotion(facial, physio, dissociation),
        emotional_intensity=scoring.emotional_intensity(facial, physio),
        emotional_regulation=scoring.regulation_state(physio, coherence),
        arousal_level=scoring.clamp(physio.arousal_level),
        data_quality=scoring.data_quality(facial, physio),
        stale=stale,
    )


class StateFusionEngine:
    """Fixed-tick fusion of the latest facial and physiological samples.

    Usage::

        engine = StateFusionEngine()
        engine.states.subscribe(print)
        engine.submit_facial(facial)
        engine.submit_physiological(physio)
        engine.tick()
    """

    def __init__(
        self,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        staleness_policy: StalenessPolicy = "hold",
        max_sample_age: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if staleness_policy not in ("hold", "skip"):
            raise ValueError(f"Unknown staleness policy: {staleness_policy!r}")
        self.interval = interval
        self.staleness_policy: StalenessPolicy = staleness_policy
        self.max_sample_age = max_sample_age
        self._clock = clock or (lambda: datetime.now(UTC))

        self._facial: LatestValue[FacialSample] = LatestValue()
        self._physio: LatestValue[PhysiologicalSample] = LatestValue()
        self._emitted_versions: tuple[int, int] | None = None

        self.states: Feed[IntegratedState] = Feed("fusion.states")
        self._stats = {"ticks": 0, "emitted": 0, "stale": 0, "skipped": 0}

    # ── Inbound ───────────────────────────────────────────────

    def submit_facial(self, sample: FacialSample) -> None:
        self._facial.set(sample)

    def submit_physiological(self, sample: PhysiologicalSample) -> None:
        self._physio.set(sample)

    @property
    def latest_facial(self) -> FacialSample | None:
        return self._facial.get()

    @property
    def latest_physiological(self) -> PhysiologicalSample | None:
        return self._physio.get()

    # ── Tick ──────────────────────────────────────────────────

    def tick(self, now: datetime | None = None) -> IntegratedState | None:
        """Fuse the latest pair and publish it.

        Returns ``None`` (and publishes nothing) when either input has not
        produced a sample yet, or when a stale pair is suppressed.
        """
        now = now or self._clock()
        self._stats["ticks"] += 1

        facial = self._facial.get()
        physio = self._physio.get()
        if facial is None or physio is None:
            return None

        stale = self._is_stale(facial, physio, now)
        if stale and self.staleness_policy == "skip":
            self._stats["skipped"] += 1
            return None

        state = fuse(facial, physio, now, stale=stale)
        self._emitted_versions = (self._facial.version, self._physio.version)
        self._stats["emitted"] += 1
        if stale:
            self._stats["stale"] += 1

        self.states.publish(state)
        return state

    def _is_stale(
        self,
        facial: FacialSample,
        physio: PhysiologicalSample,
        now: datetime,
    ) -> bool:
        if self._emitted_versions == (self._facial.version, self._physio.version):
            return True
        if self.max_sample_age is not None:
            limit = timedelta(seconds=self.max_sample_age)
            if now - facial.timestamp > limit or now - physio.timestamp > limit:
                return True
        return False

    # ── Lifecycle ─────────────────────────────────────────────

    def reset(self) -> None:
        """Forget both latest samples (subscribers are kept)."""
        self._facial.clear()
        self._physio.clear()
        self._emitted_versions = None
        logger.debug("fusion.reset")

    @property
    def stats(self) -> dict[str, int]:
        return dict(self._stats)

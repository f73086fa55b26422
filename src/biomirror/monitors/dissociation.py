"""Dissociation episode tracker.

A two-state machine (idle / active) over the fused ``dissociation_index``:

* idle → active when the index rises above the threshold (0.6);
* active → active while it stays above, raising the running max intensity;
* active → idle when it drops to the threshold or below.  Episodes lasting
  at least :data:`MILD_SECONDS` are recorded and reported as ``recent``;
  shorter ones are discarded and reported as ``none``.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime

import structlog

from biomirror.models import (
    DissociationEpisode,
    DissociationSeverity,
    DissociationStatus,
    IntegratedState,
)
from biomirror.streaming.pipeline import Feed

logger = structlog.get_logger(__name__)

DISSOCIATION_THRESHOLD = 0.6

MILD_SECONDS = 5.0
MODERATE_SECONDS = 30.0
SEVERE_SECONDS = 120.0

DEFAULT_HISTORY_SIZE = 20


def active_severity(duration: float) -> DissociationSeverity:
    """Severity of an open episode from its elapsed duration alone."""
    if duration >= SEVERE_SECONDS:
        return DissociationSeverity.SEVERE
    if duration >= MODERATE_SECONDS:
        return DissociationSeverity.MODERATE
    if duration >= MILD_SECONDS:
        return DissociationSeverity.MILD
    return DissociationSeverity.POTENTIAL


class DissociationTracker:
    """Track dissociation episodes across the fused-state stream."""

    def __init__(
        self,
        *,
        threshold: float = DISSOCIATION_THRESHOLD,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self.threshold = threshold
        self._start: datetime | None = None
        self._max_intensity = 0.0
        self._history: deque[DissociationEpisode] = deque(maxlen=history_size)

        self.statuses: Feed[DissociationStatus] = Feed("dissociation.statuses")
        self.episodes: Feed[DissociationEpisode] = Feed("dissociation.episodes")

    # ── Processing ────────────────────────────────────────────

    def process(self, state: IntegratedState) -> DissociationStatus:
        """Advance the tracker with one fused state and publish its status."""
        status = self.update(state.dissociation_index, state.timestamp)
        self.statuses.publish(status)
        return status

    def update(self, index: float, now: datetime) -> DissociationStatus:
        if index > self.threshold:
            if self._start is None:
                self._start = now
                self._max_intensity = index
                logger.info("dissociation.episode_started", intensity=index)
            else:
                self._max_intensity = max(self._max_intensity, index)
            duration = (now - self._start).total_seconds()
            return DissociationStatus.active(active_severity(duration), duration, index)

        if self._start is None:
            return DissociationStatus.none()
        return self._close(now)

    def flush(self, now: datetime) -> DissociationStatus:
        """Close an open episode at *now*, e.g. when the session ends."""
        if self._start is None:
            return DissociationStatus.none()
        return self._close(now)

    def _close(self, now: datetime) -> DissociationStatus:
        start, max_intensity = self._start, self._max_intensity
        self._start = None
        self._max_intensity = 0.0

        duration = (now - start).total_seconds()
        if duration < MILD_SECONDS:
            logger.debug("dissociation.episode_discarded", duration=duration)
            return DissociationStatus.none()

        episode = DissociationEpisode(
            start_time=start,
            end_time=now,
            duration=duration,
            max_intensity=max_intensity,
        )
        self._history.append(episode)
        logger.info(
            "dissociation.episode_recorded",
            duration=duration,
            max_intensity=max_intensity,
            severity=episode.severity.value,
        )
        self.episodes.publish(episode)
        return DissociationStatus.recent(episode.severity, duration, max_intensity)

    # ── Queries ───────────────────────────────────────────────

    @property
    def is_active(self) -> bool:
        return self._start is not None

    @property
    def history(self) -> list[DissociationEpisode]:
        return list(self._history)

    def episodes_since(self, since: datetime) -> list[DissociationEpisode]:
        return [e for e in self._history if e.start_time >= since]

    def total_dissociation_time(self, since: datetime | None = None) -> float:
        """Summed duration (seconds) of recorded episodes."""
        episodes = self._history if since is None else self.episodes_since(since)
        return sum(e.duration for e in episodes)

    def reset(self) -> None:
        """Drop the open episode and all recorded history."""
        self._start = None
        self._max_intensity = 0.0
        self._history.clear()

"""Tests for the dissociation episode tracker."""

from datetime import timedelta

import pytest

from biomirror.models import DissociationSeverity, DissociationStatusKind
from biomirror.monitors.dissociation import DissociationTracker, active_severity


def _feed(tracker, t0, index, seconds, step=0.5, offset=0.0):
    """Drive *tracker* with a constant index; return the statuses."""
    statuses = []
    t = offset
    while t < offset + seconds:
        statuses.append(tracker.update(index, t0 + timedelta(seconds=t)))
        t += step
    return statuses


class TestDissociationTracker:
    """Unit tests for :class:`DissociationTracker`."""

    def test_six_second_episode_is_recorded_as_mild(self, t0):
        tracker = DissociationTracker()
        recorded = []
        tracker.episodes.subscribe(recorded.append)

        statuses = _feed(tracker, t0, 0.7, 6.0)
        assert all(s.kind is DissociationStatusKind.ACTIVE for s in statuses)
        assert statuses[0].severity is DissociationSeverity.POTENTIAL
        assert statuses[9].severity is DissociationSeverity.POTENTIAL  # t = 4.5 s
        assert statuses[10].severity is DissociationSeverity.MILD  # t = 5.0 s

        closed = tracker.update(0.2, t0 + timedelta(seconds=6))
        assert closed.kind is DissociationStatusKind.RECENT
        assert closed.severity is DissociationSeverity.MILD
        assert closed.duration == pytest.approx(6.0)
        assert closed.intensity == pytest.approx(0.7)

        assert len(tracker.history) == 1
        assert recorded == tracker.history
        assert tracker.is_active is False

    def test_short_spike_is_discarded(self, t0):
        tracker = DissociationTracker()
        _feed(tracker, t0, 0.7, 3.0)

        closed = tracker.update(0.2, t0 + timedelta(seconds=3))
        assert closed.kind is DissociationStatusKind.NONE
        assert tracker.history == []

    def test_max_intensity_tracks_peak(self, t0):
        tracker = DissociationTracker()
        tracker.update(0.65, t0)
        tracker.update(0.95, t0 + timedelta(seconds=2))
        tracker.update(0.7, t0 + timedelta(seconds=4))
        tracker.update(0.1, t0 + timedelta(seconds=8))

        episode = tracker.history[0]
        assert episode.max_intensity == pytest.approx(0.95)
        # High intensity alone makes a short episode severe.
        assert episode.severity is DissociationSeverity.SEVERE

    def test_threshold_is_exclusive(self, t0):
        tracker = DissociationTracker()
        assert tracker.update(0.6, t0).kind is DissociationStatusKind.NONE
        assert tracker.is_active is False

    def test_flush_closes_open_episode(self, t0):
        tracker = DissociationTracker()
        _feed(tracker, t0, 0.75, 40.0, step=1.0)

        status = tracker.flush(t0 + timedelta(seconds=40))
        assert status.severity is DissociationSeverity.MODERATE
        assert tracker.total_dissociation_time() == pytest.approx(40.0)
        assert tracker.flush(t0 + timedelta(seconds=41)).kind is DissociationStatusKind.NONE

    def test_history_queries(self, t0):
        tracker = DissociationTracker(history_size=2)
        for start in (0, 20, 40):
            _feed(tracker, t0, 0.7, 6.0, step=1.0, offset=start)
            tracker.update(0.1, t0 + timedelta(seconds=start + 6))

        assert len(tracker.history) == 2
        assert len(tracker.episodes_since(t0 + timedelta(seconds=30))) == 1
        assert tracker.total_dissociation_time(t0 + timedelta(seconds=30)) == pytest.approx(6.0)

        tracker.reset()
        assert tracker.history == []

    def test_process_publishes_status(self, make_state, t0):
        tracker = DissociationTracker()
        statuses = []
        tracker.statuses.subscribe(statuses.append)
        tracker.process(make_state(t0, dissociation=0.9))
        assert statuses[0].is_active


class TestActiveSeverity:
    @pytest.mark.parametrize(
        ("duration", "expected"),
        [
            (0.0, DissociationSeverity.POTENTIAL),
            (4.9, DissociationSeverity.POTENTIAL),
            (5.0, DissociationSeverity.MILD),
            (30.0, DissociationSeverity.MODERATE),
            (120.0, DissociationSeverity.SEVERE),
        ],
    )
    def test_escalates_with_duration(self, duration, expected):
        assert active_severity(duration) is expected

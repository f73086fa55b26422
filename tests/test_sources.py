"""Tests for the synthetic sample sources."""

import asyncio

import pytest

from biomirror.errors import SourceUnavailableError
from biomirror.fusion.engine import fuse
from biomirror.models import AlertLevel, EmotionType
from biomirror.monitors.safety import SafetyMonitor
from biomirror.sources.synthetic import (
    SCENARIOS,
    SyntheticFacialSource,
    SyntheticPhysiologicalSource,
    _SyntheticSource,
    profile_at,
)


class TestScenarios:
    def test_timeline_switches_profiles(self):
        timeline = SCENARIOS["distress"]
        assert profile_at(timeline, 5.0).emotion is EmotionType.HAPPINESS
        assert profile_at(timeline, 15.0).emotion is EmotionType.FEAR

    def test_unknown_scenario_rejected(self):
        with pytest.raises(ValueError):
            SyntheticFacialSource("panic")

    def test_same_seed_same_samples(self, t0):
        a = SyntheticPhysiologicalSource("calm", seed=3)
        b = SyntheticPhysiologicalSource("calm", seed=3)
        assert a.sample(t0) == b.sample(t0)

    def test_scenario_without_sample_builder_cannot_be_built(self):
        class SilentSource(_SyntheticSource):
            name = "silent"

        with pytest.raises(TypeError):
            SilentSource("calm")


class TestSyntheticSamples:
    """Synthetic profiles should drive the core into the intended states."""

    def test_distress_profile_raises_high_alert(self, t0):
        facial = SyntheticFacialSource("distress", seed=1).sample(t0, 20.0)
        physio = SyntheticPhysiologicalSource("distress", seed=2).sample(t0, 20.0)
        state = fuse(facial, physio, t0)

        monitor = SafetyMonitor()
        monitor.start_monitoring(t0)
        alert = monitor.evaluate(state)
        assert alert.level is AlertLevel.HIGH

    def test_dissociation_profile_reads_as_dissociated(self, t0):
        facial = SyntheticFacialSource("dissociation", seed=1).sample(t0, 20.0)
        physio = SyntheticPhysiologicalSource("dissociation", seed=2).sample(t0, 20.0)
        assert fuse(facial, physio, t0).is_dissociated

    def test_masking_profile_reads_as_masked(self, t0):
        facial = SyntheticFacialSource("masking", seed=1).sample(t0)
        physio = SyntheticPhysiologicalSource("masking", seed=2).sample(t0)
        assert fuse(facial, physio, t0).is_masked


class TestSourceLifecycle:
    @pytest.mark.asyncio
    async def test_streams_until_stopped(self):
        received = []
        source = SyntheticFacialSource("calm", interval=0.01, seed=1)

        await source.start(received.append)
        await asyncio.sleep(0.05)
        await source.stop()
        count = len(received)
        await asyncio.sleep(0.03)

        assert count >= 2
        assert len(received) == count
        assert source.running is False

    @pytest.mark.asyncio
    async def test_paused_source_forwards_nothing(self):
        received = []
        source = SyntheticPhysiologicalSource("calm", interval=0.01, seed=1)
        source.pause()

        await source.start(received.append)
        await asyncio.sleep(0.03)
        await source.stop()

        assert received == []

    @pytest.mark.asyncio
    async def test_unavailable_source_raises(self):
        source = SyntheticFacialSource("calm", available=False)
        with pytest.raises(SourceUnavailableError):
            await source.start(lambda sample: None)
        assert source.running is False

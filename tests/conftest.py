"""Shared pytest fixtures."""

from __future__ import annotations

import random
from datetime import UTC, datetime

import pytest

from biomirror.models import (
    DataQuality,
    DetectionQuality,
    EmotionType,
    FacialSample,
    HeartRateMetrics,
    IntegratedState,
    MotionMetrics,
    PhysiologicalSample,
    RegulationState,
)
from biomirror.notifications.handlers import NotificationDispatcher
from biomirror.therapy.generator import ResponseGenerator
from biomirror.therapy.scheduler import ResponseScheduler

T0 = datetime(2026, 3, 1, 10, 0, 0, tzinfo=UTC)


@pytest.fixture
def t0() -> datetime:
    return T0


@pytest.fixture
def make_facial():
    def _make(
        emotion: EmotionType = EmotionType.NEUTRAL,
        intensity: float = 0.5,
        confidence: float = 0.9,
        *,
        quality: DetectionQuality = DetectionQuality.GOOD,
        timestamp: datetime = T0,
    ) -> FacialSample:
        return FacialSample(
            timestamp=timestamp,
            primary_emotion=emotion,
            primary_intensity=intensity,
            confidence=confidence,
            detection_quality=quality,
        )

    return _make


@pytest.fixture
def make_physio():
    def _make(
        arousal: float = 0.5,
        *,
        heart_rate: float = 75.0,
        variability: float = 40.0,
        freeze: float = 0.0,
        quality: float = 0.9,
        timestamp: datetime = T0,
    ) -> PhysiologicalSample:
        return PhysiologicalSample(
            timestamp=timestamp,
            heart=HeartRateMetrics(
                heart_rate=heart_rate, variability=variability, quality=quality
            ),
            motion=MotionMetrics(freeze_index=freeze, quality=quality),
            arousal_level=arousal,
            quality_index=quality,
        )

    return _make


@pytest.fixture
def make_state(make_facial, make_physio):
    """Build an :class:`IntegratedState` directly, bypassing the scoring rules."""

    def _make(
        timestamp: datetime = T0,
        *,
        emotion: EmotionType = EmotionType.NEUTRAL,
        intensity: float = 0.3,
        arousal: float = 0.4,
        coherence: float = 0.8,
        masking: float = 0.2,
        dissociation: float = 0.1,
        regulation: RegulationState = RegulationState.REGULATED,
        quality: DataQuality = DataQuality.GOOD,
        heart_rate: float = 75.0,
    ) -> IntegratedState:
        return IntegratedState(
            timestamp=timestamp,
            facial=make_facial(emotion, intensity, timestamp=timestamp),
            physiological=make_physio(arousal, heart_rate=heart_rate, timestamp=timestamp),
            coherence_index=coherence,
            emotional_masking_index=masking,
            dissociation_index=dissociation,
            dominant_emotion=emotion,
            emotional_intensity=intensity,
            emotional_regulation=regulation,
            arousal_level=arousal,
            data_quality=quality,
        )

    return _make


@pytest.fixture
def dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


@pytest.fixture
def generator() -> ResponseGenerator:
    return ResponseGenerator()


@pytest.fixture
def response_scheduler(generator) -> ResponseScheduler:
    scheduler = ResponseScheduler(generator, sensitivity=1.0, rng=random.Random(7))
    scheduler.start()
    return scheduler

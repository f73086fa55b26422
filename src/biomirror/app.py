"""Composition root — builds a fully wired :class:`SessionCoordinator`.

Nothing in the package reaches for a global registry; every component is
constructed here from :class:`~biomirror.config.Settings` and handed to the
coordinator explicitly.
"""

from __future__ import annotations

import random
from datetime import datetime
from typing import Callable

import structlog

from biomirror.config import Settings, get_settings
from biomirror.fusion.engine import StateFusionEngine
from biomirror.fusion.history import StateHistory
from biomirror.monitors.dissociation import DissociationTracker
from biomirror.monitors.safety import SafetyMonitor
from biomirror.notifications.handlers import NotificationDispatcher, create_dispatcher
from biomirror.notifications.outbox import AlertOutbox
from biomirror.scheduler.service import TimerService
from biomirror.sources.base import SampleSource
from biomirror.storage.sink import InMemoryRecordSink, RecordSink
from biomirror.therapy.coordinator import SessionCoordinator
from biomirror.therapy.generator import ResponseGenerator
from biomirror.therapy.models import ResponsePreferences
from biomirror.therapy.progress import ProgressTracker
from biomirror.therapy.scheduler import ResponseScheduler

logger = structlog.get_logger(__name__)


def create_coordinator(
    settings: Settings | None = None,
    *,
    facial_source: SampleSource | None = None,
    physiological_source: SampleSource | None = None,
    sink: RecordSink | None = None,
    dispatcher: NotificationDispatcher | None = None,
    clock: Callable[[], datetime] | None = None,
    rng: random.Random | None = None,
    progress: ProgressTracker | None = None,
) -> SessionCoordinator:
    """Wire engine, monitors, scheduler, notifications and timers together."""
    settings = settings or get_settings()

    # 1. Fusion
    engine = StateFusionEngine(
        interval=settings.fusion_interval_seconds,
        staleness_policy=settings.fusion_staleness_policy,
        max_sample_age=settings.fusion_max_sample_age_seconds,
        clock=clock,
    )
    history = StateHistory(maxlen=settings.state_history_size)

    # 2. Monitors
    tracker = DissociationTracker(history_size=settings.dissociation_history_size)
    safety = SafetyMonitor(clock=clock)

    # 3. Responses
    generator = ResponseGenerator(
        ResponsePreferences(mirroring_sensitivity=settings.mirroring_sensitivity)
    )
    scheduler = ResponseScheduler(
        generator,
        sensitivity=settings.response_sensitivity,
        queue_size=settings.response_queue_size,
        rng=rng or random.Random(settings.random_seed),
        clock=clock,
    )

    # 4. Notifications
    outbox = AlertOutbox(dispatcher or create_dispatcher(settings))

    coordinator = SessionCoordinator(
        engine=engine,
        tracker=tracker,
        safety=safety,
        scheduler=scheduler,
        history=history,
        timers=TimerService(),
        facial_source=facial_source,
        physiological_source=physiological_source,
        sink=sink if sink is not None else InMemoryRecordSink(),
        outbox=outbox,
        progress=progress,
        response_interval=settings.response_tick_seconds,
        default_duration=settings.default_session_seconds,
        auto_end_on_termination=settings.auto_end_on_termination,
        clock=clock,
    )
    logger.debug(
        "app.coordinator_created",
        fusion_interval=settings.fusion_interval_seconds,
        staleness_policy=settings.fusion_staleness_policy,
        sensitivity=settings.response_sensitivity,
    )
    return coordinator

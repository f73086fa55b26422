"""Therapy sub-package — sessions, response generation and scheduling."""

from biomirror.therapy.coordinator import SessionCoordinator, SessionProgress, SessionState
from biomirror.therapy.generator import ResponseGenerator
from biomirror.therapy.models import SessionPhase, TherapeuticResponse
from biomirror.therapy.progress import ProgressTracker
from biomirror.therapy.scheduler import ResponseScheduler
from biomirror.therapy.session import TherapeuticSession

__all__ = [
    "ProgressTracker",
    "ResponseGenerator",
    "ResponseScheduler",
    "SessionCoordinator",
    "SessionPhase",
    "SessionProgress",
    "SessionState",
    "TherapeuticResponse",
    "TherapeuticSession",
]

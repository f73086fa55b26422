"""Exception hierarchy for the session control surface.

Degraded or missing sensor data is never raised as an error; only
startup failures and misuse of the control surface are.
"""

from __future__ import annotations


class BioMirrorError(Exception):
    """Base class for all biomirror errors."""


class SourceUnavailableError(BioMirrorError):
    """A sample source (camera, watch, permission) could not be started."""

    def __init__(self, source: str, reason: str = "") -> None:
        self.source = source
        self.reason = reason
        message = f"Sample source '{source}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SessionStateError(BioMirrorError):
    """A control operation was requested in a session state that forbids it."""


class PhaseTransitionError(BioMirrorError):
    """A phase change would move the session backwards."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move session from phase '{current}' back to '{requested}'")

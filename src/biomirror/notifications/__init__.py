"""Notification sub-package — multi-channel safety alert delivery."""

from biomirror.notifications.handlers import (
    NotificationDispatcher,
    NotificationHandler,
    create_dispatcher,
)
from biomirror.notifications.outbox import AlertOutbox

__all__ = ["AlertOutbox", "NotificationDispatcher", "NotificationHandler", "create_dispatcher"]

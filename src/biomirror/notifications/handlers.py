"""Notification handlers — log and webhook delivery of safety alerts.

Architecture
~~~~~~~~~~~~
* **NotificationHandler** — abstract base for delivery channels.
* **LogHandler / WebhookHandler** — concrete channels.
* **NotificationDispatcher** — fan-out with error-isolation and results.
* **create_dispatcher()** — factory that wires handlers from settings.

Recipients
~~~~~~~~~~
Every :class:`~biomirror.models.SafetyAlert` names its recipients
(therapist, guardian).  A ``WebhookHandler`` built with ``recipients=`` only
handles alerts addressed to at least one of them, so the therapist and the
guardian collaborators can each be given their own endpoint.  A recipient
that no dedicated channel reached is reported in
:attr:`DispatchResult.unreached` and logged as ``notification.unreached``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import httpx
import structlog

from biomirror.models import Recipient

if TYPE_CHECKING:
    from biomirror.config import Settings
    from biomirror.models import SafetyAlert

logger = structlog.get_logger(__name__)


# ── Dispatch result ───────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DispatchResult:
    """Outcome of delivering one alert: channels used and recipients missed."""

    alert_id: str | None
    sent: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    unreached: list[Recipient] = field(default_factory=list)

    @property
    def all_ok(self) -> bool:
        return not self.failed


# ── Abstract handler ──────────────────────────────────────────


class NotificationHandler(ABC):
    """Contract for alert delivery channels.

    ``recipients`` is the set of people this channel actually reaches;
    ``None`` means the channel is a generic sink (such as the log) that
    accepts every alert but delivers it to nobody in particular.
    """

    name: str = "base"
    recipients: frozenset[Recipient] | None = None

    @abstractmethod
    async def send(self, alert: SafetyAlert) -> bool:
        """Deliver an alert.  Return ``True`` on success."""

    def should_handle(self, alert: SafetyAlert) -> bool:
        if self.recipients is None:
            return True
        return bool(self.recipients.intersection(alert.recipients))


# ── Concrete handlers ────────────────────────────────────────


class LogHandler(NotificationHandler):
    """Write alerts to the structured log (always enabled)."""

    name = "log"

    async def send(self, alert: SafetyAlert) -> bool:
        logger.info(
            "notification.log",
            session_id=alert.session_id,
            level=alert.level.name,
            trigger=alert.event.value,
            actions=[a.value for a in alert.actions],
            recipients=[r.value for r in alert.recipients],
            message=alert.message,
        )
        return True


class WebhookHandler(NotificationHandler):
    """POST alert JSON to an external webhook URL."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        recipients: set[Recipient] | None = None,
        name: str = "webhook",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self.recipients = frozenset(recipients) if recipients else None
        self._transport = transport
        self.name = name

    async def send(self, alert: SafetyAlert) -> bool:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._url, json=alert.model_dump(mode="json"),
                )
                resp.raise_for_status()
            logger.info("notification.webhook_sent", url=self._url, alert_id=alert.id)
            return True
        except Exception as exc:
            logger.error("notification.webhook_failed", url=self._url, error=str(exc))
            return False


# ── Dispatcher ────────────────────────────────────────────────


class NotificationDispatcher:
    """Fan-out alerts to registered handlers with error isolation.

    Each handler is invoked independently — a failure in one channel
    never blocks delivery to the others.
    """

    def __init__(self, *, handlers: list[NotificationHandler] | None = None) -> None:
        self._handlers: list[NotificationHandler] = handlers or [LogHandler()]

    # ── Handler management ────────────────────────────────────

    def add_handler(self, handler: NotificationHandler) -> None:
        self._handlers.append(handler)

    def remove_handler(self, name: str) -> bool:
        """Remove the first handler matching *name*. Return ``True`` if found."""
        for i, h in enumerate(self._handlers):
            if h.name == name:
                self._handlers.pop(i)
                return True
        return False

    @property
    def handler_names(self) -> list[str]:
        """List registered handler names (useful for debugging / tests)."""
        return [h.name for h in self._handlers]

    # ── Dispatch ──────────────────────────────────────────────

    async def dispatch(self, alert: SafetyAlert) -> DispatchResult:
        """Offer *alert* to every matching channel and record who was reached.

        A channel that raises counts as failed; the remaining channels still
        run.
        """
        sent: list[str] = []
        failed: list[str] = []
        reached: set[Recipient] = set()

        for handler in self._handlers:
            if not handler.should_handle(alert):
                continue
            try:
                delivered = await handler.send(alert)
            except Exception:
                logger.exception(
                    "notification.handler_error",
                    handler=handler.name,
                    alert_id=alert.id,
                )
                delivered = False

            if not delivered:
                failed.append(handler.name)
                continue
            sent.append(handler.name)
            if handler.recipients is not None:
                reached.update(handler.recipients)

        unreached = [r for r in alert.recipients if r not in reached]
        if failed:
            logger.warning(
                "notification.partial_failure", alert_id=alert.id, failed=failed
            )
        if unreached:
            logger.warning(
                "notification.unreached",
                alert_id=alert.id,
                level=alert.level.name,
                recipients=[r.value for r in unreached],
            )
        return DispatchResult(
            alert_id=alert.id, sent=sent, failed=failed, unreached=unreached
        )


# ── Factory ───────────────────────────────────────────────────


def create_dispatcher(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> NotificationDispatcher:
    """Build a :class:`NotificationDispatcher` wired from application settings.

    * **LogHandler** is always registered.
    * A therapist **WebhookHandler** is added when
      ``settings.therapist_webhook_url`` is non-empty.
    * A guardian **WebhookHandler** is added when
      ``settings.guardian_webhook_url`` is non-empty.
    """
    dispatcher = NotificationDispatcher()

    if settings.therapist_webhook_url:
        dispatcher.add_handler(
            WebhookHandler(
                settings.therapist_webhook_url,
                timeout=settings.webhook_timeout_seconds,
                recipients={Recipient.THERAPIST},
                name="therapist_webhook",
                transport=transport,
            ),
        )

    if settings.guardian_webhook_url:
        dispatcher.add_handler(
            WebhookHandler(
                settings.guardian_webhook_url,
                timeout=settings.webhook_timeout_seconds,
                recipients={Recipient.GUARDIAN},
                name="guardian_webhook",
                transport=transport,
            ),
        )

    return dispatcher

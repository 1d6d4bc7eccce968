from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Protocol

logger = logging.getLogger(__name__)

CAMPAIGN_OPENED = "campaign_opened"
CAMPAIGN_CLOSED = "campaign_closed"
POSITION_CHANGE_REQUESTED = "position_change_requested"
ESCALATION_REQUIRED = "escalation_required"
STATISTICS_RESET = "statistics_reset"
APPEAL_SUBMITTED = "appeal_submitted"
APPEAL_REVIEWED = "appeal_reviewed"

EVENTS = frozenset(
    {
        CAMPAIGN_OPENED,
        CAMPAIGN_CLOSED,
        POSITION_CHANGE_REQUESTED,
        ESCALATION_REQUIRED,
        STATISTICS_RESET,
        APPEAL_SUBMITTED,
        APPEAL_REVIEWED,
    }
)


class Notifier(Protocol):
    """Fire-and-forget sink for campaign events; never part of correctness."""

    def notify(self, event: str, payload: Mapping[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def notify(self, event: str, payload: Mapping[str, Any]) -> None:
        logger.info("notification %s: %s", event, dict(payload))


class CeleryNotifier(Notifier):
    """Hands events to a Celery task (see tasks.send_notification_task)."""

    def __init__(self, enqueue: Callable[[str, dict], Any]):
        self._enqueue = enqueue

    def notify(self, event: str, payload: Mapping[str, Any]) -> None:
        self._enqueue(event, dict(payload))


def safe_notify(notifier: Notifier, event: str, payload: Mapping[str, Any]) -> None:
    if event not in EVENTS:
        raise ValueError(f"unknown notification event: {event}")
    try:
        notifier.notify(event, payload)
    except Exception:
        logger.exception("Notification %s could not be delivered", event)

"""
Celery app and scheduled jobs for the voting engine.

Usage:
    celery -A src.promotion_voting.promotion_voting.tasks.celery_app worker --loglevel=INFO
    celery -A src.promotion_voting.promotion_voting.tasks.celery_app beat --loglevel=INFO
"""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from .common.logging_utils import setup_logging
from .container import Container
from .notifications.notifier import CeleryNotifier

logger = logging.getLogger(__name__)

BEAT_SCHEDULE = {
    "activate-due-campaigns": {
        "task": "promotion_voting.activate_due_campaigns",
        "schedule": crontab(minute="*/5"),
    },
    "process-expired-campaigns": {
        "task": "promotion_voting.process_expired_campaigns",
        "schedule": crontab(minute="*/5"),
    },
    "daily-checks": {
        "task": "promotion_voting.run_daily_checks",
        "schedule": crontab(hour=0, minute=0),
    },
    "monthly-statistics-reset": {
        "task": "promotion_voting.reset_monthly_statistics",
        "schedule": crontab(hour=0, minute=5, day_of_month=1),
    },
}


def make_celery() -> Celery:
    """
    Create and configure Celery app with Redis broker.

    Environment variables:
        REDIS_URL: Redis connection URL (default: redis://localhost:6379/0)
        CELERY_RESULT_BACKEND: Optional separate result backend
        CELERY_TIMEZONE: Timezone of the beat schedule (default: local server time zone)
    """
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    result_backend = os.getenv("CELERY_RESULT_BACKEND", redis_url)

    app = Celery("promotion_voting", broker=redis_url, backend=result_backend)

    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=os.getenv("CELERY_TIMEZONE") or None,
        enable_utc=False,
        result_expires=86400,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_concurrency=int(os.getenv("CELERY_CONCURRENCY", "2")),
        beat_schedule=BEAT_SCHEDULE,
    )

    return app


celery_app = make_celery()

_container: Optional[Container] = None


def get_container() -> Container:
    """Built on first use inside the worker, not at import time."""
    global _container
    if _container is None:
        from .main import container_from_settings, load_settings

        settings = load_settings()
        setup_logging(getattr(settings, "LOG_LEVEL", "INFO"))
        notifier = CeleryNotifier(lambda event, payload: send_notification_task.delay(event, payload))
        _container = container_from_settings(settings, notifier=notifier)
    return _container


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    setup_logging(os.getenv("LOG_LEVEL", "INFO"))


@celery_app.task(name="promotion_voting.activate_due_campaigns")
def activate_due_campaigns_task():
    return {"activated": get_container().auto_voting_service.activate_due_campaigns()}


@celery_app.task(name="promotion_voting.process_expired_campaigns")
def process_expired_campaigns_task():
    return get_container().auto_voting_service.process_expired_campaigns()


@celery_app.task(name="promotion_voting.run_daily_checks")
def run_daily_checks_task():
    return get_container().auto_voting_service.run_daily_checks()


@celery_app.task(name="promotion_voting.reset_monthly_statistics")
def reset_monthly_statistics_task():
    return {"rows": get_container().auto_voting_service.reset_monthly_statistics()}


@celery_app.task(name="promotion_voting.send_notification", bind=True, autoretry_for=(Exception,), retry_backoff=True)
def send_notification_task(self, event: str, payload: dict):
    """Delivery is out of scope; the event is logged and acknowledged."""
    logger.info("notification %s delivered: %s", event, payload)
    return {
        "task_id": self.request.id,
        "event": event,
        "sent_at": datetime.now(timezone.utc).isoformat(),
        "status": "sent",
    }

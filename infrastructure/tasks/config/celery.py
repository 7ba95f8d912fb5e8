"""Celery application for the payment background jobs"""
from __future__ import annotations

import os

from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE


logger = get_logger(__name__)

TASK_PACKAGES = ("infrastructure.tasks.tasks",)

# Status checks are customer-facing; the sweep can wait behind them
TASK_ROUTES = {
    "payments.check_status": {"queue": "high"},
    "payments.sweep_expired_orders": {"queue": "low"},
}

EAGER_ENVIRONMENTS = {"development", "dev", "test", "testing"}


celery_app = Celery("bank_reconcile")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # A check or sweep lost with its worker is redelivered; both are idempotent
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_queues=(Queue("high"), Queue("default"), Queue("low")),
    task_routes=TASK_ROUTES,
    beat_schedule=CELERY_BEAT_SCHEDULE,
    imports=TASK_PACKAGES,
    task_always_eager=settings.ENVIRONMENT.lower() in EAGER_ENVIRONMENTS,
)

celery_app.autodiscover_tasks(packages=TASK_PACKAGES)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        eager=sender.conf.task_always_eager,
        queues=[q.name for q in sender.conf.task_queues],
    )

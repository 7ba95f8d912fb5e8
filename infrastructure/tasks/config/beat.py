"""Celery beat schedule.

The sweep is the safety net that expires orders nobody polled or paid; the
pull and push paths expire orders lazily as well.
"""
from __future__ import annotations

from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    "payments-sweep-expired-orders": {
        "task": "payments.sweep_expired_orders",
        "schedule": crontab(minute="*/5"),
        "options": {"queue": "low"},
    },
}

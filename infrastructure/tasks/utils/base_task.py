"""Base class for payment Celery tasks"""
from __future__ import annotations

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)


class BaseTask(Task):
    """
    Lifecycle logging keyed by task name and order id

    Tasks take an order id as first positional argument or none at all, so it
    is the only argument worth logging.
    """

    @staticmethod
    def _order_id(args) -> str | None:
        return args[0] if args else None

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            order_id=self._order_id(args),
            error_type=type(exc).__name__,
            error=str(exc),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.info(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            order_id=self._order_id(args),
            retries=self.request.retries,
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

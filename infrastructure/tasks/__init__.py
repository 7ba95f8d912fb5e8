"""Celery task infrastructure package.

Importing this module wires up the configured Celery app; task modules under
``tasks/`` register themselves through ``shared_task``.
"""
from .config.celery import celery_app

__all__ = ["celery_app"]

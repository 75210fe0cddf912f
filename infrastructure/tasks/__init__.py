"""Celery task infrastructure package.

Importing this module wires together the configured Celery app and the
notifier facade that higher layers depend upon.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskNotifier

__all__ = ["celery_app", "TaskNotifier"]

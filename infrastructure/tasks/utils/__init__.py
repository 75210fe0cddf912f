"""Utility helpers for Celery tasks."""
from .dispatcher import TaskNotifier
from .base_task import BaseTask

__all__ = ["TaskNotifier", "BaseTask"]

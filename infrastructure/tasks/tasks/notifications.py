"""Notification dispatch task.

Delivery (email, push) lives outside this service; the task records the
request so downstream consumers can pick it up from the logs/broker.
"""
from __future__ import annotations

from typing import Any

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(
    name="notifications.dispatch",
    bind=True,
    base=BaseTask,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def dispatch(self, account_id: int, kind: str, payload: dict[str, Any]) -> None:
    logger.info("notification_dispatched", account_id=account_id, kind=kind, payload=payload)

"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from core.logging_config import get_logger
from ..config.celery import celery_app  # noqa: F401 shared tasks bind to this app


logger = get_logger(__name__)


class TaskNotifier:
    """Notifier port backed by the notifications.dispatch task.

    Broker errors are logged and dropped so a notification never fails a
    ledger operation that has already committed.
    """

    def notify(self, account_id: int, kind: str, payload: Dict[str, Any]) -> None:
        from ..tasks.notifications import dispatch

        try:
            dispatch.apply_async(args=(account_id, kind, payload))
        except Exception as exc:
            logger.warning("notification_enqueue_failed", account_id=account_id, kind=kind, error=str(exc))

"""Celery beat schedule for the settlement handlers.

The handlers are idempotent, so a missed or doubled tick only delays or
repeats a no-op run. Intervals come from LEDGER__* settings.
"""
from __future__ import annotations

from datetime import timedelta

from core.config import settings


CELERY_BEAT_SCHEDULE = {
    "release-eligible-orders": {
        "task": "settlement.release_eligible_orders",
        "schedule": timedelta(hours=settings.ledger.release_interval_hours),
        "options": {"queue": "high"},
    },
    "check-stale-payouts": {
        "task": "settlement.check_stale_payouts",
        "schedule": timedelta(hours=settings.ledger.stale_check_interval_hours),
        "options": {"queue": "default"},
    },
}

"""
Payout domain events.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class PayoutEvent:
    payout_id: int
    account_id: int
    amount: int
    currency: str
    reference: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PayoutRequested(PayoutEvent):
    pass


@dataclass
class PayoutCompleted(PayoutEvent):
    pass


@dataclass
class PayoutFailed(PayoutEvent):
    reason: Optional[str] = None

"""
Ledger domain events.

Emitted by the ledger domain service for every completed entry so the
application layer can forward them to notifications without the domain
touching infrastructure.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class LedgerEvent:
    account_id: int
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class LedgerEntryRecorded(LedgerEvent):
    transaction_id: Optional[int] = None
    type: str = ""
    direction: str = ""
    balance_field: str = ""
    amount: int = 0
    balance_after: int = 0
    order_id: Optional[int] = None

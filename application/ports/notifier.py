"""
Notification port: fire-and-forget delivery requests.

The ledger never waits on delivery; implementations must not raise.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Notifier(Protocol):
    def notify(self, account_id: int, kind: str, payload: dict[str, Any]) -> None: ...


class NullNotifier:
    """Drops every notification (tests, CLI runs)."""

    def notify(self, account_id: int, kind: str, payload: dict[str, Any]) -> None:
        return None

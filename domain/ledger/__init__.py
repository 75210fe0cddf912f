"""Ledger domain exports."""
from .entity import (
    Account,
    AccountStatus,
    BalanceField,
    Direction,
    FinanceOverview,
    ReplayReport,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from .repository import AccountRepository, TransactionRepository
from .service import LedgerDomainService, LedgerEntryResult

__all__ = [
    "Account",
    "AccountStatus",
    "BalanceField",
    "Direction",
    "FinanceOverview",
    "ReplayReport",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "AccountRepository",
    "TransactionRepository",
    "LedgerDomainService",
    "LedgerEntryResult",
]

"""Infrastructure models package exports."""
from .base import Base, metadata
from .account import AccountModel
from .transaction import TransactionModel
from .order import OrderModel
from .payout import PayoutModel
from .return_request import ReturnRequestModel

__all__ = [
    "Base",
    "metadata",
    "AccountModel",
    "TransactionModel",
    "OrderModel",
    "PayoutModel",
    "ReturnRequestModel",
]

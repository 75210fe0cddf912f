"""Refund domain exports."""
from .entity import (
    ReturnItem,
    ReturnRequest,
    ReturnStatus,
    calculate_refund_amount,
    is_full_return,
    refunded_total,
    returned_quantities,
    validate_return_items,
)
from .repository import ReturnRequestRepository

__all__ = [
    "ReturnItem",
    "ReturnRequest",
    "ReturnStatus",
    "calculate_refund_amount",
    "is_full_return",
    "refunded_total",
    "returned_quantities",
    "validate_return_items",
    "ReturnRequestRepository",
]

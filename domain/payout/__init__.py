"""Payout domain exports."""
from .entity import Payout, PayoutMethod, PayoutStatus, calculate_fee, mask_details
from .repository import PayoutRepository
from .service import PayoutDomainService, PayoutEligibility, PayoutPolicy

__all__ = [
    "Payout",
    "PayoutMethod",
    "PayoutStatus",
    "calculate_fee",
    "mask_details",
    "PayoutRepository",
    "PayoutDomainService",
    "PayoutEligibility",
    "PayoutPolicy",
]

"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from application.dtos.payments import (
    CheckoutSession,
    InitializePayment,
    InitializePayout,
    PayoutReceipt,
    ProviderStatus,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the external payment/payout provider.

    Every call is an outbound network request: never invoke it inside a
    Unit of Work. Implementations raise ProviderError for non-success
    answers and ProviderUnreachableError for network/timeout failures.
    """

    provider: str

    async def initialize_payment(self, req: InitializePayment) -> CheckoutSession: ...

    async def verify_payment(self, payment_id: str) -> ProviderStatus: ...

    async def initialize_payout(self, req: InitializePayout) -> PayoutReceipt: ...

    async def verify_payout(self, payout_id: str) -> ProviderStatus: ...

    async def aclose(self) -> None: ...

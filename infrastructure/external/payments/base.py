"""
Base payment client implementing shared concerns: http, retry, logging, units.

Concrete providers subclass and implement the provider-specific calls.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from shared.codes.payment_codes import map_provider_status


logger = get_logger(__name__)


def to_provider_amount(amount: int, currency: str, zero_decimal: Iterable[str]) -> int:
    """Internal smallest unit -> provider unit (half-up division by 100 for zero-decimal currencies)."""
    if currency.upper() in {c.upper() for c in zero_decimal}:
        return (amount + 50) // 100
    return amount


def from_provider_amount(amount: float | int, currency: str, zero_decimal: Iterable[str]) -> int:
    """Provider unit -> internal smallest unit."""
    if currency.upper() in {c.upper() for c in zero_decimal}:
        return int(round(amount * 100))
    return int(round(amount))


class BasePaymentClient:
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 3.0, "read": 10.0, "write": 10.0, "total": 15.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        """Retry transport failures; only used for idempotent reads."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        return map_provider_status(self.provider, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )

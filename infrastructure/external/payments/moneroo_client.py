"""
Moneroo REST adapter (payments + payouts) over httpx.

Notes:
- Bearer auth with the secret key; JSON in/out.
- Initialize calls are POSTs and are never retried (a retried POST could
  create a second checkout/payout on the provider). Verify calls are GETs
  and go through the tenacity retry helper.
- Webhooks carry `X-Moneroo-Signature`: hex HMAC-SHA256 of the raw body.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    CheckoutSession,
    InitializePayment,
    InitializePayout,
    PayoutReceipt,
    ProviderStatus,
)
from core.settings import payment_settings
from domain.common.exceptions import ConfigurationException
from infrastructure.external.payments.base import (
    BasePaymentClient,
    from_provider_amount,
    to_provider_amount,
)
from infrastructure.external.payments.exceptions import (
    ProviderError,
    ProviderUnreachableError,
)
from core.logging_config import get_logger


logger = get_logger(__name__)

SIGNATURE_HEADER = "x-moneroo-signature"


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, signature: Optional[str]) -> bool:
    """Constant-time comparison of the hex HMAC-SHA256 over the raw body."""
    if not signature:
        return False
    expected = compute_signature(secret, body)
    return hmac.compare_digest(expected, signature.strip().lower())


class MonerooClient(BasePaymentClient):
    provider = "moneroo"

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        zero_decimal_currencies: Optional[list[str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        self._secret_key = secret_key if secret_key is not None else payment_settings.moneroo.secret_key
        self._base_url = (base_url or payment_settings.moneroo.base_url).rstrip("/")
        self._zero_decimal = zero_decimal_currencies or payment_settings.zero_decimal_currencies

    def _headers(self) -> dict[str, str]:
        # Secret is checked per call so a missing key surfaces as ConfigurationError at use time
        if not self._secret_key:
            raise ConfigurationException("PAYMENT__MONEROO__SECRET_KEY")
        return {
            "Authorization": f"Bearer {self._secret_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _to_provider(self, amount: int, currency: str) -> int:
        return to_provider_amount(amount, currency, self._zero_decimal)

    def _from_provider(self, amount: Any, currency: Optional[str]) -> Optional[int]:
        if amount is None or currency is None:
            return None
        return from_provider_amount(amount, currency, self._zero_decimal)

    async def _send(self, method: str, path: str, *, json: Optional[dict] = None, retry: bool = False) -> dict:
        headers = self._headers()
        url = f"{self._base_url}{path}"

        async def _do() -> httpx.Response:
            async with self.client() as c:
                return await c.request(method, url, headers=headers, json=json)

        try:
            resp = await (self._retry(_do) if retry else _do())
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.warning("moneroo_unreachable", method=method, path=path, error=str(exc))
            raise ProviderUnreachableError(f"Moneroo unreachable: {exc}", provider=self.provider)

        if resp.status_code >= 400:
            logger.error(
                "moneroo_http_error",
                method=method,
                path=path,
                status_code=resp.status_code,
                body=resp.text[:500],
            )
            raise ProviderError(
                f"Moneroo API error: {resp.status_code}",
                provider=self.provider,
                status_code=resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError:
            raise ProviderError("Moneroo returned a non-JSON body", provider=self.provider, status_code=resp.status_code)
        if not isinstance(payload, dict):
            raise ProviderError("Moneroo returned an unexpected payload", provider=self.provider)
        return payload

    @staticmethod
    def _data(payload: dict) -> dict:
        data = payload.get("data")
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _currency_code(value: Any) -> Optional[str]:
        if isinstance(value, dict):
            value = value.get("code")
        return str(value).upper() if value else None

    def _customer(self, customer) -> dict[str, Any]:
        body = {
            "email": customer.email,
            "first_name": customer.first_name,
            "last_name": customer.last_name,
        }
        if customer.phone:
            body["phone"] = customer.phone
        return body

    async def initialize_payment(self, req: InitializePayment) -> CheckoutSession:
        body = {
            "amount": self._to_provider(req.amount, req.currency),
            "currency": req.currency,
            "description": req.description,
            "customer": self._customer(req.customer),
            "return_url": req.return_url,
            "metadata": {k: str(v) for k, v in req.metadata.items()},
        }
        payload = await self._send("POST", "/payments/initialize", json=body)
        data = self._data(payload)
        if not data.get("id") or not data.get("checkout_url"):
            raise ProviderError("Moneroo payment init: unexpected response", provider=self.provider)
        self._log("moneroo_payment_initialized", payment_id=data["id"])
        return CheckoutSession(payment_id=str(data["id"]), checkout_url=str(data["checkout_url"]))

    async def verify_payment(self, payment_id: str) -> ProviderStatus:
        payload = await self._send("GET", f"/payments/{payment_id}/verify", retry=True)
        return self._status(payment_id, payload)

    async def initialize_payout(self, req: InitializePayout) -> PayoutReceipt:
        body = {
            "amount": self._to_provider(req.amount, req.currency),
            "currency": req.currency,
            "description": req.description,
            "customer": self._customer(req.customer),
            "metadata": {k: str(v) for k, v in req.metadata.items()},
        }
        if req.method:
            body["method"] = req.method
        if req.recipient:
            body["recipient"] = req.recipient
        payload = await self._send("POST", "/payouts/initialize", json=body)
        data = self._data(payload)
        if payload.get("success") is False or not data.get("id"):
            raise ProviderError(
                payload.get("message") or "Moneroo payout init: unexpected response",
                provider=self.provider,
            )
        self._log("moneroo_payout_initialized", payout_id=data["id"])
        return PayoutReceipt(payout_id=str(data["id"]))

    async def verify_payout(self, payout_id: str) -> ProviderStatus:
        payload = await self._send("GET", f"/payouts/{payout_id}/verify", retry=True)
        return self._status(payout_id, payload)

    def _status(self, ref: str, payload: dict) -> ProviderStatus:
        data = self._data(payload)
        status = data.get("status")
        if not status:
            raise ProviderError("Moneroo verify: missing status", provider=self.provider)
        currency = self._currency_code(data.get("currency"))
        return ProviderStatus(
            id=str(data.get("id") or ref),
            status=str(status).lower(),
            amount=self._from_provider(data.get("amount"), currency),
            currency=currency,
            failure_message=data.get("failure_message"),
        )

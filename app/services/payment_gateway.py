import hashlib
import hmac
import logging
from typing import Protocol

import httpx

from app.core.config import settings
from app.core.errors import PaymentGatewayError

logger = logging.getLogger(__name__)


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Razorpay checkout signature: hex HMAC-SHA256 of "order_id|payment_id"."""
    payload = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def signature_matches(secret: str, order_id: str, payment_id: str, signature: str) -> bool:
    if not secret or not signature:
        return False
    expected = compute_signature(secret, order_id, payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


class PaymentGateway(Protocol):
    key_id: str

    async def create_order(self, amount: int, currency: str, receipt: str) -> str: ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool: ...


class RazorpayGateway:
    """Razorpay Orders API client; signatures are checked locally with the key secret."""

    def __init__(
        self,
        key_id: str | None = None,
        key_secret: str | None = None,
        api_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.key_id = key_id if key_id is not None else settings.razorpay_key_id
        self._key_secret = key_secret if key_secret is not None else settings.razorpay_key_secret
        self._api_url = (api_url or settings.razorpay_api_url).rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def create_order(self, amount: int, currency: str, receipt: str) -> str:
        if not self.key_id or not self._key_secret:
            raise PaymentGatewayError("Razorpay is not configured")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self._api_url}/orders",
                    json={"amount": amount, "currency": currency, "receipt": receipt},
                    auth=(self.key_id, self._key_secret),
                )
        except httpx.HTTPError as e:
            logger.exception("Razorpay order request failed: %s", e)
            raise PaymentGatewayError() from e
        if resp.status_code not in (200, 201):
            logger.warning(
                "Razorpay order creation failed: status=%s body=%s receipt=%s",
                resp.status_code,
                resp.text[:500],
                receipt,
            )
            raise PaymentGatewayError()
        order_id = resp.json().get("id")
        if not order_id:
            raise PaymentGatewayError("Razorpay returned no order id")
        return order_id

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        return signature_matches(self._key_secret, order_id, payment_id, signature)

"""
Paystack client: verify a transaction by reference and map the provider's status
vocabulary onto our payment statuses.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel, Field, ValidationError

from app.core.config import Settings, settings
from app.core.enums import PaymentStatus
from app.core.exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "success": PaymentStatus.SUCCESSFUL,
    "failed": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "abandoned": PaymentStatus.FAILED,
    "pending": PaymentStatus.PENDING,
    "ongoing": PaymentStatus.PENDING,
}


def map_gateway_status(provider_status: Optional[str]) -> str:
    """Provider status -> internal payment status. Anything unrecognised counts as failed."""
    return _STATUS_MAP.get((provider_status or "").strip().lower(), PaymentStatus.FAILED).value


class GatewayTransaction(BaseModel):
    id: Optional[int] = None
    status: str
    reference: Optional[str] = None
    amount: Optional[int] = None
    paid_at: Optional[datetime] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "GatewayTransaction":
        return cls(
            id=data.get("id"),
            status=str(data.get("status") or ""),
            reference=data.get("reference"),
            amount=data.get("amount"),
            paid_at=data.get("paid_at") or None,
            raw=data,
        )

    @property
    def paid_at_utc(self) -> Optional[datetime]:
        """paid_at as naive UTC, matching how timestamps are stored."""
        if self.paid_at is None:
            return None
        if self.paid_at.tzinfo is None:
            return self.paid_at
        return self.paid_at.astimezone(timezone.utc).replace(tzinfo=None)


class PaystackClient:
    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = "https://api.paystack.co",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "PaystackClient":
        return cls(settings.paystack_secret_key, settings.paystack_base_url, settings.paystack_timeout_seconds)

    async def verify(self, reference: str) -> GatewayTransaction:
        """GET /transaction/verify/{reference}. Raises PaymentGatewayError on any transport or API failure."""
        if not self.secret_key:
            raise PaymentGatewayError("Paystack secret key not configured")

        headers = {"Authorization": f"Bearer {self.secret_key}", "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            ) as client:
                response = await client.get(f"/transaction/verify/{quote(reference, safe='')}")
        except httpx.HTTPError as e:
            logger.error("Paystack verification exception", extra={"reference": reference, "error": str(e)})
            raise PaymentGatewayError(f"Payment verification error: {e}") from e

        if not response.is_success:
            logger.warning(
                "Paystack API request failed",
                extra={"reference": reference, "status_code": response.status_code},
            )
            raise PaymentGatewayError(
                f"API request failed with status {response.status_code}",
                upstream_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise PaymentGatewayError("Invalid JSON received from Paystack") from e
        if not isinstance(body, dict):
            raise PaymentGatewayError("Invalid response received from Paystack")

        if not body.get("status"):
            raise PaymentGatewayError(body.get("message") or "Verification failed")
        data = body.get("data")
        if not isinstance(data, dict):
            raise PaymentGatewayError("Invalid payment data received from Paystack")

        try:
            transaction = GatewayTransaction.from_payload(data)
        except ValidationError as e:
            raise PaymentGatewayError("Invalid payment data received from Paystack") from e
        logger.info(
            "Paystack verification response",
            extra={
                "reference": reference,
                "paystack_status": transaction.status,
                "amount": transaction.amount,
            },
        )
        return transaction


def get_payment_gateway() -> PaystackClient:
    """FastAPI dependency; tests override it with a scripted gateway."""
    return PaystackClient.from_settings(settings)

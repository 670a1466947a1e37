"""
Razorpay implementation of PaymentGateway over httpx.
"""

import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import httpx

from storefront.domain import (
    GatewayOrder,
    GatewayPayment,
    RefundOutcome,
    RefundRequest,
)
from storefront.repositories import PaymentGateway, PaymentGatewayError

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paise, rounded half up."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int) -> Decimal:
    return (Decimal(amount) / 100).quantize(Decimal("0.01"))


class RazorpayPaymentGateway(PaymentGateway):
    """
    Payment gateway client for the Razorpay REST API.

    Authentication is HTTP basic with the key id and secret. The secret
    also signs checkout callbacks: ``HMAC-SHA256(order_id|payment_id)``.
    """

    def __init__(
        self,
        key_id: Optional[str],
        key_secret: Optional[str],
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client = client or httpx.AsyncClient(timeout=timeout)
        logger.debug(
            "Initialized RazorpayPaymentGateway",
            extra={"base_url": self.base_url},
        )

    def _auth(self) -> Optional[httpx.BasicAuth]:
        if self.key_id and self.key_secret:
            return httpx.BasicAuth(self.key_id, self.key_secret)
        return None

    async def _request(
        self, method: str, path: str, **kwargs: Any
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = await self.client.request(
                method,
                url,
                auth=self._auth(),
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.HTTPError as e:
            logger.error(
                "Payment gateway request failed",
                extra={
                    "url": url,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
            )
            raise PaymentGatewayError(
                f"Payment gateway request failed: {e}"
            ) from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            description = (
                body.get("error", {}).get("description")
                if isinstance(body, dict)
                else None
            )
            logger.error(
                "Payment gateway answered with an error status",
                extra={
                    "url": url,
                    "status_code": response.status_code,
                    "description": description,
                },
            )
            raise PaymentGatewayError(
                description or f"Payment gateway returned HTTP "
                f"{response.status_code}"
            )
        if not isinstance(body, dict):
            raise PaymentGatewayError("Payment gateway returned a non-object")
        return body

    async def create_order(
        self, amount: Decimal, currency: str, receipt: str
    ) -> GatewayOrder:
        body = await self._request(
            "POST",
            "/orders",
            json={
                "amount": to_minor_units(amount),
                "currency": currency,
                "receipt": receipt,
                "payment_capture": 1,
            },
        )
        logger.info(
            "Payment intent created",
            extra={"gateway_order_id": body.get("id"), "receipt": receipt},
        )
        return GatewayOrder(
            gateway_order_id=body["id"],
            amount_minor=body.get("amount", to_minor_units(amount)),
            currency=body.get("currency", currency),
            receipt=body.get("receipt", receipt),
            status=body.get("status"),
        )

    async def verify_signature(
        self, gateway_order_id: str, payment_id: str, signature: str
    ) -> bool:
        if not self.key_secret:
            logger.error("Payment key secret not configured")
            return False
        expected = hmac.new(
            self.key_secret.encode("utf-8"),
            f"{gateway_order_id}|{payment_id}".encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, signature or "")

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        body = await self._request("GET", f"/payments/{payment_id}")
        return GatewayPayment(
            payment_id=body.get("id", payment_id),
            gateway_order_id=body.get("order_id"),
            status=body.get("status", "unknown"),
            amount_minor=body.get("amount"),
            currency=body.get("currency"),
            method=body.get("method"),
            error_description=body.get("error_description"),
        )

    async def refund_payment(self, request: RefundRequest) -> RefundOutcome:
        """
        Refund a captured payment. Gateway errors are reported as a failed
        outcome rather than raised, so the caller can record them.
        """
        payload: Dict[str, Any] = {
            "amount": to_minor_units(request.amount),
            "notes": {"order_id": request.order_id},
        }
        if request.reason:
            payload["notes"]["reason"] = request.reason[:250]

        try:
            body = await self._request(
                "POST", f"/payments/{request.payment_id}/refund", json=payload
            )
        except PaymentGatewayError as e:
            return RefundOutcome(status="failed", error=str(e))

        gateway_status = body.get("status")
        status = "processed" if gateway_status == "processed" else "pending"
        if gateway_status == "failed":
            return RefundOutcome(
                status="failed",
                refund_id=body.get("id"),
                error="Gateway reported the refund as failed",
            )

        amount = (
            from_minor_units(body["amount"])
            if body.get("amount") is not None
            else request.amount
        )
        logger.info(
            "Refund accepted by gateway",
            extra={
                "order_id": request.order_id,
                "refund_id": body.get("id"),
                "gateway_status": gateway_status,
            },
        )
        return RefundOutcome(
            status=status, refund_id=body.get("id"), amount=amount
        )

    async def aclose(self) -> None:
        await self.client.aclose()

"""
Mail API client implementing NotificationService.

Templates are rendered by the mail service; this client only posts the
template name, the recipient and the order document.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from storefront.domain import Order
from storefront.repositories import NotificationService

logger = logging.getLogger(__name__)


class HttpNotificationService(NotificationService):
    def __init__(
        self,
        api_url: Optional[str],
        api_key: Optional[str] = None,
        sender: str = "orders@storefront.local",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender = sender
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def _send(
        self, template: str, order: Order, context: Dict[str, Any]
    ) -> None:
        if not self.api_url:
            logger.info(
                "Mail API not configured, skipping notification",
                extra={"template": template, "order_id": order.id},
            )
            return
        if not order.customer_email:
            logger.info(
                "Order has no customer email, skipping notification",
                extra={"template": template, "order_id": order.id},
            )
            return

        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        response = await self.client.post(
            self.api_url,
            headers=headers,
            json={
                "template": template,
                "to": order.customer_email,
                "from": self.sender,
                "order": order.model_dump(mode="json"),
                "context": context,
            },
        )
        response.raise_for_status()
        logger.debug(
            "Mail API accepted notification",
            extra={"template": template, "order_id": order.id},
        )

    async def send_order_cancelled(self, order: Order, reason: str) -> None:
        await self._send("order_cancelled", order, {"reason": reason})

    async def send_refund_processed(
        self, order: Order, amount: Decimal
    ) -> None:
        await self._send(
            "refund_processed",
            order,
            {"amount": str(amount), "currency": order.payment.currency},
        )

    async def send_shipment_picked(self, order: Order) -> None:
        await self._send(
            "shipment_picked",
            order,
            {"tracking_url": order.shipment.tracking_url},
        )

    async def aclose(self) -> None:
        await self.client.aclose()

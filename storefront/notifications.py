"""
Best-effort customer notifications.

Emails are a side channel: a state transition is complete before any email
is attempted, and an email failure is logged and never escalated. Each
dispatch runs as its own asyncio task; the caller does not wait for it.
"""

import asyncio
import logging
from collections import deque
from decimal import Decimal
from typing import Any, Awaitable, Callable, Deque, Optional, Set

from storefront.domain import Order, RefundResult
from storefront.repositories import NotificationService
from storefront.validation import ensure_notification_service

logger = logging.getLogger(__name__)

# The dispatcher outlives requests in the API process
MAX_RECORDED_FAILURES = 100


class NotificationDispatcher:
    """
    Fire-and-forget wrapper around a NotificationService.

    Failures go to the logger, to ``failure_count`` and to ``failures``
    (the most recent ones only); they never reach the code that triggered
    the notification.
    """

    def __init__(
        self,
        service: NotificationService,
        on_error: Optional[Callable[[str, str, BaseException], None]] = None,
    ) -> None:
        self.service = ensure_notification_service(service)
        self.on_error = on_error
        self.failures: Deque[str] = deque(maxlen=MAX_RECORDED_FAILURES)
        self.failure_count = 0
        self._pending: Set["asyncio.Task[None]"] = set()

    def dispatch(
        self, name: str, order_id: str, send: Awaitable[Any]
    ) -> "asyncio.Task[None]":
        task = asyncio.create_task(self._run(name, order_id, send))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _run(self, name: str, order_id: str, send: Awaitable[Any]) -> None:
        try:
            await send
            logger.info(
                "Notification sent",
                extra={"notification": name, "order_id": order_id},
            )
        except Exception as e:
            self.failure_count += 1
            self.failures.append(f"{name}:{order_id}")
            logger.warning(
                "Notification failed",
                extra={
                    "notification": name,
                    "order_id": order_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            if self.on_error is not None:
                self.on_error(name, order_id, e)

    async def drain(self) -> None:
        """Wait for every outstanding notification to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def order_cancelled(
        self, order: Order, reason: str, refund: Optional[RefundResult]
    ) -> "asyncio.Task[None]":
        """Cancellation email, then the refund email if money went back."""
        snapshot = order.model_copy(deep=True)
        task = asyncio.create_task(
            self._send_cancellation_sequence(snapshot, reason, refund)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    def shipment_picked(self, order: Order) -> "asyncio.Task[None]":
        return self.dispatch(
            "shipment_picked",
            order.id,
            self.service.send_shipment_picked(order.model_copy(deep=True)),
        )

    async def _send_cancellation_sequence(
        self, order: Order, reason: str, refund: Optional[RefundResult]
    ) -> None:
        # each send is isolated, a failed cancellation email still lets the
        # refund email go out
        await self.dispatch(
            "order_cancelled",
            order.id,
            self.service.send_order_cancelled(order, reason),
        )
        if (
            refund is not None
            and refund.success
            and not refund.pending
            and not refund.already_refunded
            and refund.amount is not None
            and refund.amount > Decimal("0")
        ):
            self.dispatch(
                "refund_processed",
                order.id,
                self.service.send_refund_processed(order, refund.amount),
            )

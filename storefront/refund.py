"""
Refund Orchestrator.

Decides whether an order is owed a refund, how much, and records the
outcome on the order. The ``refund.status == "processed"`` flag, checked
before any gateway call, is the only guard against paying out twice; there
is no distributed lock.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from storefront.domain import (
    Order,
    OrderNotFoundError,
    RefundOptions,
    RefundRequest,
    RefundResult,
)
from storefront.repositories import OrderRepository, PaymentGateway
from storefront.validation import (
    ensure_order_repository,
    ensure_payment_gateway,
)

logger = logging.getLogger(__name__)

REFUNDABLE_PAYMENT_STATUSES = frozenset({"paid", "refunded"})


def compute_refund_amount(order: Order, deduct_shipping: bool) -> Decimal:
    """Order total, less shipping when it was spent, never below zero."""
    amount = order.total
    if deduct_shipping:
        amount = amount - order.shipping.cost
    return max(amount, Decimal("0"))


class RefundOrderUseCase:
    """
    Issues refunds through the payment gateway and records them on the
    order.

    Rules, evaluated in order:

    1. Cash-on-delivery and unpaid orders have nothing to refund.
    2. An order already refunded is a no-op (zero gateway calls).
    3. A refund the gateway accepted but has not settled is not re-issued.
    4. A failed refund is not retried inside the cooldown window.
    5. The amount is the total, less shipping when ``deduct_shipping``.
    6. The refund is marked pending and persisted before the gateway call,
       then marked processed or failed and persisted again.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_gateway: PaymentGateway,
        retry_cooldown: timedelta = timedelta(hours=1),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.payment_gateway = ensure_payment_gateway(payment_gateway)
        self.retry_cooldown = retry_cooldown
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def refund_order(
        self,
        order_id: str,
        reason: str,
        deduct_shipping: bool = False,
        initiated_by: str = "admin",
    ) -> RefundResult:
        """Manual refund entry point: load the order and process it."""
        order = await self.order_repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return await self.process_refund(
            order,
            RefundOptions(
                reason=reason,
                deduct_shipping=deduct_shipping,
                initiated_by=initiated_by,
            ),
        )

    async def process_refund(
        self, order: Order, options: RefundOptions
    ) -> RefundResult:
        """
        Refund an order, mutating and persisting ``order`` in place.

        Returns:
            RefundResult. success=False means the gateway (or our own
            bookkeeping) failed and the order carries refund.status
            "failed" for manual follow-up.
        """
        payment = order.payment
        refund = payment.refund

        logger.info(
            "Processing refund",
            extra={
                "order_id": order.id,
                "payment_method": payment.method,
                "payment_status": payment.status,
                "refund_status": refund.status,
                "deduct_shipping": options.deduct_shipping,
                "initiated_by": options.initiated_by,
                "force": options.force,
            },
        )

        if payment.method == "cod":
            logger.info(
                "COD order, nothing to refund", extra={"order_id": order.id}
            )
            return RefundResult(success=True, not_paid=True, is_cod=True)

        forced = options.force and bool(payment.gateway_payment_id)
        if payment.status not in REFUNDABLE_PAYMENT_STATUSES and not forced:
            logger.info(
                "Order not paid, nothing to refund",
                extra={"order_id": order.id, "payment_status": payment.status},
            )
            return RefundResult(success=True, not_paid=True)

        if refund.status == "processed" or payment.status == "refunded":
            logger.info(
                "Order already refunded, skipping gateway call",
                extra={"order_id": order.id, "refund_id": refund.refund_id},
            )
            return RefundResult(
                success=True,
                already_refunded=True,
                refund_id=refund.refund_id,
                amount=refund.amount,
            )

        if refund.status == "pending" and refund.refund_id:
            logger.info(
                "Refund already accepted by gateway, awaiting settlement",
                extra={"order_id": order.id, "refund_id": refund.refund_id},
            )
            return RefundResult(
                success=True,
                pending=True,
                refund_id=refund.refund_id,
                amount=refund.amount,
            )

        now = self.clock()
        if (
            refund.status == "failed"
            and refund.last_attempt_at is not None
            and now - refund.last_attempt_at < self.retry_cooldown
        ):
            retry_at = refund.last_attempt_at + self.retry_cooldown
            logger.warning(
                "Refund retry requested inside cooldown window",
                extra={"order_id": order.id, "retry_at": retry_at.isoformat()},
            )
            return RefundResult(
                success=False,
                error=f"Previous refund failed; retry after {retry_at.isoformat()}",
            )

        amount = compute_refund_amount(order, options.deduct_shipping)
        if amount <= 0:
            order.add_timeline(
                order.status,
                f"No refundable amount for {options.reason} "
                f"(Initiated by: {options.initiated_by})",
                options.initiated_by,
                now,
            )
            await self.order_repo.save_order(order)
            return RefundResult(success=True, amount=Decimal("0"))

        refund.reason = options.reason
        refund.initiated_by = options.initiated_by
        refund.attempts += 1
        refund.last_attempt_at = now

        if not payment.gateway_payment_id:
            return await self._record_failure(
                order, options, amount, "No gateway payment id on order"
            )

        refund.status = "pending"
        refund.amount = amount
        refund.error_message = None
        await self.order_repo.save_order(order)

        try:
            outcome = await self.payment_gateway.refund_payment(
                RefundRequest(
                    order_id=order.id,
                    payment_id=payment.gateway_payment_id,
                    amount=amount,
                    reason=options.reason,
                )
            )
        except Exception as e:
            logger.error(
                "Payment gateway refund call raised",
                extra={
                    "order_id": order.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            return await self._record_failure(order, options, amount, str(e))

        if outcome.status == "failed":
            return await self._record_failure(
                order, options, amount, outcome.error or "Refund failed"
            )

        refund.refund_id = outcome.refund_id
        refund.amount = outcome.amount or amount
        if outcome.status == "processed":
            refund.status = "processed"
            refund.processed_at = self.clock()
            payment.status = "refunded"
            if order.status == "delivered":
                order.status = "refunded"
        order.add_timeline(
            order.status,
            f"Refund {outcome.status}: {payment.currency} {refund.amount:.2f}"
            f" - {options.reason} (Initiated by: {options.initiated_by})",
            options.initiated_by,
            self.clock(),
        )
        await self.order_repo.save_order(order)

        logger.info(
            "Refund recorded",
            extra={
                "order_id": order.id,
                "refund_id": refund.refund_id,
                "refund_status": refund.status,
                "amount": str(refund.amount),
            },
        )
        return RefundResult(
            success=True,
            pending=outcome.status == "pending",
            refund_id=refund.refund_id,
            amount=refund.amount,
        )

    async def _record_failure(
        self,
        order: Order,
        options: RefundOptions,
        amount: Decimal,
        error: str,
    ) -> RefundResult:
        refund = order.payment.refund
        now = self.clock()
        refund.status = "failed"
        refund.amount = amount
        refund.failed_at = now
        refund.error_message = error
        order.add_timeline(
            order.status,
            f"Refund failed: {error}. Manual intervention may be required.",
            options.initiated_by,
            now,
        )
        await self.order_repo.save_order(order)
        logger.error(
            "Refund failed",
            extra={
                "order_id": order.id,
                "amount": str(amount),
                "error_message": error,
                "attempts": refund.attempts,
            },
        )
        return RefundResult(success=False, amount=amount, error=error)

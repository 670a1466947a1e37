"""
Use cases for the order lifecycle.

The Reconciliation Core lives here, together with the flows that feed it
(single-order carrier sync and the bulk sweep) and the checkout and
shipment flows that put orders into the state it reconciles, and the
expiry of checkouts that were never paid for.

Every use case receives its collaborators through the constructor and
validates them against their protocols, so the same code runs against
concrete adapters in the API process, against Temporal workflow proxies
inside the sweep workflow, and against mocks in tests.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from storefront.domain import (
    EventSource,
    ExpirySummary,
    InsufficientStockError,
    InvalidOrderStateError,
    MissingAwbError,
    Order,
    OrderItem,
    OrderNotFoundError,
    PaymentRecord,
    PlaceOrderRequest,
    ReconciliationEvent,
    ReconciliationResult,
    RefundOptions,
    ShipmentAlreadyExistsError,
    ShipmentCreationResult,
    ShipmentRequest,
    ShippingInfo,
    SweepDetail,
    SweepSummary,
    status_rank,
)
from storefront.notifications import NotificationDispatcher
from storefront.refund import RefundOrderUseCase
from storefront.repositories import (
    CarrierGateway,
    CarrierGatewayError,
    InventoryRepository,
    OrderNumberRepository,
    OrderRepository,
    PaymentGateway,
    PaymentGatewayError,
    PaymentVerificationError,
)
from storefront.status_mapper import map_carrier_status
from storefront.tracking import parse_tracking_payload
from storefront.validation import (
    ensure_carrier_gateway,
    ensure_inventory_repository,
    ensure_order_number_repository,
    ensure_order_repository,
    ensure_payment_gateway,
)

logger = logging.getLogger(__name__)

POST_TERMINAL_NOTE = "event received post-terminal-state"
PICKUP_KEYWORDS = ("picked", "dispatched", "in transit")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def cancelled_before_pickup(awb: Optional[str], raw_status: Optional[str]) -> bool:
    """
    A cancellation counts as before pickup when nothing was handed to the
    carrier: no waybill, or a status that never mentions a pickup.
    """
    if not awb:
        return True
    value = (raw_status or "").lower()
    return not any(keyword in value for keyword in PICKUP_KEYWORDS)


class ReconcileOrderUseCase:
    """
    Reconciliation Core.

    Given a carrier observation for one order, decides the next status and
    applies the compensating actions a cancellation needs. Idempotency rests
    on the terminal-state short-circuit: once an order is cancelled or
    refunded, later events only leave a timeline note.

    Commit ordering: the status transition is persisted first, then stock is
    returned, then the refund is attempted, then notifications are queued.
    A failure downstream therefore never leaves the order in a wrong status,
    only with a refund marked failed.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        inventory_repo: InventoryRepository,
        refund_use_case: RefundOrderUseCase,
        notifier: NotificationDispatcher,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.inventory_repo = ensure_inventory_repository(inventory_repo)
        self.refund_use_case = refund_use_case
        self.notifier = notifier
        self.clock = clock or _utcnow

    async def reconcile(
        self, event: ReconciliationEvent
    ) -> ReconciliationResult:
        logger.info(
            "Reconciling order",
            extra={
                "order_id": event.order_id,
                "raw_status": event.raw_status,
                "source": event.source,
            },
        )

        order = await self.order_repo.get_order(event.order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {event.order_id} not found")

        previous_status = order.status

        if order.is_terminal:
            order.add_timeline(
                order.status,
                f"Carrier {POST_TERMINAL_NOTE}: "
                f"{event.raw_status or 'no status'} (via {event.source})",
                event.source,
                self.clock(),
            )
            await self.order_repo.save_order(order)
            logger.info(
                "Order already terminal, event ignored",
                extra={
                    "order_id": order.id,
                    "status": order.status,
                    "raw_status": event.raw_status,
                },
            )
            return ReconciliationResult(
                order_id=order.id,
                outcome="terminal_ignored",
                previous_status=previous_status,
                status=order.status,
            )

        mapped = map_carrier_status(event.raw_status)

        if mapped == "cancelled":
            before_pickup = cancelled_before_pickup(
                order.shipment.awb, event.raw_status
            )
            result = await self._cancel(
                order,
                reason=f"Carrier reported '{event.raw_status}'",
                source=event.source,
                before_pickup=before_pickup,
                force_refund=False,
            )
            result.mapped_status = mapped
        elif mapped is not None and status_rank(mapped) > status_rank(
            order.status
        ):
            order.status = mapped
            now = self.clock()
            if mapped == "delivered":
                order.shipment.delivered_at = now
            order.add_timeline(
                mapped,
                f"Status updated from carrier: {event.raw_status}",
                event.source,
                now,
            )
            await self.order_repo.save_order(order)
            logger.info(
                "Order status transitioned",
                extra={
                    "order_id": order.id,
                    "from_status": previous_status,
                    "to_status": mapped,
                    "raw_status": event.raw_status,
                },
            )
            if mapped == "picked":
                self.notifier.shipment_picked(order)
            result = ReconciliationResult(
                order_id=order.id,
                outcome="transitioned",
                previous_status=previous_status,
                status=order.status,
                mapped_status=mapped,
            )
        else:
            if (
                event.event_description
                and event.event_description != order.shipment.last_event
            ):
                order.add_timeline(
                    order.status,
                    f"Carrier event: {event.event_description}",
                    event.source,
                    self.clock(),
                )
            result = ReconciliationResult(
                order_id=order.id,
                outcome="unchanged",
                previous_status=previous_status,
                status=order.status,
                mapped_status=mapped,
            )

        await self._persist_shipment_metadata(order, event, result)
        return result

    async def cancel_by_admin(
        self, order_id: str, reason: str, actor: EventSource = "admin"
    ) -> ReconciliationResult:
        """
        Cancel an order on an operator's request.

        Skips the status mapper and always attempts the refund, even when
        the local payment status was never updated to paid. The
        already-refunded guard still applies.
        """
        order = await self.order_repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        if order.is_terminal:
            raise InvalidOrderStateError(
                f"Order {order.order_number} is already {order.status}"
            )

        before_pickup = cancelled_before_pickup(
            order.shipment.awb, order.shipment.status
        )
        return await self._cancel(
            order,
            reason=reason,
            source=actor,
            before_pickup=before_pickup,
            force_refund=True,
        )

    async def _cancel(
        self,
        order: Order,
        reason: str,
        source: EventSource,
        before_pickup: bool,
        force_refund: bool,
    ) -> ReconciliationResult:
        previous_status = order.status
        now = self.clock()

        order.status = "cancelled"
        order.shipment.cancelled_at = now
        order.shipment.cancellation_reason = reason
        order.shipment.cancelled_before_pickup = before_pickup
        order.add_timeline(
            "cancelled",
            f"Shipment cancelled via {source}. Reason: {reason}. "
            f"Cancelled {'before' if before_pickup else 'after'} pickup.",
            source,
            now,
        )
        await self.order_repo.save_order(order)
        logger.info(
            "Order cancelled",
            extra={
                "order_id": order.id,
                "from_status": previous_status,
                "source": source,
                "cancelled_before_pickup": before_pickup,
            },
        )

        result = ReconciliationResult(
            order_id=order.id,
            outcome="cancelled",
            previous_status=previous_status,
            status="cancelled",
            cancelled_before_pickup=before_pickup,
        )

        try:
            result.restocked_quantity = await self.inventory_repo.restock(
                order.id, order.items
            )
            logger.info(
                "Stock restored for cancelled order",
                extra={
                    "order_id": order.id,
                    "restocked_quantity": result.restocked_quantity,
                },
            )
        except Exception as e:
            result.restock_error = str(e)
            logger.error(
                "Restock failed for cancelled order",
                extra={
                    "order_id": order.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            order.add_timeline(
                "cancelled",
                f"Restock failed: {e}. Manual intervention may be required.",
                source,
                self.clock(),
            )
            await self.order_repo.save_order(order)

        result.refund = await self.refund_use_case.process_refund(
            order,
            RefundOptions(
                reason=reason,
                deduct_shipping=not before_pickup,
                initiated_by=source,
                force=force_refund,
            ),
        )
        if not result.refund.success:
            logger.warning(
                "Refund for cancelled order did not succeed",
                extra={"order_id": order.id, "error": result.refund.error},
            )

        self.notifier.order_cancelled(order, reason, result.refund)
        return result

    async def _persist_shipment_metadata(
        self,
        order: Order,
        event: ReconciliationEvent,
        result: ReconciliationResult,
    ) -> None:
        if event.raw_status:
            order.shipment.status = event.raw_status
        if event.event_description:
            order.shipment.last_event = event.event_description
        order.shipment.raw_response = event.raw_payload
        order.shipment.last_synced_at = self.clock()

        for attempt in (1, 2):
            try:
                await self.order_repo.save_order(order)
                return
            except Exception as e:
                logger.warning(
                    "Failed to persist shipment metadata",
                    extra={
                        "order_id": order.id,
                        "attempt": attempt,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                    exc_info=attempt == 2,
                )
                if attempt == 2:
                    result.metadata_persisted = False
                    result.error = (
                        f"Shipment metadata not persisted: {e}"
                    )


class SyncOrderUseCase:
    """Poll the carrier for one order and reconcile what it reports."""

    def __init__(
        self,
        order_repo: OrderRepository,
        carrier_gateway: CarrierGateway,
        reconciler: ReconcileOrderUseCase,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.carrier_gateway = ensure_carrier_gateway(carrier_gateway)
        self.reconciler = reconciler
        self.clock = clock or _utcnow

    async def sync_order(
        self, order_id: str, source: EventSource = "poll"
    ) -> ReconciliationResult:
        """
        Fetch tracking and reconcile.

        A carrier failure or timeout propagates before anything is written,
        so last_synced_at is untouched and the next sweep retries.
        """
        order = await self.order_repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        awb = order.shipment.awb
        if not awb:
            raise MissingAwbError(
                f"Order {order.order_number} has no shipment AWB"
            )

        payload = await self.carrier_gateway.fetch_tracking(awb)
        snapshot = parse_tracking_payload(payload, awb)

        return await self.reconciler.reconcile(
            ReconciliationEvent(
                order_id=order.id,
                raw_status=snapshot.raw_status,
                source=source,
                timestamp=self.clock(),
                raw_payload=payload,
                event_description=snapshot.event_description,
            )
        )


class BulkReconciliationUseCase:
    """
    One sweep over orders whose carrier status may have moved.

    Orders are processed strictly one at a time with a fixed pause between
    them, which bounds the load on the carrier API. A failing order is
    counted and skipped; the sweep always runs to the end of its batch.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        sync_use_case: SyncOrderUseCase,
        staleness: timedelta = timedelta(minutes=30),
        delay_seconds: float = 0.5,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.sync_use_case = sync_use_case
        self.staleness = staleness
        self.delay_seconds = delay_seconds
        self.clock = clock or _utcnow

    async def run_sweep(self, limit: int) -> SweepSummary:
        stale_before = self.clock() - self.staleness
        orders = await self.order_repo.list_sync_candidates(
            stale_before, limit
        )
        summary = SweepSummary(total=len(orders))

        logger.info(
            "Starting carrier sweep",
            extra={
                "limit": limit,
                "candidates": len(orders),
                "stale_before": stale_before.isoformat(),
            },
        )

        for index, order in enumerate(orders):
            if index > 0 and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

            detail = SweepDetail(
                order_id=order.id, order_number=order.order_number
            )
            try:
                result = await self.sync_use_case.sync_order(order.id, "poll")
                detail.outcome = result.outcome
                detail.status = result.status
                detail.error = result.error
                summary.synced += 1
                if result.outcome == "cancelled":
                    summary.cancelled += 1
            except Exception as e:
                summary.errors += 1
                detail.outcome = "error"
                detail.error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "Sweep failed for order",
                    extra={
                        "order_id": order.id,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                    exc_info=True,
                )
            summary.details.append(detail)

        logger.info(
            "Carrier sweep finished",
            extra={
                "total": summary.total,
                "synced": summary.synced,
                "cancelled": summary.cancelled,
                "errors": summary.errors,
            },
        )
        return summary


class ExpirePendingOrdersUseCase:
    """
    Cancel online orders whose checkout was never paid for.

    Stock reserved at checkout goes back through the restock ledger before
    the cancellation is saved, so a run that dies between the two steps is
    simply repeated by the next one without restocking twice. A failing
    order is counted and skipped.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        inventory_repo: InventoryRepository,
        ttl: timedelta = timedelta(hours=12),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.inventory_repo = ensure_inventory_repository(inventory_repo)
        self.ttl = ttl
        self.clock = clock or _utcnow

    @property
    def reason(self) -> str:
        hours = int(self.ttl.total_seconds() // 3600)
        return f"Payment not completed within {hours} hours"

    async def run(self, limit: int) -> ExpirySummary:
        created_before = self.clock() - self.ttl
        orders = await self.order_repo.list_expired_pending(
            created_before, limit
        )
        summary = ExpirySummary(total=len(orders))

        logger.info(
            "Starting pending order expiry",
            extra={
                "limit": limit,
                "candidates": len(orders),
                "created_before": created_before.isoformat(),
            },
        )

        for candidate in orders:
            detail = SweepDetail(
                order_id=candidate.id, order_number=candidate.order_number
            )
            try:
                restocked = await self._expire(candidate.id, created_before)
                if restocked is None:
                    detail.outcome = "unchanged"
                else:
                    detail.outcome = "cancelled"
                    detail.status = "cancelled"
                    summary.cancelled += 1
                    summary.restocked_quantity += restocked
            except Exception as e:
                summary.errors += 1
                detail.outcome = "error"
                detail.error = f"{type(e).__name__}: {e}"
                logger.warning(
                    "Expiry failed for order",
                    extra={
                        "order_id": candidate.id,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                    exc_info=True,
                )
            summary.details.append(detail)

        logger.info(
            "Pending order expiry finished",
            extra={
                "total": summary.total,
                "cancelled": summary.cancelled,
                "restocked_quantity": summary.restocked_quantity,
                "errors": summary.errors,
            },
        )
        return summary

    async def _expire(
        self, order_id: str, created_before: datetime
    ) -> Optional[int]:
        """Cancel one order; None when it was paid or changed meanwhile."""
        order = await self.order_repo.get_order(order_id)
        if order is None or not order.is_expired_pending(created_before):
            logger.info(
                "Order no longer awaiting payment, skipping expiry",
                extra={"order_id": order_id},
            )
            return None

        restocked = await self.inventory_repo.restock(order.id, order.items)
        now = self.clock()
        order.status = "cancelled"
        order.payment.status = "cancelled"
        order.shipment.cancelled_at = now
        order.shipment.cancellation_reason = self.reason
        order.shipment.cancelled_before_pickup = True
        order.add_timeline("cancelled", self.reason, "system", now)
        await self.order_repo.save_order(order)

        logger.info(
            "Unpaid order expired",
            extra={
                "order_id": order.id,
                "order_number": order.order_number,
                "restocked_quantity": restocked,
            },
        )
        return restocked


class CreateShipmentUseCase:
    """Manifest an order with the carrier and record its waybill."""

    def __init__(
        self,
        order_repo: OrderRepository,
        carrier_gateway: CarrierGateway,
        carrier_name: str = "delhivery",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.carrier_gateway = ensure_carrier_gateway(carrier_gateway)
        self.carrier_name = carrier_name
        self.clock = clock or _utcnow

    async def create_shipment(
        self, order_id: str, actor: str = "admin"
    ) -> ShipmentCreationResult:
        order = await self.order_repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        if order.shipment.awb:
            raise ShipmentAlreadyExistsError(
                f"Order {order.order_number} already has AWB "
                f"{order.shipment.awb}"
            )
        if order.is_terminal or order.status == "delivered":
            raise InvalidOrderStateError(
                f"Cannot ship order {order.order_number} in status "
                f"{order.status}"
            )
        if order.shipping_address is None:
            raise InvalidOrderStateError(
                f"Order {order.order_number} has no shipping address"
            )

        is_cod = order.payment.method == "cod"
        request = ShipmentRequest(
            order_id=order.id,
            order_number=order.order_number,
            address=order.shipping_address,
            payment_mode="COD" if is_cod else "Prepaid",
            total_amount=order.total,
            cod_amount=order.total if is_cod else Decimal("0"),
            quantity=sum(item.quantity for item in order.items),
            products_description=", ".join(
                item.name or item.product_id for item in order.items
            ),
        )

        try:
            outcome = await self.carrier_gateway.create_shipment(request)
            error = outcome.error
        except CarrierGatewayError as e:
            logger.error(
                "Carrier shipment creation failed",
                extra={
                    "order_id": order.id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            outcome = None
            error = str(e)

        now = self.clock()
        if outcome is None or not outcome.success:
            order.add_timeline(
                order.status,
                f"Shipment creation failed: {error or 'unknown error'}",
                actor,
                now,
            )
            await self.order_repo.save_order(order)
            return ShipmentCreationResult(
                order_id=order.id, success=False, error=error
            )

        order.shipment.awb = outcome.awb
        order.shipment.tracking_url = outcome.tracking_url
        order.shipment.carrier = self.carrier_name
        order.shipment.created_at = now
        order.shipment.status = "Manifested"
        order.shipment.raw_response = outcome.raw_response
        order.shipping.carrier = self.carrier_name
        if order.status in ("pending", "confirmed"):
            order.status = "processing"
        order.add_timeline(
            order.status,
            f"Shipment created with {self.carrier_name}. AWB: {outcome.awb}",
            actor,
            now,
        )
        await self.order_repo.save_order(order)

        logger.info(
            "Shipment created",
            extra={"order_id": order.id, "awb": outcome.awb},
        )
        return ShipmentCreationResult(
            order_id=order.id,
            success=True,
            awb=outcome.awb,
            tracking_url=outcome.tracking_url,
        )


class PlaceOrderUseCase:
    """
    Checkout: reserve stock, number the order and open a payment intent.

    Stock is reserved first and released again if the payment intent
    cannot be created, so a failed checkout leaves inventory untouched.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        order_number_repo: OrderNumberRepository,
        inventory_repo: InventoryRepository,
        payment_gateway: PaymentGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.order_number_repo = ensure_order_number_repository(
            order_number_repo
        )
        self.inventory_repo = ensure_inventory_repository(inventory_repo)
        self.payment_gateway = ensure_payment_gateway(payment_gateway)
        self.clock = clock or _utcnow

    async def place_order(self, request: PlaceOrderRequest) -> Order:
        now = self.clock()
        order_id = str(uuid.uuid4())
        items = [OrderItem(**item.model_dump()) for item in request.items]

        reserved = await self.inventory_repo.reserve_stock(order_id, items)
        if not reserved:
            logger.info(
                "Checkout rejected, insufficient stock",
                extra={"order_id": order_id},
            )
            raise InsufficientStockError(
                "One or more items are out of stock"
            )

        subtotal = request.subtotal
        total = subtotal + request.tax + request.shipping_cost
        order_number = await self.order_number_repo.next_order_number(now)
        order = Order(
            id=order_id,
            order_number=order_number,
            customer_id=request.customer_id,
            customer_email=request.customer_email,
            customer_name=request.customer_name,
            items=items,
            subtotal=subtotal,
            tax=request.tax,
            shipping=ShippingInfo(cost=request.shipping_cost),
            shipping_address=request.shipping_address,
            total=total,
            payment=PaymentRecord(
                method=request.payment_method, amount=total
            ),
            created_at=now,
            updated_at=now,
        )

        if request.payment_method == "online":
            try:
                intent = await self.payment_gateway.create_order(
                    total, order.payment.currency, order_number
                )
            except PaymentGatewayError:
                logger.error(
                    "Payment intent creation failed, releasing stock",
                    extra={"order_id": order_id},
                    exc_info=True,
                )
                await self.inventory_repo.restock(order_id, items)
                raise
            order.payment.gateway_order_id = intent.gateway_order_id
            order.add_timeline(
                "pending", "Order placed, awaiting payment", "customer", now
            )
        else:
            order.status = "confirmed"
            order.add_timeline(
                "confirmed",
                "Order placed with cash on delivery",
                "customer",
                now,
            )

        await self.order_repo.save_order(order)
        logger.info(
            "Order placed",
            extra={
                "order_id": order.id,
                "order_number": order.order_number,
                "total": str(order.total),
                "payment_method": order.payment.method,
            },
        )
        return order


class ConfirmPaymentUseCase:
    """Verify a gateway payment callback and mark the order paid."""

    CAPTURED_STATUSES = frozenset({"captured", "authorized"})

    def __init__(
        self,
        order_repo: OrderRepository,
        payment_gateway: PaymentGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.payment_gateway = ensure_payment_gateway(payment_gateway)
        self.clock = clock or _utcnow

    async def confirm_payment(
        self,
        order_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Order:
        order = await self.order_repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        if order.payment.status in ("paid", "refunded"):
            logger.info(
                "Payment already confirmed",
                extra={"order_id": order.id},
            )
            return order

        if order.payment.gateway_order_id != gateway_order_id:
            raise PaymentVerificationError(
                "Payment does not belong to this order"
            )
        valid = await self.payment_gateway.verify_signature(
            gateway_order_id, gateway_payment_id, signature
        )
        if not valid:
            logger.warning(
                "Payment signature mismatch", extra={"order_id": order.id}
            )
            raise PaymentVerificationError("Invalid payment signature")

        payment = await self.payment_gateway.fetch_payment(gateway_payment_id)
        now = self.clock()
        order.payment.gateway_payment_id = gateway_payment_id

        if payment.status in self.CAPTURED_STATUSES:
            order.payment.status = "paid"
            order.payment.transaction_id = gateway_payment_id
            order.payment.paid_at = now
            if order.status == "pending":
                order.status = "confirmed"
            elif order.is_terminal:
                logger.warning(
                    "Payment captured for a closed order, refund required",
                    extra={"order_id": order.id, "status": order.status},
                )
            order.add_timeline(
                order.status,
                f"Payment received: {order.payment.currency} "
                f"{order.total:.2f} ({payment.method or 'online'})",
                "customer",
                now,
            )
        else:
            order.payment.status = "failed"
            order.add_timeline(
                order.status,
                f"Payment {payment.status}: "
                f"{payment.error_description or 'not captured'}",
                "customer",
                now,
            )

        await self.order_repo.save_order(order)
        logger.info(
            "Payment confirmation recorded",
            extra={
                "order_id": order.id,
                "payment_status": order.payment.status,
                "gateway_status": payment.status,
            },
        )
        return order


class GetOrderUseCase:
    def __init__(self, order_repo: OrderRepository) -> None:
        self.order_repo = ensure_order_repository(order_repo)

    async def get_order(self, order_id: str) -> Order:
        order = await self.order_repo.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        return order

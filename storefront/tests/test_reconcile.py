"""
Tests for ReconcileOrderUseCase.

These run the Reconciliation Core against the memory repositories, so the
assertions are about what ends up stored: order status, refund bookkeeping,
stock counters and the timeline.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from hypothesis import given, settings, strategies as st

from storefront.domain import (
    InvalidOrderStateError,
    Order,
    OrderNotFoundError,
    ReconciliationEvent,
    RefundOutcome,
    status_rank,
)
from storefront.notifications import NotificationDispatcher
from storefront.refund import RefundOrderUseCase
from storefront.repos.memory.inventory import MemoryInventoryRepository
from storefront.repos.memory.order import MemoryOrderRepository
from storefront.repositories import (
    InventoryRepository,
    NotificationService,
    PaymentGateway,
)
from storefront.tests.factories import (
    FIXED_NOW,
    Clock,
    minimal_item,
    minimal_order,
    refund_calls,
    total_refunded,
)
from storefront.usecase import (
    POST_TERMINAL_NOTE,
    ReconcileOrderUseCase,
    cancelled_before_pickup,
)


def event(
    raw_status: Optional[str],
    order_id: str = "order-1",
    source: str = "webhook",
    description: Optional[str] = None,
) -> ReconciliationEvent:
    return ReconciliationEvent(
        order_id=order_id,
        raw_status=raw_status,
        source=source,
        timestamp=FIXED_NOW,
        raw_payload={"status": raw_status},
        event_description=description,
    )


class FlakyOrderRepository(MemoryOrderRepository):
    """Memory repository whose next ``failures`` saves raise."""

    def __init__(self) -> None:
        super().__init__()
        self.failures = 0

    async def save_order(self, order: Order) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("object store unavailable")
        await super().save_order(order)


class TestCarrierCancellation:
    @pytest.mark.asyncio
    async def test_rto_cancels_restocks_and_refunds_full_amount(
        self,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
        payment_gateway: MagicMock,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
    ) -> None:
        await order_repo.save_order(minimal_order())

        result = await reconciler.reconcile(event("RTO Initiated"))
        await notifier.drain()

        assert result.outcome == "cancelled"
        assert result.previous_status == "in_transit"
        assert result.status == "cancelled"
        assert result.cancelled_before_pickup is True
        assert result.restocked_quantity == 1
        assert result.refund is not None
        assert result.refund.success is True
        assert result.refund.amount == Decimal("1000")

        stored = await order_repo.get_order("order-1")
        assert stored.status == "cancelled"
        assert stored.payment.status == "refunded"
        assert stored.payment.refund.status == "processed"
        assert stored.payment.refund.refund_id == "rfnd_order-1"
        assert stored.shipment.cancelled_before_pickup is True
        assert stored.shipment.cancelled_at == FIXED_NOW
        assert await inventory_repo.get_stock("prod-1") == 11
        assert total_refunded(payment_gateway) == Decimal("1000")

    @pytest.mark.asyncio
    async def test_cancellation_after_pickup_keeps_shipping(
        self,
        order_repo: MemoryOrderRepository,
        payment_gateway: MagicMock,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
    ) -> None:
        await order_repo.save_order(minimal_order())

        result = await reconciler.reconcile(event("RTO In Transit"))
        await notifier.drain()

        assert result.cancelled_before_pickup is False
        assert result.refund.amount == Decimal("900")
        assert refund_calls(payment_gateway)[0]["amount"] == Decimal("900")

    @pytest.mark.asyncio
    async def test_duplicate_cancellation_is_a_no_op(
        self,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
        payment_gateway: MagicMock,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
    ) -> None:
        await order_repo.save_order(minimal_order())

        await reconciler.reconcile(event("RTO Initiated"))
        second = await reconciler.reconcile(event("RTO Initiated", source="poll"))
        await notifier.drain()

        assert second.outcome == "terminal_ignored"
        assert second.refund is None
        assert payment_gateway.refund_payment.await_count == 1
        assert await inventory_repo.get_stock("prod-1") == 11

        stored = await order_repo.get_order("order-1")
        assert stored.status == "cancelled"
        assert POST_TERMINAL_NOTE in stored.timeline[-1].message
        assert stored.timeline[-1].actor == "poll"

    @pytest.mark.asyncio
    async def test_restock_is_exact_when_webhook_and_poll_both_cancel(
        self,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
    ) -> None:
        await order_repo.save_order(
            minimal_order(
                total=Decimal("1300"),
                items=[
                    minimal_item("prod-1", 2, Decimal("300")),
                    minimal_item("prod-2", 3, Decimal("200")),
                ],
            )
        )

        await asyncio.gather(
            reconciler.reconcile(event("RTO Initiated")),
            reconciler.reconcile(event("RTO Initiated", source="poll")),
        )
        await notifier.drain()

        assert await inventory_repo.get_stock("prod-1") == 12
        assert await inventory_repo.get_stock("prod-2") == 8

    @pytest.mark.asyncio
    async def test_late_delivery_after_cancellation_is_only_noted(
        self,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
        payment_gateway: MagicMock,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
    ) -> None:
        await order_repo.save_order(minimal_order(status="cancelled"))

        result = await reconciler.reconcile(event("Delivered"))
        await notifier.drain()

        assert result.outcome == "terminal_ignored"
        assert result.status == "cancelled"
        payment_gateway.refund_payment.assert_not_called()
        assert await inventory_repo.get_stock("prod-1") == 10
        stored = await order_repo.get_order("order-1")
        assert stored.status == "cancelled"
        assert POST_TERMINAL_NOTE in stored.timeline[-1].message

    @pytest.mark.asyncio
    async def test_cancellation_notifies_customer_twice(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
        notification_service: MagicMock,
    ) -> None:
        await order_repo.save_order(minimal_order())

        await reconciler.reconcile(event("Cancelled"))
        await notifier.drain()

        notification_service.send_order_cancelled.assert_awaited_once()
        notification_service.send_refund_processed.assert_awaited_once()
        _, amount = notification_service.send_refund_processed.call_args.args
        assert amount == Decimal("1000")

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_undo_cancellation(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
        notification_service: MagicMock,
    ) -> None:
        notification_service.send_order_cancelled.side_effect = RuntimeError(
            "smtp down"
        )
        await order_repo.save_order(minimal_order())

        result = await reconciler.reconcile(event("Cancelled"))
        await notifier.drain()

        assert result.outcome == "cancelled"
        assert list(notifier.failures) == ["order_cancelled:order-1"]
        notification_service.send_refund_processed.assert_awaited_once()
        stored = await order_repo.get_order("order-1")
        assert stored.status == "cancelled"

    @pytest.mark.asyncio
    async def test_cod_order_is_cancelled_without_refund(
        self,
        order_repo: MemoryOrderRepository,
        payment_gateway: MagicMock,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
        notification_service: MagicMock,
    ) -> None:
        await order_repo.save_order(
            minimal_order(payment_method="cod", payment_status="pending")
        )

        result = await reconciler.reconcile(event("Cancelled"))
        await notifier.drain()

        assert result.refund.is_cod is True
        payment_gateway.refund_payment.assert_not_called()
        notification_service.send_refund_processed.assert_not_called()

    @pytest.mark.asyncio
    async def test_refund_failure_leaves_order_cancelled(
        self,
        order_repo: MemoryOrderRepository,
        payment_gateway: MagicMock,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
        notification_service: MagicMock,
    ) -> None:
        payment_gateway.refund_payment.side_effect = None
        payment_gateway.refund_payment.return_value = RefundOutcome(
            status="failed", error="BAD_REQUEST_ERROR"
        )
        await order_repo.save_order(minimal_order())

        result = await reconciler.reconcile(event("RTO Initiated"))
        await notifier.drain()

        assert result.outcome == "cancelled"
        assert result.refund.success is False
        stored = await order_repo.get_order("order-1")
        assert stored.status == "cancelled"
        assert stored.payment.status == "paid"
        assert stored.payment.refund.status == "failed"
        assert stored.payment.refund.error_message == "BAD_REQUEST_ERROR"
        notification_service.send_order_cancelled.assert_awaited_once()
        notification_service.send_refund_processed.assert_not_called()

    @pytest.mark.asyncio
    async def test_restock_failure_still_attempts_refund(
        self,
        order_repo: MemoryOrderRepository,
        refund_use_case: RefundOrderUseCase,
        notifier: NotificationDispatcher,
        payment_gateway: MagicMock,
        clock: Clock,
    ) -> None:
        inventory_repo = MagicMock(spec=InventoryRepository)
        inventory_repo.restock = AsyncMock(
            side_effect=ConnectionError("database unavailable")
        )
        reconciler = ReconcileOrderUseCase(
            order_repo, inventory_repo, refund_use_case, notifier, clock=clock
        )
        await order_repo.save_order(minimal_order())

        result = await reconciler.reconcile(event("Cancelled"))
        await notifier.drain()

        assert result.restock_error == "database unavailable"
        assert result.restocked_quantity == 0
        assert result.refund.success is True
        payment_gateway.refund_payment.assert_awaited_once()
        stored = await order_repo.get_order("order-1")
        assert any(
            "Restock failed" in entry.message for entry in stored.timeline
        )


class TestTransitions:
    @pytest.mark.asyncio
    async def test_forward_status_is_applied(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
    ) -> None:
        await order_repo.save_order(minimal_order())

        result = await reconciler.reconcile(event("Out for Delivery"))

        assert result.outcome == "transitioned"
        assert result.status == "out_for_delivery"
        stored = await order_repo.get_order("order-1")
        assert stored.status == "out_for_delivery"
        assert stored.timeline[-1].status == "out_for_delivery"
        assert stored.timeline[-1].actor == "webhook"

    @pytest.mark.asyncio
    async def test_delivery_records_delivery_time(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
    ) -> None:
        await order_repo.save_order(minimal_order(status="out_for_delivery"))

        await reconciler.reconcile(event("Delivered"))

        stored = await order_repo.get_order("order-1")
        assert stored.status == "delivered"
        assert stored.shipment.delivered_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_backward_status_is_ignored(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
    ) -> None:
        await order_repo.save_order(minimal_order(status="out_for_delivery"))

        result = await reconciler.reconcile(event("In Transit"))

        assert result.outcome == "unchanged"
        assert result.mapped_status == "in_transit"
        stored = await order_repo.get_order("order-1")
        assert stored.status == "out_for_delivery"

    @pytest.mark.asyncio
    async def test_pickup_sends_shipment_email(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
        notification_service: MagicMock,
    ) -> None:
        await order_repo.save_order(minimal_order(status="packed"))

        await reconciler.reconcile(event("Picked Up"))
        await notifier.drain()

        notification_service.send_shipment_picked.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_order_raises(
        self, reconciler: ReconcileOrderUseCase
    ) -> None:
        with pytest.raises(OrderNotFoundError):
            await reconciler.reconcile(event("Delivered", order_id="nope"))


class TestShipmentMetadata:
    @pytest.mark.asyncio
    async def test_metadata_is_recorded_on_every_event(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
    ) -> None:
        await order_repo.save_order(minimal_order())

        await reconciler.reconcile(
            event("In Transit", source="poll", description="Reached hub")
        )

        stored = await order_repo.get_order("order-1")
        assert stored.shipment.status == "In Transit"
        assert stored.shipment.last_event == "Reached hub"
        assert stored.shipment.last_synced_at == FIXED_NOW
        assert stored.shipment.raw_response == {"status": "In Transit"}

    @pytest.mark.asyncio
    async def test_new_scan_is_noted_once(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
    ) -> None:
        await order_repo.save_order(minimal_order())

        await reconciler.reconcile(event("In Transit", description="Reached hub"))
        await reconciler.reconcile(event("In Transit", description="Reached hub"))

        stored = await order_repo.get_order("order-1")
        notes = [
            entry
            for entry in stored.timeline
            if entry.message == "Carrier event: Reached hub"
        ]
        assert len(notes) == 1

    @pytest.mark.asyncio
    async def test_metadata_save_is_retried_once(
        self,
        refund_use_case: RefundOrderUseCase,
        inventory_repo: MemoryInventoryRepository,
        notifier: NotificationDispatcher,
        clock: Clock,
    ) -> None:
        repo = FlakyOrderRepository()
        await repo.save_order(minimal_order())
        reconciler = ReconcileOrderUseCase(
            repo, inventory_repo, refund_use_case, notifier, clock=clock
        )
        repo.failures = 1

        result = await reconciler.reconcile(event("In Transit"))

        assert result.metadata_persisted is True
        stored = await repo.get_order("order-1")
        assert stored.shipment.last_synced_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_metadata_failure_is_reported_not_raised(
        self,
        refund_use_case: RefundOrderUseCase,
        inventory_repo: MemoryInventoryRepository,
        notifier: NotificationDispatcher,
        clock: Clock,
    ) -> None:
        repo = FlakyOrderRepository()
        await repo.save_order(minimal_order())
        reconciler = ReconcileOrderUseCase(
            repo, inventory_repo, refund_use_case, notifier, clock=clock
        )
        repo.failures = 2

        result = await reconciler.reconcile(event("In Transit"))

        assert result.outcome == "unchanged"
        assert result.metadata_persisted is False
        assert "object store unavailable" in result.error


class TestAdminCancellation:
    @pytest.mark.asyncio
    async def test_admin_cancel_forces_refund_for_unconfirmed_payment(
        self,
        order_repo: MemoryOrderRepository,
        payment_gateway: MagicMock,
        reconciler: ReconcileOrderUseCase,
        notifier: NotificationDispatcher,
    ) -> None:
        await order_repo.save_order(
            minimal_order(status="confirmed", awb=None, payment_status="pending")
        )

        result = await reconciler.cancel_by_admin("order-1", "Customer asked")
        await notifier.drain()

        assert result.outcome == "cancelled"
        assert result.cancelled_before_pickup is True
        assert result.refund.success is True
        assert result.refund.amount == Decimal("1000")
        payment_gateway.refund_payment.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_admin_cancel_of_cancelled_order_is_rejected(
        self,
        order_repo: MemoryOrderRepository,
        reconciler: ReconcileOrderUseCase,
    ) -> None:
        await order_repo.save_order(minimal_order(status="cancelled"))

        with pytest.raises(InvalidOrderStateError):
            await reconciler.cancel_by_admin("order-1", "again")


@pytest.mark.parametrize(
    "awb,raw,expected",
    [
        (None, "Picked Up", True),
        ("AWB1", "RTO Initiated", True),
        ("AWB1", "RTO - Picked up", False),
        ("AWB1", "Cancelled after Dispatched", False),
        ("AWB1", "RTO In Transit", False),
        ("AWB1", None, True),
    ],
)
def test_cancelled_before_pickup(awb, raw, expected) -> None:
    assert cancelled_before_pickup(awb, raw) is expected


RAW_STATUSES = [
    "RTO Initiated",
    "Cancelled",
    "Delivered",
    "In Transit",
    "Out for Delivery",
    "Picked Up",
    "",
]


def _build_engine(clock: Clock):
    order_repo = MemoryOrderRepository()
    inventory_repo = MemoryInventoryRepository({"prod-1": 10, "prod-2": 5})
    gateway = MagicMock(spec=PaymentGateway)
    gateway.refund_payment = AsyncMock(
        side_effect=lambda request: RefundOutcome(
            status="processed", refund_id="rfnd_1", amount=request.amount
        )
    )
    service = MagicMock(spec=NotificationService)
    service.send_order_cancelled = AsyncMock(return_value=None)
    service.send_refund_processed = AsyncMock(return_value=None)
    service.send_shipment_picked = AsyncMock(return_value=None)
    notifier = NotificationDispatcher(service)
    reconciler = ReconcileOrderUseCase(
        order_repo,
        inventory_repo,
        RefundOrderUseCase(order_repo, gateway, clock=clock),
        notifier,
        clock=clock,
    )
    return order_repo, inventory_repo, gateway, notifier, reconciler


class TestReconciliationProperties:
    @settings(max_examples=50, deadline=None)
    @given(
        st.lists(st.sampled_from(RAW_STATUSES), max_size=6),
        st.sampled_from(["webhook", "poll"]),
    )
    def test_cancellation_is_absorbing(
        self, later_events: List[str], source: str
    ) -> None:
        """After a cancellation, no event sequence changes status, refunds
        again or restocks again."""

        async def scenario() -> None:
            clock = Clock()
            order_repo, inventory_repo, gateway, notifier, reconciler = (
                _build_engine(clock)
            )
            await order_repo.save_order(
                minimal_order(
                    items=[
                        minimal_item("prod-1", 2, Decimal("300")),
                        minimal_item("prod-2", 1, Decimal("300")),
                    ]
                )
            )
            await reconciler.reconcile(event("RTO Initiated"))
            for raw in later_events:
                clock.now += timedelta(minutes=5)
                result = await reconciler.reconcile(event(raw, source=source))
                assert result.outcome == "terminal_ignored"
            await notifier.drain()

            stored = await order_repo.get_order("order-1")
            assert stored.status == "cancelled"
            assert gateway.refund_payment.await_count == 1
            assert total_refunded(gateway) <= stored.total
            assert await inventory_repo.get_stock("prod-1") == 12
            assert await inventory_repo.get_stock("prod-2") == 6

        asyncio.run(scenario())

    @settings(max_examples=50, deadline=None)
    @given(st.lists(st.sampled_from(RAW_STATUSES[2:]), min_size=1, max_size=8))
    def test_status_never_moves_backwards(self, events: List[str]) -> None:
        async def scenario() -> None:
            clock = Clock()
            order_repo, _, _, notifier, reconciler = _build_engine(clock)
            await order_repo.save_order(minimal_order(status="packed"))
            rank = status_rank("packed")
            for raw in events:
                clock.now += timedelta(minutes=1)
                result = await reconciler.reconcile(event(raw))
                assert status_rank(result.status) >= rank
                rank = status_rank(result.status)
            await notifier.drain()

        asyncio.run(scenario())

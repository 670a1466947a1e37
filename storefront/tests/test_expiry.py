"""
Tests for ExpirePendingOrdersUseCase, the cancellation of checkouts that
were never paid for.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from storefront.domain import Order
from storefront.repos.memory.inventory import MemoryInventoryRepository
from storefront.repos.memory.order import MemoryOrderRepository
from storefront.tests.factories import FIXED_NOW, Clock, minimal_order
from storefront.usecase import ExpirePendingOrdersUseCase


def unpaid_order(order_id: str = "order-1", age_hours: float = 13) -> Order:
    return minimal_order(
        order_id=order_id,
        status="pending",
        awb=None,
        payment_status="pending",
        gateway_payment_id=None,
        created_at=FIXED_NOW - timedelta(hours=age_hours),
    )


@pytest.fixture
def expiry(
    order_repo: MemoryOrderRepository,
    inventory_repo: MemoryInventoryRepository,
    clock: Clock,
) -> ExpirePendingOrdersUseCase:
    return ExpirePendingOrdersUseCase(
        order_repo=order_repo, inventory_repo=inventory_repo, clock=clock
    )


class TestExpirePendingOrders:
    @pytest.mark.asyncio
    async def test_unpaid_order_past_window_is_cancelled_and_restocked(
        self,
        expiry: ExpirePendingOrdersUseCase,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
    ) -> None:
        await order_repo.save_order(unpaid_order())

        summary = await expiry.run(limit=50)

        assert summary.total == 1
        assert summary.cancelled == 1
        assert summary.restocked_quantity == 1
        assert summary.errors == 0
        assert summary.details[0].outcome == "cancelled"

        stored = await order_repo.get_order("order-1")
        assert stored.status == "cancelled"
        assert stored.payment.status == "cancelled"
        assert stored.shipment.cancelled_at == FIXED_NOW
        assert stored.shipment.cancellation_reason == (
            "Payment not completed within 12 hours"
        )
        assert stored.timeline[-1].status == "cancelled"
        assert stored.timeline[-1].actor == "system"
        assert await inventory_repo.get_stock("prod-1") == 11

    @pytest.mark.parametrize(
        "order",
        [
            unpaid_order(age_hours=11),
            minimal_order(
                status="confirmed",
                awb=None,
                payment_status="paid",
                created_at=FIXED_NOW - timedelta(days=2),
            ),
            minimal_order(
                status="confirmed",
                awb=None,
                payment_method="cod",
                payment_status="pending",
                gateway_payment_id=None,
                created_at=FIXED_NOW - timedelta(days=2),
            ),
            minimal_order(
                status="pending",
                awb=None,
                payment_status="failed",
                created_at=FIXED_NOW - timedelta(days=2),
            ),
        ],
        ids=["inside-window", "paid", "cash-on-delivery", "payment-failed"],
    )
    @pytest.mark.asyncio
    async def test_orders_not_awaiting_payment_are_left_alone(
        self,
        expiry: ExpirePendingOrdersUseCase,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
        order: Order,
    ) -> None:
        await order_repo.save_order(order)

        summary = await expiry.run(limit=50)

        assert summary.total == 0
        assert (await order_repo.get_order("order-1")).status == order.status
        assert await inventory_repo.get_stock("prod-1") == 10

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(
        self,
        expiry: ExpirePendingOrdersUseCase,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
    ) -> None:
        await order_repo.save_order(unpaid_order())

        await expiry.run(limit=50)
        summary = await expiry.run(limit=50)

        assert summary.total == 0
        assert await inventory_repo.get_stock("prod-1") == 11

    @pytest.mark.asyncio
    async def test_failed_save_is_retried_without_restocking_twice(
        self,
        expiry: ExpirePendingOrdersUseCase,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
    ) -> None:
        await order_repo.save_order(unpaid_order())

        with patch.object(
            order_repo,
            "save_order",
            new=AsyncMock(side_effect=ConnectionError("minio unreachable")),
        ):
            failed = await expiry.run(limit=50)

        assert failed.errors == 1
        assert failed.details[0].error == "ConnectionError: minio unreachable"
        assert (await order_repo.get_order("order-1")).status == "pending"
        assert await inventory_repo.get_stock("prod-1") == 11

        retried = await expiry.run(limit=50)

        assert retried.cancelled == 1
        assert retried.restocked_quantity == 0
        assert (await order_repo.get_order("order-1")).status == "cancelled"
        assert await inventory_repo.get_stock("prod-1") == 11

    @pytest.mark.asyncio
    async def test_one_failing_order_does_not_stop_the_run(
        self,
        expiry: ExpirePendingOrdersUseCase,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
    ) -> None:
        await order_repo.save_order(unpaid_order("order-1", age_hours=20))
        await order_repo.save_order(unpaid_order("order-2", age_hours=15))
        real_restock = inventory_repo.restock

        async def restock(order_id, items):
            if order_id == "order-1":
                raise ConnectionError("postgres unreachable")
            return await real_restock(order_id, items)

        with patch.object(inventory_repo, "restock", new=restock):
            summary = await expiry.run(limit=50)

        assert summary.total == 2
        assert summary.cancelled == 1
        assert summary.errors == 1
        assert [d.outcome for d in summary.details] == ["error", "cancelled"]
        assert (await order_repo.get_order("order-1")).status == "pending"
        assert (await order_repo.get_order("order-2")).status == "cancelled"

    @pytest.mark.asyncio
    async def test_order_paid_after_listing_is_skipped(
        self,
        expiry: ExpirePendingOrdersUseCase,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
    ) -> None:
        listed = unpaid_order()
        paid = listed.model_copy(deep=True)
        paid.status = "confirmed"
        paid.payment.status = "paid"
        await order_repo.save_order(paid)

        with patch.object(
            order_repo,
            "list_expired_pending",
            new=AsyncMock(return_value=[listed]),
        ):
            summary = await expiry.run(limit=50)

        assert summary.cancelled == 0
        assert summary.details[0].outcome == "unchanged"
        assert (await order_repo.get_order("order-1")).status == "confirmed"
        assert await inventory_repo.get_stock("prod-1") == 10

    @pytest.mark.asyncio
    async def test_limit_takes_oldest_orders_first(
        self,
        expiry: ExpirePendingOrdersUseCase,
        order_repo: MemoryOrderRepository,
    ) -> None:
        await order_repo.save_order(unpaid_order("order-1", age_hours=13))
        await order_repo.save_order(unpaid_order("order-2", age_hours=30))
        await order_repo.save_order(unpaid_order("order-3", age_hours=20))

        summary = await expiry.run(limit=2)

        assert [d.order_id for d in summary.details] == ["order-2", "order-3"]
        assert (await order_repo.get_order("order-1")).status == "pending"

    @pytest.mark.asyncio
    async def test_payment_window_is_configurable(
        self,
        order_repo: MemoryOrderRepository,
        inventory_repo: MemoryInventoryRepository,
        clock: Clock,
    ) -> None:
        await order_repo.save_order(unpaid_order(age_hours=7))
        expiry = ExpirePendingOrdersUseCase(
            order_repo=order_repo,
            inventory_repo=inventory_repo,
            ttl=timedelta(hours=6),
            clock=clock,
        )

        summary = await expiry.run(limit=50)

        assert summary.cancelled == 1
        stored = await order_repo.get_order("order-1")
        assert stored.shipment.cancellation_reason == (
            "Payment not completed within 6 hours"
        )

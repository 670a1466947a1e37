from unittest.mock import AsyncMock, MagicMock

import pytest

from storefront.domain import RefundOutcome
from storefront.notifications import NotificationDispatcher
from storefront.refund import RefundOrderUseCase
from storefront.repos.memory.inventory import MemoryInventoryRepository
from storefront.repos.memory.order import MemoryOrderRepository
from storefront.repositories import (
    CarrierGateway,
    NotificationService,
    PaymentGateway,
)
from storefront.tests.factories import Clock
from storefront.usecase import ReconcileOrderUseCase, SyncOrderUseCase


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def order_repo() -> MemoryOrderRepository:
    return MemoryOrderRepository()


@pytest.fixture
def inventory_repo() -> MemoryInventoryRepository:
    return MemoryInventoryRepository({"prod-1": 10, "prod-2": 5})


@pytest.fixture
def payment_gateway() -> MagicMock:
    """Payment gateway mock that accepts every refund as processed."""
    gateway = MagicMock(spec=PaymentGateway)
    gateway.refund_payment = AsyncMock(
        side_effect=lambda request: RefundOutcome(
            status="processed",
            refund_id=f"rfnd_{request.order_id}",
            amount=request.amount,
        )
    )
    return gateway


@pytest.fixture
def carrier_gateway() -> MagicMock:
    gateway = MagicMock(spec=CarrierGateway)
    gateway.fetch_tracking = AsyncMock()
    gateway.create_shipment = AsyncMock()
    return gateway


@pytest.fixture
def notification_service() -> MagicMock:
    service = MagicMock(spec=NotificationService)
    service.send_order_cancelled = AsyncMock(return_value=None)
    service.send_refund_processed = AsyncMock(return_value=None)
    service.send_shipment_picked = AsyncMock(return_value=None)
    return service


@pytest.fixture
def notifier(notification_service: MagicMock) -> NotificationDispatcher:
    return NotificationDispatcher(notification_service)


@pytest.fixture
def refund_use_case(
    order_repo: MemoryOrderRepository,
    payment_gateway: MagicMock,
    clock: Clock,
) -> RefundOrderUseCase:
    return RefundOrderUseCase(order_repo, payment_gateway, clock=clock)


@pytest.fixture
def reconciler(
    order_repo: MemoryOrderRepository,
    inventory_repo: MemoryInventoryRepository,
    refund_use_case: RefundOrderUseCase,
    notifier: NotificationDispatcher,
    clock: Clock,
) -> ReconcileOrderUseCase:
    return ReconcileOrderUseCase(
        order_repo, inventory_repo, refund_use_case, notifier, clock=clock
    )


@pytest.fixture
def sync_use_case(
    order_repo: MemoryOrderRepository,
    carrier_gateway: MagicMock,
    reconciler: ReconcileOrderUseCase,
    clock: Clock,
) -> SyncOrderUseCase:
    return SyncOrderUseCase(
        order_repo, carrier_gateway, reconciler, clock=clock
    )


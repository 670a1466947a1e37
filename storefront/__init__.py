"""
Order lifecycle and carrier reconciliation engine.

This package keeps store orders in step with what the shipping carrier
reports, applying the compensating actions (restock, refund, customer
notification) a cancellation requires.
"""

from .domain import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentRecord,
    ReconciliationEvent,
    ReconciliationResult,
    RefundRecord,
    RefundResult,
    ShipmentRecord,
    SweepRequest,
    SweepSummary,
)
from .refund import RefundOrderUseCase
from .repositories import (
    CarrierGateway,
    InventoryRepository,
    NotificationService,
    OrderNumberRepository,
    OrderRepository,
    PaymentGateway,
)
from .status_mapper import map_carrier_status
from .usecase import (
    BulkReconciliationUseCase,
    ReconcileOrderUseCase,
    SyncOrderUseCase,
)

__all__ = [
    # Order aggregate
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentRecord",
    "RefundRecord",
    "ShipmentRecord",
    # Reconciliation inputs and outputs
    "ReconciliationEvent",
    "ReconciliationResult",
    "RefundResult",
    "SweepRequest",
    "SweepSummary",
    # Repository and gateway protocols
    "OrderRepository",
    "OrderNumberRepository",
    "InventoryRepository",
    "CarrierGateway",
    "PaymentGateway",
    "NotificationService",
    # Use cases
    "ReconcileOrderUseCase",
    "RefundOrderUseCase",
    "SyncOrderUseCase",
    "BulkReconciliationUseCase",
    "map_carrier_status",
]

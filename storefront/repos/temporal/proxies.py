"""
Workflow-side proxies for the storefront protocols.

These classes are used *inside* Temporal workflows. Every method call
becomes an activity execution, keeping the workflow deterministic while
the use cases stay unaware of Temporal.
"""

from storefront.repositories import (
    CarrierGateway,
    InventoryRepository,
    NotificationService,
    OrderRepository,
    PaymentGateway,
)
from storefront.repos.temporal.activity_names import (
    CARRIER_ACTIVITY_BASE,
    INVENTORY_ACTIVITY_BASE,
    NOTIFICATION_ACTIVITY_BASE,
    ORDER_ACTIVITY_BASE,
    PAYMENT_ACTIVITY_BASE,
)
from storefront.repos.temporal.decorators import temporal_workflow_proxy


@temporal_workflow_proxy(ORDER_ACTIVITY_BASE, default_timeout_seconds=30)
class WorkflowOrderRepositoryProxy(OrderRepository):
    """Order store calls, retried by Temporal; saves are idempotent."""

    pass


@temporal_workflow_proxy(INVENTORY_ACTIVITY_BASE, default_timeout_seconds=30)
class WorkflowInventoryRepositoryProxy(InventoryRepository):
    """Restocks are retried safely thanks to the restock ledger."""

    pass


@temporal_workflow_proxy(
    CARRIER_ACTIVITY_BASE,
    default_timeout_seconds=30,
    fail_fast_methods=["*"],
)
class WorkflowCarrierGatewayProxy(CarrierGateway):
    pass


@temporal_workflow_proxy(
    PAYMENT_ACTIVITY_BASE,
    default_timeout_seconds=30,
    fail_fast_methods=["*"],
)
class WorkflowPaymentGatewayProxy(PaymentGateway):
    pass


@temporal_workflow_proxy(
    NOTIFICATION_ACTIVITY_BASE,
    default_timeout_seconds=30,
    fail_fast_methods=["*"],
)
class WorkflowNotificationServiceProxy(NotificationService):
    pass


__all__ = [
    "WorkflowOrderRepositoryProxy",
    "WorkflowInventoryRepositoryProxy",
    "WorkflowCarrierGatewayProxy",
    "WorkflowPaymentGatewayProxy",
    "WorkflowNotificationServiceProxy",
]

"""
Temporal activity wrappers for the storefront adapters.

Each class subclasses a concrete adapter and registers its protocol
methods as activities. Only the worker imports this module; workflows go
through storefront.repos.temporal.proxies.
"""

from storefront.repos.http.carrier import DelhiveryCarrierGateway
from storefront.repos.http.notifications import HttpNotificationService
from storefront.repos.http.payment import RazorpayPaymentGateway
from storefront.repos.minio.order import MinioOrderRepository
from storefront.repos.postgresql.inventory import PostgreSQLInventoryRepository
from storefront.repos.temporal.activity_names import (
    CARRIER_ACTIVITY_BASE,
    INVENTORY_ACTIVITY_BASE,
    NOTIFICATION_ACTIVITY_BASE,
    ORDER_ACTIVITY_BASE,
    PAYMENT_ACTIVITY_BASE,
)
from storefront.repos.temporal.decorators import (
    temporal_activity_registration,
)


@temporal_activity_registration(ORDER_ACTIVITY_BASE)
class TemporalMinioOrderRepository(MinioOrderRepository):
    """Temporal activity wrapper for MinioOrderRepository."""

    pass


@temporal_activity_registration(INVENTORY_ACTIVITY_BASE)
class TemporalPostgreSQLInventoryRepository(PostgreSQLInventoryRepository):
    """Temporal activity wrapper for PostgreSQLInventoryRepository."""

    pass


@temporal_activity_registration(CARRIER_ACTIVITY_BASE)
class TemporalDelhiveryCarrierGateway(DelhiveryCarrierGateway):
    """Temporal activity wrapper for DelhiveryCarrierGateway."""

    pass


@temporal_activity_registration(PAYMENT_ACTIVITY_BASE)
class TemporalRazorpayPaymentGateway(RazorpayPaymentGateway):
    """Temporal activity wrapper for RazorpayPaymentGateway."""

    pass


@temporal_activity_registration(NOTIFICATION_ACTIVITY_BASE)
class TemporalHttpNotificationService(HttpNotificationService):
    """Temporal activity wrapper for HttpNotificationService."""

    pass


__all__ = [
    "TemporalMinioOrderRepository",
    "TemporalPostgreSQLInventoryRepository",
    "TemporalDelhiveryCarrierGateway",
    "TemporalRazorpayPaymentGateway",
    "TemporalHttpNotificationService",
]

"""
Activity name prefixes shared by the activity registrations and the
workflow proxies.

Kept in their own module so that the proxies (imported inside the workflow
sandbox) never import the concrete adapters behind the activities.
"""

ORDER_ACTIVITY_BASE = "storefront.order_repo.minio"
INVENTORY_ACTIVITY_BASE = "storefront.inventory_repo.postgresql"
CARRIER_ACTIVITY_BASE = "storefront.carrier_gateway.delhivery"
PAYMENT_ACTIVITY_BASE = "storefront.payment_gateway.razorpay"
NOTIFICATION_ACTIVITY_BASE = "storefront.notification_service.http"

__all__ = [
    "ORDER_ACTIVITY_BASE",
    "INVENTORY_ACTIVITY_BASE",
    "CARRIER_ACTIVITY_BASE",
    "PAYMENT_ACTIVITY_BASE",
    "NOTIFICATION_ACTIVITY_BASE",
]

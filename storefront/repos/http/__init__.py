"""HTTP clients for the carrier, payment and mail APIs."""

from .carrier import DelhiveryCarrierGateway
from .notifications import HttpNotificationService
from .payment import RazorpayPaymentGateway

__all__ = [
    "DelhiveryCarrierGateway",
    "HttpNotificationService",
    "RazorpayPaymentGateway",
]

"""
Pydantic models for API requests.
These define the contract between the API and external clients.
"""

from typing import Optional

from pydantic import BaseModel, Field


class CancelOrderRequest(BaseModel):
    """Request model for an admin cancellation."""

    reason: str = Field(default="Cancelled by admin", min_length=1)


class RefundOrderRequest(BaseModel):
    reason: str = Field(default="Manual refund", min_length=1)
    deduct_shipping: bool = False


class BulkSyncRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=1)


class VerifyPaymentRequest(BaseModel):
    """Checkout callback fields as posted by the payment widget."""

    gateway_order_id: str
    gateway_payment_id: str
    signature: str

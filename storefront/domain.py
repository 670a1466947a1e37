"""
Domain models defined as Pydantic models.

The Order aggregate carries its payment, refund and shipment sub-records
and an append-only timeline. Everything here is pure data plus small
helpers that enforce the aggregate's invariants; persistence and external
calls live behind the protocols in storefront.repositories.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, get_args

from pydantic import BaseModel, Field, field_validator

OrderStatus = Literal[
    "pending",
    "confirmed",
    "processing",
    "packed",
    "picked",
    "in_transit",
    "out_for_delivery",
    "shipped",
    "delivered",
    "cancelled",
    "refunded",
]
PaymentStatus = Literal["pending", "paid", "failed", "refunded", "cancelled"]
RefundStatus = Literal["none", "pending", "processed", "failed"]
EventSource = Literal["webhook", "poll", "admin"]

ORDER_STATUSES: tuple = get_args(OrderStatus)
TERMINAL_STATUSES = frozenset({"cancelled", "refunded"})
# Orders in these states are never polled by the sweep
SWEEP_EXCLUDED_STATUSES = frozenset({"delivered", "cancelled", "refunded"})

# Happy-path ordering; "shipped" is the carrier's synonym for in_transit.
STATUS_RANK: Dict[str, int] = {
    "pending": 0,
    "confirmed": 1,
    "processing": 2,
    "packed": 3,
    "picked": 4,
    "in_transit": 5,
    "shipped": 5,
    "out_for_delivery": 6,
    "delivered": 7,
}


class OrderNotFoundError(Exception):
    """Raised when an order cannot be found by id or AWB"""

    pass


class InvalidOrderStateError(Exception):
    """Raised when an operation is not allowed in the order's status"""

    pass


class ShipmentAlreadyExistsError(InvalidOrderStateError):
    """Raised when a shipment is requested for an order that has an AWB"""

    pass


class MissingAwbError(Exception):
    """Raised when a carrier operation needs an AWB the order lacks"""

    pass


class InsufficientStockError(Exception):
    """Raised when stock cannot be reserved for an order"""

    pass


class OrderItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    quantity: int
    price: Decimal
    size: Optional[str] = None
    color: Optional[str] = None
    total: Optional[Decimal] = Field(default=None, validate_default=True)

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("price")
    @classmethod
    def price_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must not be negative")
        return v

    @field_validator("total")
    @classmethod
    def total_defaults_to_line_amount(
        cls, v: Optional[Decimal], info
    ) -> Optional[Decimal]:
        if v is None and "price" in info.data and "quantity" in info.data:
            return info.data["price"] * info.data["quantity"]
        return v


class ShippingInfo(BaseModel):
    cost: Decimal = Decimal("0")
    method: str = "standard"
    carrier: Optional[str] = None

    @field_validator("cost")
    @classmethod
    def cost_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Shipping cost must not be negative")
        return v


class ShippingAddress(BaseModel):
    name: str
    phone: str
    line1: str
    line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str = "India"


class RefundRecord(BaseModel):
    status: RefundStatus = "none"
    refund_id: Optional[str] = None
    amount: Optional[Decimal] = None
    reason: Optional[str] = None
    initiated_by: Optional[str] = None
    attempts: int = 0
    last_attempt_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class PaymentRecord(BaseModel):
    method: Literal["online", "cod"] = "online"
    status: PaymentStatus = "pending"
    transaction_id: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    amount: Optional[Decimal] = None
    currency: str = "INR"
    paid_at: Optional[datetime] = None
    refund: RefundRecord = Field(default_factory=RefundRecord)


class ShipmentRecord(BaseModel):
    awb: Optional[str] = None
    tracking_url: Optional[str] = None
    carrier: Optional[str] = None
    status: Optional[str] = None
    last_event: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_before_pickup: Optional[bool] = None
    raw_response: Optional[Dict[str, Any]] = None


class TimelineEntry(BaseModel):
    status: str
    message: str
    timestamp: datetime
    actor: str = "system"


class Order(BaseModel):
    id: str
    order_number: str
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    items: List[OrderItem]
    subtotal: Decimal
    tax: Decimal = Decimal("0")
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)
    shipping_address: Optional[ShippingAddress] = None
    total: Decimal
    status: OrderStatus = "pending"
    payment: PaymentRecord = Field(default_factory=PaymentRecord)
    shipment: ShipmentRecord = Field(default_factory=ShipmentRecord)
    timeline: List[TimelineEntry] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[OrderItem]) -> List[OrderItem]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @field_validator("total")
    @classmethod
    def total_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Total must not be negative")
        return v

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def add_timeline(
        self, status: str, message: str, actor: str, at: datetime
    ) -> None:
        """Append an audit entry. Entries are never edited or removed."""
        self.timeline.append(
            TimelineEntry(
                status=status, message=message, timestamp=at, actor=actor
            )
        )
        self.updated_at = at

    def is_sync_candidate(self, stale_before: datetime) -> bool:
        """True when the bulk sweep should poll the carrier for this order."""
        if not self.shipment.awb:
            return False
        if self.status in SWEEP_EXCLUDED_STATUSES:
            return False
        last_synced = self.shipment.last_synced_at
        return last_synced is None or last_synced < stale_before

    def is_expired_pending(self, created_before: datetime) -> bool:
        """True when checkout never completed and the payment window closed."""
        return (
            self.status == "pending"
            and self.payment.status == "pending"
            and self.created_at is not None
            and self.created_at < created_before
        )


def status_rank(status: Optional[str]) -> int:
    """Rank of a non-terminal status; unknown statuses rank lowest."""
    if status is None:
        return -1
    return STATUS_RANK.get(status, -1)


def format_order_number(day: datetime, sequence: int) -> str:
    """Human readable order number, unique per day: SF{YY}{MM}{DD}{seq}."""
    return f"SF{day:%y%m%d}{sequence:06d}"


class ReconciliationEvent(BaseModel):
    """A carrier status observation. Built at ingress, never persisted."""

    order_id: str
    raw_status: Optional[str] = None
    source: EventSource
    timestamp: datetime
    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    event_description: Optional[str] = None


class RefundOptions(BaseModel):
    reason: str
    deduct_shipping: bool = False
    initiated_by: str = "system"
    force: bool = False


class RefundResult(BaseModel):
    success: bool
    not_paid: bool = False
    is_cod: bool = False
    already_refunded: bool = False
    pending: bool = False
    refund_id: Optional[str] = None
    amount: Optional[Decimal] = None
    error: Optional[str] = None


class ReconciliationResult(BaseModel):
    order_id: str
    outcome: Literal[
        "terminal_ignored", "cancelled", "transitioned", "unchanged"
    ]
    previous_status: OrderStatus
    status: OrderStatus
    mapped_status: Optional[OrderStatus] = None
    cancelled_before_pickup: Optional[bool] = None
    restocked_quantity: int = 0
    restock_error: Optional[str] = None
    refund: Optional[RefundResult] = None
    metadata_persisted: bool = True
    error: Optional[str] = None


class SweepDetail(BaseModel):
    order_id: str
    order_number: Optional[str] = None
    outcome: Optional[str] = None
    status: Optional[str] = None
    error: Optional[str] = None


class SweepSummary(BaseModel):
    total: int = 0
    synced: int = 0
    cancelled: int = 0
    errors: int = 0
    details: List[SweepDetail] = Field(default_factory=list)


class ExpirySummary(BaseModel):
    total: int = 0
    cancelled: int = 0
    restocked_quantity: int = 0
    errors: int = 0
    details: List[SweepDetail] = Field(default_factory=list)


class ExpiryRequest(BaseModel):
    """Workflow input for one pending-order expiry run."""

    limit: int = Field(default=200, ge=1)
    ttl_hours: int = Field(default=12, ge=1)


class SweepRequest(BaseModel):
    """Workflow input for one bulk reconciliation run."""

    limit: int = Field(default=100, ge=1)
    staleness_minutes: int = Field(default=30, ge=0)
    delay_seconds: float = Field(default=0.5, ge=0)
    refund_retry_cooldown_seconds: int = Field(default=3600, ge=0)


class ShipmentRequest(BaseModel):
    """What the carrier needs to manifest one order."""

    order_id: str
    order_number: str
    address: ShippingAddress
    payment_mode: Literal["Prepaid", "COD"]
    total_amount: Decimal
    cod_amount: Decimal = Decimal("0")
    quantity: int
    products_description: str
    weight_grams: Optional[int] = None


class ShipmentOutcome(BaseModel):
    success: bool
    awb: Optional[str] = None
    tracking_url: Optional[str] = None
    error: Optional[str] = None
    insufficient_balance: bool = False
    raw_response: Optional[Dict[str, Any]] = None

    @field_validator("awb")
    @classmethod
    def awb_must_be_present_if_successful(
        cls, v: Optional[str], info
    ) -> Optional[str]:
        if info.data.get("success") and not v:
            raise ValueError("AWB must be present if shipment succeeded")
        return v


class ShipmentCreationResult(BaseModel):
    order_id: str
    success: bool
    awb: Optional[str] = None
    tracking_url: Optional[str] = None
    error: Optional[str] = None


class GatewayOrder(BaseModel):
    """A payment intent created at the gateway."""

    gateway_order_id: str
    amount_minor: int
    currency: str = "INR"
    receipt: Optional[str] = None
    status: Optional[str] = None


class GatewayPayment(BaseModel):
    payment_id: str
    gateway_order_id: Optional[str] = None
    status: str
    amount_minor: Optional[int] = None
    currency: Optional[str] = None
    method: Optional[str] = None
    error_description: Optional[str] = None


class RefundRequest(BaseModel):
    order_id: str
    payment_id: str
    amount: Decimal
    reason: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def amount_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Amount must be positive")
        return v


class RefundOutcome(BaseModel):
    """Result of a gateway refund attempt."""

    status: Literal["processed", "pending", "failed"]
    refund_id: Optional[str] = None
    amount: Optional[Decimal] = None
    error: Optional[str] = None

    @field_validator("refund_id")
    @classmethod
    def refund_id_must_be_present_unless_failed(
        cls, v: Optional[str], info
    ) -> Optional[str]:
        if info.data.get("status") in ("processed", "pending") and not v:
            raise ValueError(
                "Refund ID must be present if the refund was accepted"
            )
        return v


class PlaceOrderItem(BaseModel):
    product_id: str
    name: Optional[str] = None
    quantity: int
    price: Decimal
    size: Optional[str] = None
    color: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("price")
    @classmethod
    def price_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must not be negative")
        return v


class PlaceOrderRequest(BaseModel):
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    items: List[PlaceOrderItem]
    shipping_address: ShippingAddress
    shipping_cost: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    payment_method: Literal["online", "cod"] = "online"

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[PlaceOrderItem]
    ) -> List[PlaceOrderItem]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @property
    def subtotal(self) -> Decimal:
        return sum(
            (item.price * item.quantity for item in self.items),
            Decimal("0"),
        )

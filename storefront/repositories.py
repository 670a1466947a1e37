"""
Repository and gateway interfaces defined as Protocols.

All operations in this module follow these principles:

- **Idempotency**: Persistence operations are safe to retry. Saving the
  same order twice leaves one document; restocking the same order twice
  increments stock once.

- **No hidden retries**: Gateway operations make exactly one attempt.
  Retrying is a caller decision (the bulk sweep paces itself, the carrier
  retries its own webhooks).

- **Workflow Safety**: Every method is async and takes positional,
  serialisable arguments, so the same protocol can be satisfied by a
  concrete adapter, a Temporal workflow proxy or a test double.

- **Domain Objects**: Methods accept and return domain objects or
  primitives, never framework-specific types.

Use case classes depend on these protocols, not on concrete
implementations.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from storefront.domain import (
    GatewayOrder,
    GatewayPayment,
    Order,
    OrderItem,
    RefundOutcome,
    RefundRequest,
    ShipmentOutcome,
    ShipmentRequest,
)


class GatewayError(Exception):
    """Base class for failures talking to an external gateway"""

    pass


class CarrierGatewayError(GatewayError):
    """The carrier API failed or answered with an error status"""

    pass


class CarrierTimeoutError(CarrierGatewayError):
    """The carrier API did not answer within the configured timeout"""

    pass


class CarrierPayloadError(CarrierGatewayError):
    """The carrier answered with a payload of an unrecognised shape"""

    pass


class PaymentGatewayError(GatewayError):
    """The payment gateway failed or answered with an error status"""

    pass


class PaymentVerificationError(Exception):
    """A payment signature did not match"""

    pass


@runtime_checkable
class OrderRepository(Protocol):
    """Persistence for the Order aggregate.

    The order document is the only shared mutable resource of the engine.
    There is no per-order lock: writers load, mutate and save the whole
    document.
    """

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Retrieve an order by id.

        Returns:
            The order, or None if it does not exist.
        """
        ...

    async def get_order_by_awb(self, awb: str) -> Optional[Order]:
        """Retrieve the order that owns a carrier waybill.

        Implementation Notes:
        - Must be an index lookup, not a scan; webhooks call this on every
          delivery.
        - Returns None when no order carries the AWB.
        """
        ...

    async def save_order(self, order: Order) -> None:
        """Persist the full state of an order.

        Implementation Notes:
        - Must be idempotent: saving identical content is a no-op.
        - Must keep the AWB index in step with order.shipment.awb.
        - Raises on storage failure; callers decide whether to retry.
        """
        ...

    async def list_sync_candidates(
        self, stale_before: datetime, limit: int
    ) -> List[Order]:
        """List orders the bulk sweep should poll.

        An order qualifies when it has an AWB, is not delivered, cancelled
        or refunded, and was last synced before ``stale_before`` (or never).

        Args:
            stale_before: Orders synced at or after this instant are skipped.
            limit: Maximum number of orders returned.
        """
        ...

    async def list_expired_pending(
        self, created_before: datetime, limit: int
    ) -> List[Order]:
        """List unpaid orders whose payment window has closed.

        An order qualifies while both the order and its payment are still
        pending and it was created before ``created_before``. Oldest first.
        """
        ...


@runtime_checkable
class OrderNumberRepository(Protocol):
    """Issues human readable order numbers from a per-day sequence."""

    async def next_order_number(self, day: datetime) -> str:
        """Return the next unique order number for ``day``."""
        ...


@runtime_checkable
class InventoryRepository(Protocol):
    """Stock counters keyed by product id.

    Counters are only ever changed with atomic increments so concurrent
    restocks from different cancelled orders cannot lose updates.
    """

    async def reserve_stock(self, order_id: str, items: List[OrderItem]) -> bool:
        """Decrement stock for every line of an order, all or nothing.

        Returns:
            True if every line was reserved, False if any product lacked
            stock (in which case nothing changed).
        """
        ...

    async def restock(self, order_id: str, items: List[OrderItem]) -> int:
        """Return an order's quantities to stock.

        Implementation Notes:
        - Must be applied exactly once per (order, product): a repeated
          call for the same order increments nothing and returns 0.
        - Returns the total quantity actually restocked by this call.
        """
        ...

    async def get_stock(self, product_id: str) -> Optional[int]:
        """Current stock for a product, or None if unknown."""
        ...


@runtime_checkable
class CarrierGateway(Protocol):
    """Stateless adapter over the carrier's HTTP API.

    Both calls carry a bounded timeout and make a single attempt.
    Transport failures raise CarrierGatewayError (CarrierTimeoutError on
    timeout); a timeout is never reported as "no new event".
    """

    async def create_shipment(
        self, request: ShipmentRequest
    ) -> ShipmentOutcome:
        """Manifest a shipment and obtain its AWB.

        Returns:
            ShipmentOutcome with success=False and an error for business
            rejections (bad pincode, insufficient wallet balance).
        """
        ...

    async def fetch_tracking(self, awb: str) -> Dict[str, Any]:
        """Fetch the raw tracking payload for a waybill."""
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    """Stateless adapter over the payment gateway's HTTP API."""

    async def create_order(
        self, amount: Decimal, currency: str, receipt: str
    ) -> GatewayOrder:
        """Create a payment intent for ``amount`` (major units).

        Raises:
            PaymentGatewayError: if the gateway rejects or cannot be reached.
        """
        ...

    async def verify_signature(
        self, gateway_order_id: str, payment_id: str, signature: str
    ) -> bool:
        """Check the HMAC-SHA256 of ``order_id|payment_id``."""
        ...

    async def fetch_payment(self, payment_id: str) -> GatewayPayment:
        """Look up a payment.

        Raises:
            PaymentGatewayError: if the gateway cannot be reached.
        """
        ...

    async def refund_payment(self, request: RefundRequest) -> RefundOutcome:
        """Issue a refund.

        Returns:
            RefundOutcome with status "failed" and an error for gateway
            rejections and transport failures; this method does not raise
            for gateway-side problems.
        """
        ...


@runtime_checkable
class NotificationService(Protocol):
    """Customer notifications (email). Delivery is best-effort."""

    async def send_order_cancelled(self, order: Order, reason: str) -> None:
        ...

    async def send_refund_processed(
        self, order: Order, amount: Decimal
    ) -> None:
        ...

    async def send_shipment_picked(self, order: Order) -> None:
        ...

"""
Inbound carrier webhook handling.

The carrier posts status callbacks in a handful of shapes: the waybill may
sit at the top level, under ``data``, under ``package`` or in the first
element of ``packages``. Callbacks are normalised into a single
CarrierCallback before the Reconciliation Core sees them. A callback that
matches no known shape is rejected with 400; nothing is defaulted.
"""

import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from storefront.domain import OrderNotFoundError, ReconciliationEvent
from storefront.repositories import OrderRepository
from storefront.validation import ensure_order_repository

logger = logging.getLogger(__name__)

SECRET_HEADERS = ("x-carrier-secret", "x-webhook-secret", "x-signature")


class CarrierCallback(BaseModel):
    """A callback reduced to what reconciliation needs."""

    awb: str
    raw_status: Optional[str] = None
    event_description: Optional[str] = None
    shape: Literal["top_level", "data", "package", "packages"]


class _CallbackRecord(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    awb: Optional[str] = None
    status: Optional[str] = None
    current_status: Optional[str] = None
    status_description: Optional[str] = None
    remarks: Optional[str] = None
    event: Optional[str] = None

    @property
    def raw_status(self) -> Optional[str]:
        return self.status or self.current_status

    @property
    def event_description(self) -> Optional[str]:
        return self.event or self.status_description or self.remarks


class _CallbackEnvelope(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    awb: Optional[str] = None
    status: Optional[str] = None
    current_status: Optional[str] = None
    status_description: Optional[str] = None
    remarks: Optional[str] = None
    event: Optional[str] = None
    data: Optional[_CallbackRecord] = None
    package: Optional[_CallbackRecord] = None
    packages: List[_CallbackRecord] = Field(default_factory=list)

    def records(self) -> List[tuple]:
        """Candidate records in precedence order, tagged by shape."""
        top = _CallbackRecord(
            awb=self.awb,
            status=self.status,
            current_status=self.current_status,
            status_description=self.status_description,
            remarks=self.remarks,
            event=self.event,
        )
        candidates = [("top_level", top)]
        if self.data is not None:
            candidates.append(("data", self.data))
        if self.package is not None:
            candidates.append(("package", self.package))
        if self.packages:
            candidates.append(("packages", self.packages[0]))
        return candidates


class InvalidCallbackError(Exception):
    """The callback body has no recognisable waybill"""

    pass


def normalize_callback(payload: Any) -> CarrierCallback:
    """
    Reduce a webhook body to (awb, raw status, event).

    The waybill is taken from the first shape that carries one; the status
    is taken from the first shape that carries one, so a top-level awb with
    a nested ``data.current_status`` is still understood.

    Raises:
        InvalidCallbackError: if no waybill can be found.
    """
    if not isinstance(payload, dict):
        raise InvalidCallbackError("Callback body must be a JSON object")

    try:
        envelope = _CallbackEnvelope.model_validate(payload)
    except ValidationError as e:
        raise InvalidCallbackError(f"Unrecognised callback shape: {e}") from e

    records = envelope.records()
    owner = next(
        ((tag, rec) for tag, rec in records if rec.awb and rec.awb.strip()),
        None,
    )
    if owner is None:
        raise InvalidCallbackError("Missing AWB")

    shape, record = owner
    raw_status = record.raw_status or next(
        (rec.raw_status for _, rec in records if rec.raw_status), None
    )
    event_description = record.event_description or next(
        (
            rec.event_description
            for _, rec in records
            if rec.event_description
        ),
        None,
    )
    return CarrierCallback(
        awb=record.awb.strip(),
        raw_status=raw_status,
        event_description=event_description,
        shape=shape,
    )


def verify_webhook_secret(
    headers: Mapping[str, str], expected: Optional[str]
) -> bool:
    """True when no secret is configured or a secret header matches it."""
    if not expected:
        return True
    lowered = {key.lower(): value for key, value in headers.items()}
    provided = next(
        (lowered[name] for name in SECRET_HEADERS if lowered.get(name)),
        None,
    )
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


class WebhookResponse(BaseModel):
    status_code: int
    body: Dict[str, Any]


class CarrierWebhookHandler:
    """
    Boundary for carrier callbacks: authenticate, normalise, look up the
    order by waybill and hand over to the Reconciliation Core.

    The carrier retries on 5xx, so internal failures are reported as 500
    and never retried here.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        reconciler: Any,
        secret: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.reconciler = reconciler
        self.secret = secret
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def handle(
        self, headers: Mapping[str, str], payload: Any
    ) -> WebhookResponse:
        if not verify_webhook_secret(headers, self.secret):
            logger.warning("Carrier webhook rejected: bad secret")
            return WebhookResponse(
                status_code=401,
                body={"success": False, "message": "Invalid webhook secret"},
            )

        try:
            callback = normalize_callback(payload)
        except InvalidCallbackError as e:
            logger.warning(
                "Carrier webhook rejected: invalid payload",
                extra={"error": str(e)},
            )
            return WebhookResponse(
                status_code=400,
                body={"success": False, "message": "Missing AWB"},
            )

        logger.info(
            "Carrier webhook received",
            extra={
                "awb": callback.awb,
                "raw_status": callback.raw_status,
                "shape": callback.shape,
            },
        )

        try:
            order = await self.order_repo.get_order_by_awb(callback.awb)
            if order is None:
                logger.warning(
                    "Carrier webhook for unknown AWB",
                    extra={"awb": callback.awb},
                )
                return WebhookResponse(
                    status_code=404,
                    body={"success": False, "message": "Order not found"},
                )

            result = await self.reconciler.reconcile(
                ReconciliationEvent(
                    order_id=order.id,
                    raw_status=callback.raw_status,
                    source="webhook",
                    timestamp=self.clock(),
                    raw_payload=payload,
                    event_description=callback.event_description,
                )
            )
        except OrderNotFoundError:
            return WebhookResponse(
                status_code=404,
                body={"success": False, "message": "Order not found"},
            )
        except Exception as e:
            logger.error(
                "Carrier webhook processing failed",
                extra={
                    "awb": callback.awb,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            return WebhookResponse(
                status_code=500,
                body={"success": False, "message": "Internal error"},
            )

        return WebhookResponse(
            status_code=200,
            body={
                "success": True,
                "order_id": result.order_id,
                "status": result.status,
                "outcome": result.outcome,
            },
        )

"""
FastAPI application: carrier webhook, admin order operations and the
checkout surface.
"""

import logging
import uuid
from typing import Any, NoReturn, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from temporalio.client import Client

from storefront.api.dependencies import (
    get_confirm_payment_use_case,
    get_create_shipment_use_case,
    get_get_order_use_case,
    get_place_order_use_case,
    get_reconcile_use_case,
    get_refund_use_case,
    get_sync_order_use_case,
    get_temporal_client,
    get_webhook_handler,
)
from storefront.api.requests import (
    BulkSyncRequest,
    CancelOrderRequest,
    RefundOrderRequest,
    VerifyPaymentRequest,
)
from storefront.api.responses import (
    BulkSyncStartedResponse,
    HealthCheckResponse,
)
from storefront.config import get_settings, setup_logging, sweep_request
from storefront.domain import (
    InsufficientStockError,
    InvalidOrderStateError,
    MissingAwbError,
    Order,
    OrderNotFoundError,
    PlaceOrderRequest,
    ReconciliationResult,
    RefundResult,
    ShipmentCreationResult,
)
from storefront.refund import RefundOrderUseCase
from storefront.repositories import (
    GatewayError,
    PaymentVerificationError,
)
from storefront.usecase import (
    ConfirmPaymentUseCase,
    CreateShipmentUseCase,
    GetOrderUseCase,
    PlaceOrderUseCase,
    ReconcileOrderUseCase,
    SyncOrderUseCase,
)
from storefront.webhook import CarrierWebhookHandler
from storefront.workflow import BulkReconciliationWorkflow

# Setup logging when module is imported
setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront Order Reconciliation API")


def _raise_http_error(
    e: Exception, operation: str, order_id: str, invalid_state_status: int = 409
) -> NoReturn:
    """Map a domain or gateway error to an HTTPException."""
    if isinstance(e, OrderNotFoundError):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidOrderStateError):
        raise HTTPException(status_code=invalid_state_status, detail=str(e))
    if isinstance(e, InsufficientStockError):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (MissingAwbError, PaymentVerificationError)):
        raise HTTPException(status_code=400, detail=str(e))
    if isinstance(e, GatewayError):
        logger.warning(
            f"{operation} failed at an external gateway",
            extra={
                "order_id": order_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise HTTPException(status_code=502, detail=str(e))

    logger.error(
        f"{operation} failed",
        extra={
            "order_id": order_id,
            "error_type": type(e).__name__,
            "error_message": str(e),
        },
        exc_info=True,
    )
    # Return a generic error message to prevent information leakage
    raise HTTPException(
        status_code=500,
        detail=f"{operation} failed due to an internal error.",
    )


@app.get("/health", response_model=HealthCheckResponse)
async def health_check() -> HealthCheckResponse:
    """Health check endpoint"""
    logger.debug("Health check requested")
    return HealthCheckResponse(status="ok", version="0.1.0")


@app.post("/carrier/webhook")
async def carrier_webhook(
    request: Request,
    handler: CarrierWebhookHandler = Depends(get_webhook_handler),
) -> JSONResponse:
    """Carrier status callback. Always answers; never raises."""
    payload: Any
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    response = await handler.handle(request.headers, payload)
    return JSONResponse(status_code=response.status_code, content=response.body)


@app.post(
    "/admin/orders/bulk-sync",
    response_model=BulkSyncStartedResponse,
    status_code=202,
)
async def bulk_sync(
    body: Optional[BulkSyncRequest] = None,
    wait: bool = Query(default=False),
    client: Client = Depends(get_temporal_client),
) -> Union[BulkSyncStartedResponse, JSONResponse]:
    """Start a carrier sweep; with ``wait=true`` return its summary."""
    settings = get_settings()
    request = sweep_request(settings, body.limit if body else None)
    workflow_id = f"carrier-sweep-api-{uuid.uuid4()}"
    logger.info(
        "Bulk sync requested",
        extra={"workflow_id": workflow_id, "limit": request.limit, "wait": wait},
    )

    try:
        if wait:
            summary = await client.execute_workflow(
                BulkReconciliationWorkflow.run,
                request,
                id=workflow_id,
                task_queue=settings.temporal_task_queue,
            )
            return JSONResponse(
                status_code=200, content=summary.model_dump(mode="json")
            )
        await client.start_workflow(
            BulkReconciliationWorkflow.run,
            request,
            id=workflow_id,
            task_queue=settings.temporal_task_queue,
        )
    except Exception as e:
        _raise_http_error(e, "Bulk sync", workflow_id)

    return BulkSyncStartedResponse(workflow_id=workflow_id)


@app.post("/admin/orders/{order_id}/cancel", response_model=ReconciliationResult)
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    use_case: ReconcileOrderUseCase = Depends(get_reconcile_use_case),
) -> ReconciliationResult:
    try:
        return await use_case.cancel_by_admin(order_id, body.reason, "admin")
    except Exception as e:
        _raise_http_error(e, "Order cancellation", order_id, 400)


@app.post("/admin/orders/{order_id}/refund", response_model=RefundResult)
async def refund_order(
    order_id: str,
    body: RefundOrderRequest,
    use_case: RefundOrderUseCase = Depends(get_refund_use_case),
) -> RefundResult:
    try:
        return await use_case.refund_order(
            order_id, body.reason, body.deduct_shipping, "admin"
        )
    except Exception as e:
        _raise_http_error(e, "Refund", order_id)


@app.post("/admin/orders/{order_id}/sync", response_model=ReconciliationResult)
async def sync_order(
    order_id: str,
    use_case: SyncOrderUseCase = Depends(get_sync_order_use_case),
) -> ReconciliationResult:
    try:
        return await use_case.sync_order(order_id, "admin")
    except Exception as e:
        _raise_http_error(e, "Carrier sync", order_id)


@app.post(
    "/admin/orders/{order_id}/shipment", response_model=ShipmentCreationResult
)
async def create_shipment(
    order_id: str,
    use_case: CreateShipmentUseCase = Depends(get_create_shipment_use_case),
) -> ShipmentCreationResult:
    try:
        return await use_case.create_shipment(order_id, "admin")
    except Exception as e:
        _raise_http_error(e, "Shipment creation", order_id)


@app.post("/orders", response_model=Order, status_code=201)
async def place_order(
    request: PlaceOrderRequest,
    use_case: PlaceOrderUseCase = Depends(get_place_order_use_case),
) -> Order:
    logger.info(
        "Order placement requested",
        extra={
            "customer_id": request.customer_id,
            "item_count": len(request.items),
            "payment_method": request.payment_method,
        },
    )
    try:
        return await use_case.place_order(request)
    except Exception as e:
        _raise_http_error(e, "Order placement", "")


@app.post("/orders/{order_id}/payment/verify", response_model=Order)
async def verify_payment(
    order_id: str,
    body: VerifyPaymentRequest,
    use_case: ConfirmPaymentUseCase = Depends(get_confirm_payment_use_case),
) -> Order:
    try:
        return await use_case.confirm_payment(
            order_id,
            body.gateway_order_id,
            body.gateway_payment_id,
            body.signature,
        )
    except Exception as e:
        _raise_http_error(e, "Payment verification", order_id)


@app.get("/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    use_case: GetOrderUseCase = Depends(get_get_order_use_case),
) -> Order:
    try:
        return await use_case.get_order(order_id)
    except Exception as e:
        _raise_http_error(e, "Order lookup", order_id)

"""
Temporal worker hosting the bulk reconciliation and unpaid order expiry
workflows and the adapter activities they call.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, cast

import asyncpg
from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.service import RPCError
from temporalio.worker import Worker

from storefront.config import Settings, get_settings, setup_logging
from storefront.repos.temporal.activities import (
    TemporalDelhiveryCarrierGateway,
    TemporalHttpNotificationService,
    TemporalMinioOrderRepository,
    TemporalPostgreSQLInventoryRepository,
    TemporalRazorpayPaymentGateway,
)
from storefront.workflow import (
    BulkReconciliationWorkflow,
    ExpirePendingOrdersWorkflow,
)

logger = logging.getLogger(__name__)


async def get_temporal_client_with_retries(
    endpoint: str,
    namespace: str = "default",
    attempts: int = 10,
    delay: int = 5,
) -> Client:
    """Attempt to connect to Temporal with retries."""
    logger.debug(
        "Attempting to connect to Temporal",
        extra={
            "endpoint": endpoint,
            "max_attempts": attempts,
            "delay_seconds": delay,
        },
    )

    for attempt in range(attempts):
        try:
            client = await Client.connect(
                endpoint,
                namespace=namespace,
                data_converter=pydantic_data_converter,
            )
            logger.info(
                "Successfully connected to Temporal",
                extra={"endpoint": endpoint, "attempt": attempt + 1},
            )
            return client
        except RPCError as e:
            logger.warning(
                "Failed to connect to Temporal",
                extra={
                    "endpoint": endpoint,
                    "attempt": attempt + 1,
                    "max_attempts": attempts,
                    "error": str(e),
                    "retry_in_seconds": delay,
                },
            )
            if attempt + 1 == attempts:
                logger.error(
                    "All connection attempts to Temporal failed",
                    extra={"endpoint": endpoint, "total_attempts": attempts},
                )
                raise
            await asyncio.sleep(delay)

    raise RuntimeError("Failed to connect to Temporal after all attempts")


def build_activities(
    settings: Settings, pool: asyncpg.Pool
) -> List[Callable[..., Any]]:
    """Instantiate the activity wrappers and list their bound activities."""
    order_repo = TemporalMinioOrderRepository(
        endpoint=settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
        bucket_name=settings.orders_bucket,
    )
    inventory_repo = TemporalPostgreSQLInventoryRepository(pool)
    carrier_gateway = TemporalDelhiveryCarrierGateway(
        api_key=settings.carrier_api_key,
        base_url=settings.carrier_base_url,
        tracking_base_url=settings.carrier_tracking_url,
        pickup_location=settings.carrier_pickup_location,
        timeout=settings.carrier_timeout_seconds,
    )
    payment_gateway = TemporalRazorpayPaymentGateway(
        key_id=settings.payment_key_id,
        key_secret=settings.payment_key_secret,
        base_url=settings.payment_base_url,
        timeout=settings.payment_timeout_seconds,
    )
    notification_service = TemporalHttpNotificationService(
        api_url=settings.mail_api_url,
        api_key=settings.mail_api_key,
        sender=settings.mail_from,
    )

    return [
        order_repo.get_order,
        order_repo.get_order_by_awb,
        order_repo.save_order,
        order_repo.list_sync_candidates,
        order_repo.list_expired_pending,
        inventory_repo.reserve_stock,
        inventory_repo.restock,
        inventory_repo.get_stock,
        carrier_gateway.create_shipment,
        carrier_gateway.fetch_tracking,
        payment_gateway.create_order,
        payment_gateway.verify_signature,
        payment_gateway.fetch_payment,
        payment_gateway.refund_payment,
        notification_service.send_order_cancelled,
        notification_service.send_refund_processed,
        notification_service.send_shipment_picked,
    ]


async def run_worker(settings: Optional[Settings] = None) -> None:
    """Run the Temporal worker"""
    settings = settings or get_settings()
    setup_logging(settings)

    logger.info(
        "Starting Temporal worker",
        extra={
            "temporal_endpoint": settings.temporal_endpoint,
            "task_queue": settings.temporal_task_queue,
        },
    )

    client = await get_temporal_client_with_retries(
        settings.temporal_endpoint, settings.temporal_namespace
    )
    pool = await asyncpg.create_pool(settings.postgres_dsn)
    try:
        activities = build_activities(settings, pool)
        logger.info(
            "Creating Temporal worker",
            extra={
                "task_queue": settings.temporal_task_queue,
                "activity_count": len(activities),
            },
        )
        worker = Worker(
            client,
            task_queue=settings.temporal_task_queue,
            workflows=[
                BulkReconciliationWorkflow,
                ExpirePendingOrdersWorkflow,
            ],
            activities=cast(List[Callable[..., Any]], activities),
        )
        logger.info("Starting worker execution")
        await worker.run()
    finally:
        await pool.close()


def main() -> None:
    """Entry point for the storefront-worker console script."""
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()

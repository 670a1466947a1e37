"""
Dependency injection for FastAPI endpoints.

Adapters and clients are process-wide singletons held by a container;
use cases are cheap and built per request. Tests replace any of the
``get_*`` callables through ``app.dependency_overrides``.
"""

import logging
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict

import asyncpg
from fastapi import Depends
from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter

from storefront.config import get_settings
from storefront.notifications import NotificationDispatcher
from storefront.refund import RefundOrderUseCase
from storefront.repos.http.carrier import DelhiveryCarrierGateway
from storefront.repos.http.notifications import HttpNotificationService
from storefront.repos.http.payment import RazorpayPaymentGateway
from storefront.repos.minio.order import MinioOrderRepository
from storefront.repos.postgresql.inventory import PostgreSQLInventoryRepository
from storefront.repos.postgresql.sequence import PostgreSQLOrderNumberRepository
from storefront.repositories import (
    CarrierGateway,
    InventoryRepository,
    OrderNumberRepository,
    OrderRepository,
    PaymentGateway,
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

logger = logging.getLogger(__name__)


class DependencyContainer:
    """
    Dependency injection container with singleton lifecycle management.
    Always creates real clients; mocks are provided by test overrides.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, Any] = {}

    async def get_or_create(
        self, key: str, factory: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Get or create a singleton instance."""
        if key not in self._instances:
            self._instances[key] = await factory()
        return self._instances[key]

    async def _create_temporal_client(self) -> Client:
        settings = get_settings()
        logger.debug(
            "Creating Temporal client",
            extra={
                "endpoint": settings.temporal_endpoint,
                "namespace": settings.temporal_namespace,
            },
        )
        return await Client.connect(
            settings.temporal_endpoint,
            namespace=settings.temporal_namespace,
            data_converter=pydantic_data_converter,
        )

    async def _create_pool(self) -> asyncpg.Pool:
        settings = get_settings()
        pool = await asyncpg.create_pool(settings.postgres_dsn)
        logger.debug("PostgreSQL pool created")
        return pool

    async def _create_order_repository(self) -> MinioOrderRepository:
        settings = get_settings()
        return MinioOrderRepository(
            endpoint=settings.minio_endpoint,
            access_key=settings.minio_access_key,
            secret_key=settings.minio_secret_key,
            secure=settings.minio_secure,
            bucket_name=settings.orders_bucket,
        )

    async def _create_inventory_repository(
        self,
    ) -> PostgreSQLInventoryRepository:
        repo = PostgreSQLInventoryRepository(await self.get_pool())
        await repo.ensure_schema()
        return repo

    async def _create_order_number_repository(
        self,
    ) -> PostgreSQLOrderNumberRepository:
        repo = PostgreSQLOrderNumberRepository(await self.get_pool())
        await repo.ensure_schema()
        return repo

    async def _create_carrier_gateway(self) -> DelhiveryCarrierGateway:
        settings = get_settings()
        return DelhiveryCarrierGateway(
            api_key=settings.carrier_api_key,
            base_url=settings.carrier_base_url,
            tracking_base_url=settings.carrier_tracking_url,
            pickup_location=settings.carrier_pickup_location,
            timeout=settings.carrier_timeout_seconds,
        )

    async def _create_payment_gateway(self) -> RazorpayPaymentGateway:
        settings = get_settings()
        return RazorpayPaymentGateway(
            key_id=settings.payment_key_id,
            key_secret=settings.payment_key_secret,
            base_url=settings.payment_base_url,
            timeout=settings.payment_timeout_seconds,
        )

    async def _create_notification_dispatcher(
        self,
    ) -> NotificationDispatcher:
        settings = get_settings()
        service = HttpNotificationService(
            api_url=settings.mail_api_url,
            api_key=settings.mail_api_key,
            sender=settings.mail_from,
        )
        return NotificationDispatcher(service)

    async def get_temporal_client(self) -> Client:
        return await self.get_or_create(  # type: ignore[no-any-return]
            "temporal_client", self._create_temporal_client
        )

    async def get_pool(self) -> asyncpg.Pool:
        return await self.get_or_create("pool", self._create_pool)

    async def get_order_repository(self) -> MinioOrderRepository:
        return await self.get_or_create(
            "order_repo", self._create_order_repository
        )

    async def get_inventory_repository(
        self,
    ) -> PostgreSQLInventoryRepository:
        return await self.get_or_create(
            "inventory_repo", self._create_inventory_repository
        )

    async def get_order_number_repository(
        self,
    ) -> PostgreSQLOrderNumberRepository:
        return await self.get_or_create(
            "order_number_repo", self._create_order_number_repository
        )

    async def get_carrier_gateway(self) -> DelhiveryCarrierGateway:
        return await self.get_or_create(
            "carrier_gateway", self._create_carrier_gateway
        )

    async def get_payment_gateway(self) -> RazorpayPaymentGateway:
        return await self.get_or_create(
            "payment_gateway", self._create_payment_gateway
        )

    async def get_notification_dispatcher(self) -> NotificationDispatcher:
        return await self.get_or_create(
            "notifier", self._create_notification_dispatcher
        )


# Global container instance
_container = DependencyContainer()


async def get_temporal_client() -> Client:
    """FastAPI dependency for Temporal client."""
    return await _container.get_temporal_client()


async def get_order_repository() -> OrderRepository:
    return await _container.get_order_repository()


async def get_inventory_repository() -> InventoryRepository:
    return await _container.get_inventory_repository()


async def get_order_number_repository() -> OrderNumberRepository:
    return await _container.get_order_number_repository()


async def get_carrier_gateway() -> CarrierGateway:
    return await _container.get_carrier_gateway()


async def get_payment_gateway() -> PaymentGateway:
    return await _container.get_payment_gateway()


async def get_notification_dispatcher() -> NotificationDispatcher:
    return await _container.get_notification_dispatcher()


async def get_refund_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> RefundOrderUseCase:
    """FastAPI dependency for RefundOrderUseCase."""
    return RefundOrderUseCase(
        order_repo=order_repo,
        payment_gateway=payment_gateway,
        retry_cooldown=timedelta(
            seconds=get_settings().refund_retry_cooldown_seconds
        ),
    )


async def get_reconcile_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    inventory_repo: InventoryRepository = Depends(get_inventory_repository),
    refund_use_case: RefundOrderUseCase = Depends(get_refund_use_case),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> ReconcileOrderUseCase:
    """FastAPI dependency for ReconcileOrderUseCase."""
    return ReconcileOrderUseCase(
        order_repo=order_repo,
        inventory_repo=inventory_repo,
        refund_use_case=refund_use_case,
        notifier=notifier,
    )


async def get_sync_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    carrier_gateway: CarrierGateway = Depends(get_carrier_gateway),
    reconciler: ReconcileOrderUseCase = Depends(get_reconcile_use_case),
) -> SyncOrderUseCase:
    return SyncOrderUseCase(
        order_repo=order_repo,
        carrier_gateway=carrier_gateway,
        reconciler=reconciler,
    )


async def get_create_shipment_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    carrier_gateway: CarrierGateway = Depends(get_carrier_gateway),
) -> CreateShipmentUseCase:
    return CreateShipmentUseCase(
        order_repo=order_repo,
        carrier_gateway=carrier_gateway,
        carrier_name=get_settings().carrier_name,
    )


async def get_place_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    order_number_repo: OrderNumberRepository = Depends(
        get_order_number_repository
    ),
    inventory_repo: InventoryRepository = Depends(get_inventory_repository),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> PlaceOrderUseCase:
    return PlaceOrderUseCase(
        order_repo=order_repo,
        order_number_repo=order_number_repo,
        inventory_repo=inventory_repo,
        payment_gateway=payment_gateway,
    )


async def get_confirm_payment_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
    payment_gateway: PaymentGateway = Depends(get_payment_gateway),
) -> ConfirmPaymentUseCase:
    return ConfirmPaymentUseCase(
        order_repo=order_repo, payment_gateway=payment_gateway
    )


async def get_get_order_use_case(
    order_repo: OrderRepository = Depends(get_order_repository),
) -> GetOrderUseCase:
    """FastAPI dependency for GetOrderUseCase."""
    return GetOrderUseCase(order_repo=order_repo)


async def get_webhook_handler(
    order_repo: OrderRepository = Depends(get_order_repository),
    reconciler: ReconcileOrderUseCase = Depends(get_reconcile_use_case),
) -> CarrierWebhookHandler:
    """FastAPI dependency for the carrier webhook boundary."""
    return CarrierWebhookHandler(
        order_repo=order_repo,
        reconciler=reconciler,
        secret=get_settings().carrier_webhook_secret,
    )

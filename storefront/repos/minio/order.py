"""
Minio implementation of OrderRepository.

Each order is one JSON document. Three small index object families sit next
to the documents so that the hot lookups never scan the bucket:

- ``awb/{awb}.json`` maps a carrier waybill to its order (webhook lookup).
- ``sync/{order_id}.json`` exists while an order is eligible for carrier
  polling and carries its last sync time (sweep candidate selection).
- ``pending/{order_id}.json`` exists while an order awaits its first
  payment and carries its creation time (unpaid order expiry).
"""

import io
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from minio import Minio
from minio.error import S3Error

from storefront.domain import SWEEP_EXCLUDED_STATUSES, Order
from storefront.repositories import OrderRepository

logger = logging.getLogger(__name__)


class MinioOrderRepository(OrderRepository):
    """
    Minio implementation of OrderRepository.
    Uses Minio for persistence of Order documents and their indices.
    """

    def __init__(
        self,
        endpoint: str,
        access_key: str = "minioadmin",
        secret_key: str = "minioadmin",
        secure: bool = False,
        bucket_name: str = "orders",
        client: Optional[Minio] = None,
    ):
        logger.debug(
            "Initializing MinioOrderRepository",
            extra={"minio_endpoint": endpoint, "bucket_name": bucket_name},
        )
        self.client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        self.bucket_name = bucket_name
        self._ensure_bucket_exists()

    def _ensure_bucket_exists(self) -> None:
        try:
            if not self.client.bucket_exists(self.bucket_name):
                logger.info(
                    "Creating orders bucket",
                    extra={"bucket_name": self.bucket_name},
                )
                self.client.make_bucket(self.bucket_name)
        except S3Error as e:
            logger.error(
                "Failed to create orders bucket",
                extra={"bucket_name": self.bucket_name, "error": str(e)},
            )
            raise

    @staticmethod
    def _order_object(order_id: str) -> str:
        return f"orders/{order_id}.json"

    @staticmethod
    def _awb_object(awb: str) -> str:
        return f"awb/{awb}.json"

    @staticmethod
    def _sync_object(order_id: str) -> str:
        return f"sync/{order_id}.json"

    @staticmethod
    def _pending_object(order_id: str) -> str:
        return f"pending/{order_id}.json"

    def _read(self, object_name: str) -> Optional[bytes]:
        """Object content, or None if the object does not exist."""
        try:
            response = self.client.get_object(
                bucket_name=self.bucket_name, object_name=object_name
            )
        except S3Error as e:
            if getattr(e, "code", None) == "NoSuchKey":
                return None
            raise
        try:
            return response.read()
        finally:
            response.close()
            response.release_conn()

    def _write(
        self, object_name: str, data: bytes, metadata: Dict[str, Any]
    ) -> None:
        self.client.put_object(
            bucket_name=self.bucket_name,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type="application/json",
            metadata=metadata,
        )

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Retrieve an order by its ID from Minio."""
        data = self._read(self._order_object(order_id))
        if data is None:
            logger.debug(
                "MinioOrderRepository: Order not found (NoSuchKey)",
                extra={"order_id": order_id},
            )
            return None
        order = Order.model_validate_json(data)
        logger.debug(
            "MinioOrderRepository: Order retrieved",
            extra={
                "order_id": order_id,
                "status": order.status,
                "payload_size_bytes": len(data),
            },
        )
        return order

    async def get_order_by_awb(self, awb: str) -> Optional[Order]:
        """Resolve a waybill through its index object."""
        data = self._read(self._awb_object(awb))
        if data is None:
            logger.debug(
                "MinioOrderRepository: No order indexed for AWB",
                extra={"awb": awb},
            )
            return None
        order_id = json.loads(data)["order_id"]
        return await self.get_order(order_id)

    async def save_order(self, order: Order) -> None:
        """Persist the state of an order and keep its indices in step."""
        object_name = self._order_object(order.id)
        order_json = order.model_dump_json().encode("utf-8")

        try:
            existing = self._read(object_name)
            if existing == order_json:
                logger.info(
                    "MinioOrderRepository: Order state already matches, "
                    "skipping save (idempotent)",
                    extra={"order_id": order.id, "status": order.status},
                )
                return

            # nothing is written while the waybill belongs to another order
            awb_indexed = self._check_awb_owner(order)
            self._write(
                object_name,
                order_json,
                {"order_number": order.order_number, "status": order.status},
            )
            if order.shipment.awb and not awb_indexed:
                self._index_awb(order)
            self._update_sync_index(order)
            self._update_pending_index(order)
        except S3Error as e:
            logger.error(
                "MinioOrderRepository: Failed to persist order state",
                extra={
                    "order_id": order.id,
                    "status": order.status,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            raise

        logger.info(
            "MinioOrderRepository: Order state persisted",
            extra={
                "order_id": order.id,
                "status": order.status,
                "awb": order.shipment.awb,
                "payload_size_bytes": len(order_json),
            },
        )

    def _check_awb_owner(self, order: Order) -> bool:
        """
        Raise if the order's waybill is indexed to a different order.

        Returns True when the index already points at this order.
        """
        awb = order.shipment.awb
        if not awb:
            return False
        existing = self._read(self._awb_object(awb))
        if existing is None:
            return False
        owner = json.loads(existing)["order_id"]
        if owner != order.id:
            logger.warning(
                "MinioOrderRepository: AWB owned by another order",
                extra={"order_id": order.id, "awb": awb, "owner": owner},
            )
            raise ValueError(f"AWB {awb} is already assigned to order {owner}")
        return True

    def _index_awb(self, order: Order) -> None:
        awb = order.shipment.awb
        self._write(
            self._awb_object(awb),
            json.dumps({"awb": awb, "order_id": order.id}).encode("utf-8"),
            {"order_id": order.id},
        )

    def _update_sync_index(self, order: Order) -> None:
        object_name = self._sync_object(order.id)
        if not order.shipment.awb or order.status in SWEEP_EXCLUDED_STATUSES:
            self.client.remove_object(self.bucket_name, object_name)
            return
        last_synced = order.shipment.last_synced_at
        self._write(
            object_name,
            json.dumps(
                {
                    "order_id": order.id,
                    "last_synced_at": (
                        last_synced.isoformat() if last_synced else None
                    ),
                }
            ).encode("utf-8"),
            {"order_id": order.id},
        )

    def _update_pending_index(self, order: Order) -> None:
        object_name = self._pending_object(order.id)
        if (
            order.status != "pending"
            or order.payment.status != "pending"
            or order.created_at is None
        ):
            self.client.remove_object(self.bucket_name, object_name)
            return
        self._write(
            object_name,
            json.dumps(
                {
                    "order_id": order.id,
                    "created_at": order.created_at.isoformat(),
                }
            ).encode("utf-8"),
            {"order_id": order.id},
        )

    async def list_sync_candidates(
        self, stale_before: datetime, limit: int
    ) -> List[Order]:
        """Orders due for a carrier poll, least recently synced first."""
        due = []
        for obj in self.client.list_objects(
            self.bucket_name, prefix="sync/", recursive=True
        ):
            data = self._read(obj.object_name)
            if data is None:
                continue
            entry = json.loads(data)
            last_synced = (
                datetime.fromisoformat(entry["last_synced_at"])
                if entry.get("last_synced_at")
                else None
            )
            if last_synced is None or last_synced < stale_before:
                due.append((last_synced is not None, last_synced, entry))

        due.sort(key=lambda item: (item[0], item[1] or stale_before))

        orders: List[Order] = []
        for _, _, entry in due:
            if len(orders) >= limit:
                break
            order = await self.get_order(entry["order_id"])
            if order is not None and order.is_sync_candidate(stale_before):
                orders.append(order)

        logger.info(
            "MinioOrderRepository: Sync candidates listed",
            extra={
                "stale_before": stale_before.isoformat(),
                "due": len(due),
                "returned": len(orders),
                "limit": limit,
            },
        )
        return orders

    async def list_expired_pending(
        self, created_before: datetime, limit: int
    ) -> List[Order]:
        """Unpaid orders past their payment window, oldest first."""
        expired = []
        for obj in self.client.list_objects(
            self.bucket_name, prefix="pending/", recursive=True
        ):
            data = self._read(obj.object_name)
            if data is None:
                continue
            entry = json.loads(data)
            created_at = datetime.fromisoformat(entry["created_at"])
            if created_at < created_before:
                expired.append((created_at, entry["order_id"]))

        expired.sort()

        orders: List[Order] = []
        for _, order_id in expired:
            if len(orders) >= limit:
                break
            order = await self.get_order(order_id)
            if order is not None and order.is_expired_pending(created_before):
                orders.append(order)

        logger.info(
            "MinioOrderRepository: Expired pending orders listed",
            extra={
                "created_before": created_before.isoformat(),
                "expired": len(expired),
                "returned": len(orders),
                "limit": limit,
            },
        )
        return orders

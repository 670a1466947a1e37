"""
Memory implementation of OrderRepository.

Orders are stored as deep copies, so a caller mutating an Order it loaded
does not change what is stored until it calls save_order. That matches the
document-store semantics of the Minio implementation and keeps scenario
tests honest.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from storefront.domain import Order
from storefront.repositories import OrderRepository

logger = logging.getLogger(__name__)


class MemoryOrderRepository(OrderRepository):
    def __init__(self) -> None:
        self.storage_dict: Dict[str, Order] = {}
        self.awb_index: Dict[str, str] = {}
        self.save_count = 0
        logger.debug("Initializing MemoryOrderRepository")

    async def get_order(self, order_id: str) -> Optional[Order]:
        order = self.storage_dict.get(order_id)
        return order.model_copy(deep=True) if order is not None else None

    async def get_order_by_awb(self, awb: str) -> Optional[Order]:
        order_id = self.awb_index.get(awb)
        if order_id is None:
            return None
        return await self.get_order(order_id)

    async def save_order(self, order: Order) -> None:
        awb = order.shipment.awb
        if awb:
            owner = self.awb_index.get(awb)
            if owner is not None and owner != order.id:
                raise ValueError(
                    f"AWB {awb} is already assigned to order {owner}"
                )
            self.awb_index[awb] = order.id
        self.storage_dict[order.id] = order.model_copy(deep=True)
        self.save_count += 1
        logger.debug(
            "Order saved",
            extra={"order_id": order.id, "status": order.status},
        )

    async def list_sync_candidates(
        self, stale_before: datetime, limit: int
    ) -> List[Order]:
        due = [
            order
            for order in self.storage_dict.values()
            if order.is_sync_candidate(stale_before)
        ]
        due.sort(
            key=lambda o: (
                o.shipment.last_synced_at is not None,
                o.shipment.last_synced_at or stale_before,
            )
        )
        return [order.model_copy(deep=True) for order in due[:limit]]

    async def list_expired_pending(
        self, created_before: datetime, limit: int
    ) -> List[Order]:
        expired = [
            order
            for order in self.storage_dict.values()
            if order.is_expired_pending(created_before)
        ]
        expired.sort(key=lambda o: o.created_at or created_before)
        return [order.model_copy(deep=True) for order in expired[:limit]]

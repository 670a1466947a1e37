"""
Memory implementation of InventoryRepository.
"""

import logging
from typing import Dict, List, Optional, Set, Tuple

from storefront.domain import OrderItem
from storefront.repositories import InventoryRepository

logger = logging.getLogger(__name__)


class MemoryInventoryRepository(InventoryRepository):
    """
    Stock counters in a dict, with the same per-(order, product) restock
    ledger as the PostgreSQL implementation.
    """

    def __init__(self, stock: Optional[Dict[str, int]] = None) -> None:
        self.stock: Dict[str, int] = dict(stock or {})
        self.restocked: Set[Tuple[str, str]] = set()
        logger.debug("Initializing MemoryInventoryRepository")

    @staticmethod
    def _merge(items: List[OrderItem]) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        for item in items:
            totals[item.product_id] = (
                totals.get(item.product_id, 0) + item.quantity
            )
        return totals

    async def reserve_stock(self, order_id: str, items: List[OrderItem]) -> bool:
        wanted = self._merge(items)
        if any(
            self.stock.get(product_id, 0) < quantity
            for product_id, quantity in wanted.items()
        ):
            return False
        for product_id, quantity in wanted.items():
            self.stock[product_id] -= quantity
        return True

    async def restock(self, order_id: str, items: List[OrderItem]) -> int:
        restocked = 0
        for product_id, quantity in self._merge(items).items():
            if (order_id, product_id) in self.restocked:
                continue
            self.restocked.add((order_id, product_id))
            self.stock[product_id] = self.stock.get(product_id, 0) + quantity
            restocked += quantity
        return restocked

    async def get_stock(self, product_id: str) -> Optional[int]:
        return self.stock.get(product_id)

"""
PostgreSQL implementation of InventoryRepository.
"""

import logging
from typing import List, Optional

from asyncpg import Pool

from storefront.domain import OrderItem
from storefront.repositories import InventoryRepository

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS inventory (
    product_id TEXT PRIMARY KEY,
    quantity INTEGER NOT NULL CHECK (quantity >= 0),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS inventory_restocks (
    order_id TEXT NOT NULL,
    product_id TEXT NOT NULL,
    quantity INTEGER NOT NULL,
    restocked_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    PRIMARY KEY (order_id, product_id)
);
"""


class PostgreSQLInventoryRepository(InventoryRepository):
    """
    PostgreSQL implementation of InventoryRepository.

    Stock counters change only through ``quantity = quantity +/- $n``
    updates. Restocks are recorded in ``inventory_restocks`` keyed by
    (order_id, product_id) in the same transaction as the increment, so a
    repeated restock for the same order is a no-op.
    """

    def __init__(self, pool: Pool):
        """
        Initialize with an asyncpg connection pool.

        Args:
            pool: asyncpg connection pool for database operations
        """
        self.pool = pool
        logger.debug("Initialized PostgreSQLInventoryRepository")

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)

    async def reserve_stock(self, order_id: str, items: List[OrderItem]) -> bool:
        """Decrement stock for all lines in one transaction."""
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    for product_id, quantity in _merge_lines(items):
                        row = await conn.fetchrow(
                            """
                            UPDATE inventory
                            SET quantity = quantity - $1, updated_at = now()
                            WHERE product_id = $2 AND quantity >= $1
                            RETURNING quantity
                            """,
                            quantity,
                            product_id,
                        )
                        if row is None:
                            # rolls back the lines already decremented
                            raise _ReservationFailed(product_id, quantity)
        except _ReservationFailed as e:
            product_id, quantity = e.args
            logger.info(
                "Insufficient stock, reservation rolled back",
                extra={
                    "order_id": order_id,
                    "product_id": product_id,
                    "requested": quantity,
                },
            )
            return False

        logger.info(
            "Stock reserved",
            extra={"order_id": order_id, "lines": len(items)},
        )
        return True

    async def restock(self, order_id: str, items: List[OrderItem]) -> int:
        """Return quantities to stock, at most once per order line."""
        restocked = 0
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for product_id, quantity in _merge_lines(items):
                    claimed = await conn.fetchval(
                        """
                        INSERT INTO inventory_restocks
                            (order_id, product_id, quantity)
                        VALUES ($1, $2, $3)
                        ON CONFLICT (order_id, product_id) DO NOTHING
                        RETURNING quantity
                        """,
                        order_id,
                        product_id,
                        quantity,
                    )
                    if claimed is None:
                        logger.info(
                            "Line already restocked, skipping",
                            extra={
                                "order_id": order_id,
                                "product_id": product_id,
                            },
                        )
                        continue

                    await conn.execute(
                        """
                        INSERT INTO inventory (product_id, quantity)
                        VALUES ($1, $2)
                        ON CONFLICT (product_id)
                        DO UPDATE SET
                            quantity = inventory.quantity + EXCLUDED.quantity,
                            updated_at = now()
                        """,
                        product_id,
                        quantity,
                    )
                    restocked += quantity

        logger.info(
            "Restock applied",
            extra={"order_id": order_id, "restocked_quantity": restocked},
        )
        return restocked

    async def get_stock(self, product_id: str) -> Optional[int]:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(
                "SELECT quantity FROM inventory WHERE product_id = $1",
                product_id,
            )


class _ReservationFailed(Exception):
    pass


def _merge_lines(items: List[OrderItem]) -> List[tuple]:
    """Sum quantities per product; an order may list a product twice."""
    totals: dict = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return list(totals.items())

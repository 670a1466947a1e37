"""
PostgreSQL implementation of OrderNumberRepository.
"""

import logging
from datetime import datetime

from asyncpg import Pool

from storefront.domain import format_order_number
from storefront.repositories import OrderNumberRepository

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS order_sequences (
    day DATE PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


class PostgreSQLOrderNumberRepository(OrderNumberRepository):
    """
    Daily order number counter.

    One row per calendar day, advanced with a single upsert so concurrent
    checkouts never receive the same number.
    """

    def __init__(self, pool: Pool):
        self.pool = pool
        logger.debug("Initialized PostgreSQLOrderNumberRepository")

    async def ensure_schema(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA)

    async def next_order_number(self, day: datetime) -> str:
        async with self.pool.acquire() as conn:
            sequence = await conn.fetchval(
                """
                INSERT INTO order_sequences (day, value)
                VALUES ($1, 1)
                ON CONFLICT (day)
                DO UPDATE SET value = order_sequences.value + 1
                RETURNING value
                """,
                day.date(),
            )

        order_number = format_order_number(day, sequence)
        logger.debug(
            "Order number allocated",
            extra={"order_number": order_number, "sequence": sequence},
        )
        return order_number

"""
Memory implementation of OrderNumberRepository.
"""

from datetime import date, datetime
from typing import Dict

from storefront.domain import format_order_number
from storefront.repositories import OrderNumberRepository


class MemoryOrderNumberRepository(OrderNumberRepository):
    def __init__(self) -> None:
        self.counters: Dict[date, int] = {}

    async def next_order_number(self, day: datetime) -> str:
        key = day.date()
        self.counters[key] = self.counters.get(key, 0) + 1
        return format_order_number(day, self.counters[key])

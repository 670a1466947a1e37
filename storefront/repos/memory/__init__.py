"""
Memory repository implementations.

Dictionary-backed stand-ins for the Minio and PostgreSQL repositories,
with the same idempotency guarantees. Used by the scenario tests.
"""

from .inventory import MemoryInventoryRepository
from .order import MemoryOrderRepository
from .sequence import MemoryOrderNumberRepository

__all__ = [
    "MemoryInventoryRepository",
    "MemoryOrderRepository",
    "MemoryOrderNumberRepository",
]

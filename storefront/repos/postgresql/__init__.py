"""PostgreSQL implementations of storefront repositories."""

from .inventory import PostgreSQLInventoryRepository
from .sequence import PostgreSQLOrderNumberRepository

__all__ = [
    "PostgreSQLInventoryRepository",
    "PostgreSQLOrderNumberRepository",
]

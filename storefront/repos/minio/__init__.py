"""Minio implementations of storefront repositories."""

from .order import MinioOrderRepository

__all__ = ["MinioOrderRepository"]

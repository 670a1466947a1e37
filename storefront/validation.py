"""
Runtime validation of architectural contracts.

Use cases receive their collaborators through constructors. These helpers
check, at construction time, that each collaborator satisfies its
@runtime_checkable Protocol, so a mis-wired worker or API dependency fails
loudly at startup instead of halfway through a reconciliation.
"""

import logging
from typing import Any, List, Type, TypeVar

logger = logging.getLogger(__name__)

P = TypeVar("P")


class RepositoryValidationError(Exception):
    """A collaborator does not satisfy the protocol it was wired as"""

    pass


def missing_protocol_members(collaborator: object, protocol: type) -> List[str]:
    """Public protocol members the collaborator does not provide."""
    members = [
        name
        for name in vars(protocol)
        if not name.startswith("_") and callable(getattr(protocol, name))
    ]
    return sorted(
        name for name in members if not hasattr(collaborator, name)
    )


def validate_repository_protocol(
    repository: object, protocol: Type[P]
) -> None:
    """
    Check that an adapter, workflow proxy or mock satisfies a protocol.

    Raises:
        RepositoryValidationError: Naming the members that are missing

    Example:
        >>> from storefront.repos.memory.order import MemoryOrderRepository
        >>> from storefront.repositories import OrderRepository
        >>> validate_repository_protocol(
        ...     MemoryOrderRepository(), OrderRepository
        ... )
    """
    type_name = type(repository).__name__
    if isinstance(repository, protocol):
        logger.debug(
            "Collaborator satisfies protocol",
            extra={"collaborator": type_name, "protocol": protocol.__name__},
        )
        return

    missing = missing_protocol_members(repository, protocol)
    logger.error(
        "Collaborator does not satisfy protocol",
        extra={
            "collaborator": type_name,
            "protocol": protocol.__name__,
            "missing": missing,
        },
    )
    raise RepositoryValidationError(
        f"{type_name} cannot be used as {protocol.__name__}: "
        f"missing {', '.join(missing) or 'compatible members'}"
    )


def ensure_repository_protocol(repository: object, protocol: Type[P]) -> P:
    """Validate and return the collaborator, typed as the protocol."""
    validate_repository_protocol(repository, protocol)
    return repository  # type: ignore[return-value]


def ensure_order_repository(repo: object) -> Any:
    from storefront.repositories import OrderRepository

    return ensure_repository_protocol(repo, OrderRepository)  # type: ignore[type-abstract]


def ensure_order_number_repository(repo: object) -> Any:
    from storefront.repositories import OrderNumberRepository

    return ensure_repository_protocol(repo, OrderNumberRepository)  # type: ignore[type-abstract]


def ensure_inventory_repository(repo: object) -> Any:
    from storefront.repositories import InventoryRepository

    return ensure_repository_protocol(repo, InventoryRepository)  # type: ignore[type-abstract]


def ensure_carrier_gateway(gateway: object) -> Any:
    from storefront.repositories import CarrierGateway

    return ensure_repository_protocol(gateway, CarrierGateway)  # type: ignore[type-abstract]


def ensure_payment_gateway(gateway: object) -> Any:
    from storefront.repositories import PaymentGateway

    return ensure_repository_protocol(gateway, PaymentGateway)  # type: ignore[type-abstract]


def ensure_notification_service(service: object) -> Any:
    from storefront.repositories import NotificationService

    return ensure_repository_protocol(service, NotificationService)  # type: ignore[type-abstract]

"""
Tests for the Temporal activity registration and workflow proxy decorators.
"""

from datetime import timedelta
from typing import List, Optional, Protocol, runtime_checkable
from unittest.mock import AsyncMock, patch

import pytest

from storefront.domain import Order
from storefront.repos.temporal.activities import (
    TemporalDelhiveryCarrierGateway,
    TemporalMinioOrderRepository,
)
from storefront.repos.temporal.decorators import (
    FAIL_FAST_RETRY_POLICY,
    discover_protocol_methods,
    temporal_activity_registration,
    temporal_workflow_proxy,
)
from storefront.repos.temporal.proxies import (
    WorkflowCarrierGatewayProxy,
    WorkflowOrderRepositoryProxy,
)
from storefront.repositories import OrderRepository
from storefront.tests.factories import minimal_order


@runtime_checkable
class Shelf(Protocol):
    async def count(self, product_id: str) -> int: ...

    async def clear(self, product_id: str) -> None: ...

    async def labels(self) -> List[str]: ...


class WoodenShelf(Shelf):
    def __init__(self) -> None:
        self.cleared: List[str] = []

    async def count(self, product_id: str) -> int:
        return 3

    async def clear(self, product_id: str) -> None:
        self.cleared.append(product_id)

    async def labels(self) -> List[str]:
        return ["top", "bottom"]

    async def polish(self) -> None:
        pass


def _activity_name(method) -> Optional[str]:
    definition = getattr(method, "__temporal_activity_definition", None)
    return definition.name if definition is not None else None


def test_discovers_only_protocol_methods():
    """Helpers on the implementation are not part of the contract."""
    methods = discover_protocol_methods(WoodenShelf)

    assert set(methods) == {"count", "clear", "labels"}


def test_discovery_requires_a_protocol():
    class Loose:
        async def count(self) -> int:
            return 0

    with pytest.raises(TypeError, match="Loose implements no Protocol"):
        discover_protocol_methods(Loose)


def test_activity_registration_names_each_protocol_method():
    @temporal_activity_registration("test.shelf")
    class TemporalWoodenShelf(WoodenShelf):
        pass

    assert _activity_name(TemporalWoodenShelf.count) == "test.shelf.count"
    assert _activity_name(TemporalWoodenShelf.clear) == "test.shelf.clear"
    assert _activity_name(TemporalWoodenShelf.labels) == "test.shelf.labels"
    assert "__temporal_activity_definition" not in dir(
        TemporalWoodenShelf.polish
    )


@pytest.mark.asyncio
async def test_registered_activity_delegates_to_implementation():
    @temporal_activity_registration("test.shelf")
    class TemporalWoodenShelf(WoodenShelf):
        pass

    shelf = TemporalWoodenShelf()

    assert await shelf.count("prod-1") == 3
    await shelf.clear("prod-1")
    assert shelf.cleared == ["prod-1"]


def test_adapter_activities_use_shared_prefixes():
    assert _activity_name(TemporalMinioOrderRepository.get_order) == (
        "storefront.order_repo.minio.get_order"
    )
    assert _activity_name(TemporalMinioOrderRepository.save_order) == (
        "storefront.order_repo.minio.save_order"
    )
    assert _activity_name(TemporalDelhiveryCarrierGateway.fetch_tracking) == (
        "storefront.carrier_gateway.delhivery.fetch_tracking"
    )


class TestWorkflowProxy:
    @pytest.fixture
    def proxy_class(self):
        @temporal_workflow_proxy(
            "test.shelf", default_timeout_seconds=12, fail_fast_methods=["clear"]
        )
        class WorkflowShelfProxy(Shelf):
            pass

        return WorkflowShelfProxy

    def test_proxy_satisfies_protocol(self, proxy_class):
        proxy = proxy_class()

        assert isinstance(proxy, Shelf)
        assert proxy.activity_timeout == timedelta(seconds=12)

    @pytest.mark.asyncio
    async def test_call_becomes_activity_with_result_type(self, proxy_class):
        with patch(
            "temporalio.workflow.execute_activity", new=AsyncMock(return_value=3)
        ) as execute_activity:
            result = await proxy_class().count("prod-1")

        assert result == 3
        execute_activity.assert_awaited_once_with(
            "test.shelf.count",
            args=["prod-1"],
            start_to_close_timeout=timedelta(seconds=12),
            retry_policy=None,
            result_type=int,
        )

    @pytest.mark.asyncio
    async def test_none_returning_method_fails_fast(self, proxy_class):
        with patch(
            "temporalio.workflow.execute_activity",
            new=AsyncMock(return_value=None),
        ) as execute_activity:
            await proxy_class().clear("prod-1")

        kwargs = execute_activity.call_args.kwargs
        assert "result_type" not in kwargs
        assert kwargs["retry_policy"] is FAIL_FAST_RETRY_POLICY

    @pytest.mark.asyncio
    async def test_generic_return_type_is_passed_through(self, proxy_class):
        with patch(
            "temporalio.workflow.execute_activity",
            new=AsyncMock(return_value=["top"]),
        ) as execute_activity:
            await proxy_class().labels()

        assert execute_activity.call_args.kwargs["args"] == []
        assert execute_activity.call_args.kwargs["result_type"] == List[str]

    @pytest.mark.asyncio
    async def test_keyword_arguments_are_rejected(self, proxy_class):
        with patch(
            "temporalio.workflow.execute_activity", new=AsyncMock()
        ) as execute_activity:
            with pytest.raises(ValueError, match="positional"):
                await proxy_class().count(product_id="prod-1")

        execute_activity.assert_not_called()


@pytest.mark.asyncio
async def test_order_proxy_deserialises_to_order():
    order = minimal_order()
    with patch(
        "temporalio.workflow.execute_activity",
        new=AsyncMock(return_value=order),
    ) as execute_activity:
        proxy = WorkflowOrderRepositoryProxy()
        result = await proxy.get_order("order-1")

    assert result is order
    assert isinstance(proxy, OrderRepository)
    args, kwargs = execute_activity.call_args
    assert args == ("storefront.order_repo.minio.get_order",)
    assert kwargs["result_type"] == Optional[Order]
    assert kwargs["retry_policy"] is None


@pytest.mark.asyncio
async def test_carrier_proxy_never_retries():
    with patch(
        "temporalio.workflow.execute_activity",
        new=AsyncMock(return_value={"ShipmentData": []}),
    ) as execute_activity:
        await WorkflowCarrierGatewayProxy().fetch_tracking("AWB123")

    assert execute_activity.call_args.kwargs["retry_policy"] is (
        FAIL_FAST_RETRY_POLICY
    )
    assert FAIL_FAST_RETRY_POLICY.maximum_attempts == 1

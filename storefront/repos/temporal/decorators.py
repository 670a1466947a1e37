"""
Temporal decorators for turning protocol implementations into activities
and protocols into workflow proxies.

Both decorators discover the same set of methods: the public coroutine
methods declared on the Protocol classes in the decorated class's MRO.
An activity registered under ``{prefix}.{method}`` by one is therefore
exactly the activity the other calls.
"""

import functools
import inspect
import logging
import typing
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Sequence, Type, TypeVar

from temporalio import activity, workflow
from temporalio.common import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Gateway calls must not be repeated behind the caller's back
FAIL_FAST_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_attempts=1,
    backoff_coefficient=1.0,
    maximum_interval=timedelta(seconds=1),
)


def _is_protocol_class(cls: type) -> bool:
    return bool(getattr(cls, "_is_protocol", False)) and cls is not typing.Protocol


def discover_protocol_methods(cls: type) -> Dict[str, Callable[..., Any]]:
    """
    Public async methods declared by the Protocols ``cls`` implements.

    Raises:
        TypeError: If ``cls`` implements no Protocol with async methods
    """
    methods: Dict[str, Callable[..., Any]] = {}
    for base in cls.__mro__:
        if base is object or not _is_protocol_class(base):
            continue
        for name, member in base.__dict__.items():
            if name in methods or name.startswith("_"):
                continue
            if inspect.iscoroutinefunction(member):
                methods[name] = member

    if not methods:
        raise TypeError(
            f"{cls.__name__} implements no Protocol with async methods"
        )
    logger.debug(
        "Protocol methods discovered",
        extra={"class_name": cls.__name__, "methods": sorted(methods)},
    )
    return methods


def _return_type(method: Callable[..., Any]) -> Optional[Any]:
    """Resolved return annotation, or None for ``-> None``/unannotated."""
    hints = typing.get_type_hints(method)
    return_type = hints.get("return")
    if return_type is None or return_type is type(None):
        return None
    return return_type


def temporal_activity_registration(
    activity_prefix: str,
) -> Callable[[Type[T]], Type[T]]:
    """
    Class decorator registering every protocol method as an activity.

    Example:
        @temporal_activity_registration("storefront.order_repo.minio")
        class TemporalMinioOrderRepository(MinioOrderRepository):
            pass

        # get_order -> "storefront.order_repo.minio.get_order"
        # save_order -> "storefront.order_repo.minio.save_order"
    """

    def decorator(cls: Type[T]) -> Type[T]:
        wrapped = []
        for name in discover_protocol_methods(cls):
            # the concrete implementation, not the protocol stub
            implementation = getattr(cls, name)

            def make_activity(
                impl: Callable[..., Any], method_name: str
            ) -> Callable[..., Any]:
                @functools.wraps(impl)
                async def activity_method(*args: Any, **kwargs: Any) -> Any:
                    return await impl(*args, **kwargs)

                activity_method.__name__ = method_name
                activity_method.__qualname__ = f"{cls.__name__}.{method_name}"
                return activity_method

            activity_name = f"{activity_prefix}.{name}"
            setattr(
                cls,
                name,
                activity.defn(name=activity_name)(
                    make_activity(implementation, name)
                ),
            )
            wrapped.append(name)

        logger.info(
            f"Registered {cls.__name__} methods as Temporal activities",
            extra={"activity_prefix": activity_prefix, "methods": wrapped},
        )
        return cls

    return decorator


def temporal_workflow_proxy(
    activity_base: str,
    default_timeout_seconds: int = 30,
    fail_fast_methods: Optional[Sequence[str]] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Class decorator implementing every protocol method as a call to the
    matching activity.

    Return values are deserialised to the protocol's declared return type
    by the data converter, so ``Optional[Order]`` and ``List[Order]`` come
    back as models. Arguments must be positional.

    Args:
        activity_base: Activity name prefix used at registration
        default_timeout_seconds: start_to_close timeout for every call
        fail_fast_methods: Methods run with a single attempt; all other
            methods use Temporal's default retry policy. Pass ``["*"]`` to
            make every method fail fast.

    Example:
        @temporal_workflow_proxy(
            "storefront.carrier.delhivery",
            default_timeout_seconds=30,
            fail_fast_methods=["*"],
        )
        class WorkflowCarrierGatewayProxy(CarrierGateway):
            pass
    """

    def decorator(cls: Type[T]) -> Type[T]:
        fail_fast = set(fail_fast_methods or [])
        timeout = timedelta(seconds=default_timeout_seconds)
        implemented = []

        for name, protocol_method in discover_protocol_methods(cls).items():
            activity_name = f"{activity_base}.{name}"
            return_type = _return_type(protocol_method)
            retry_policy = (
                FAIL_FAST_RETRY_POLICY
                if "*" in fail_fast or name in fail_fast
                else None
            )

            def make_proxy_method(
                method_name: str,
                activity_name: str,
                return_type: Optional[Any],
                retry_policy: Optional[RetryPolicy],
                protocol_method: Callable[..., Any],
            ) -> Callable[..., Any]:
                @functools.wraps(protocol_method)
                async def proxy_method(
                    self: Any, *args: Any, **kwargs: Any
                ) -> Any:
                    if kwargs:
                        raise ValueError(
                            f"Workflow proxy {method_name} takes positional "
                            f"arguments only, got {sorted(kwargs)}"
                        )
                    options: Dict[str, Any] = {
                        "args": list(args),
                        "start_to_close_timeout": timeout,
                        "retry_policy": retry_policy,
                    }
                    if return_type is not None:
                        options["result_type"] = return_type
                    logger.debug(
                        f"Workflow: calling {activity_name}",
                        extra={"args_count": len(args)},
                    )
                    return await workflow.execute_activity(
                        activity_name, **options
                    )

                return proxy_method

            setattr(
                cls,
                name,
                make_proxy_method(
                    name,
                    activity_name,
                    return_type,
                    retry_policy,
                    protocol_method,
                ),
            )
            implemented.append(name)

        def __init__(proxy_self: Any) -> None:
            proxy_self.activity_timeout = timeout
            logger.debug(f"Initialized {cls.__name__}")

        setattr(cls, "__init__", __init__)

        logger.info(
            f"Temporal workflow proxy applied to {cls.__name__}",
            extra={
                "activity_base": activity_base,
                "methods": implemented,
                "fail_fast_methods": sorted(fail_fast),
            },
        )
        return cls

    return decorator

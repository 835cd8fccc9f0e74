"""Route Table Module.

根据服务定义为每个 `服务名_方法名` 订阅一个监听器：
把参数按声明顺序排成位置参数，调用注册的处理函数，把结果作为回复发布回总线。
"""

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable

from loguru import logger

from .dispatcher import Dispatcher
from .errors import BadRequest, ConfigurationError, GatewayError, HandlerFailure, MissingHandler
from .registry import MethodRegistry
from .structs import (
    DispatchEvent,
    MethodSpec,
    ReplyEnvelope,
    ServiceDefinition,
    dispatch_key,
    qualified_name,
)

_ABSENT = object()


@dataclass(frozen=True)
class Route:
    """路由元信息."""

    service_name: str
    method_name: str
    spec: MethodSpec

    @property
    def key(self) -> str:
        return dispatch_key(self.service_name, self.method_name)

    @property
    def qualified_name(self) -> str:
        return qualified_name(self.service_name, self.method_name)


def check_param_order(service_name: str, method_name: str, spec: MethodSpec) -> None:
    """参数序号必须唯一且从 1 开始连续."""
    orders = sorted(param.order for param in spec.params.values())
    if orders != list(range(1, len(orders) + 1)):
        raise ConfigurationError(
            f"Params of {service_name}:{method_name} must be ordered 1..{len(orders)}, got {orders}"
        )


def project_args(spec: MethodSpec, args: dict[str, Any]) -> list[Any]:
    """把按名字给出的参数排成位置参数列表.

    缺省的可选参数优先使用 defaultValue；没有默认值时，位于末尾的直接省略
    （让处理函数自己的默认值生效），位于中间的填 None。

    Raises:
        BadRequest: 缺少必填参数
    """
    values: list[Any] = []
    for name, param in spec.ordered_params():
        if name in args:
            values.append(args[name])
        elif param.has_default:
            values.append(param.default_value)
        elif param.optional:
            values.append(_ABSENT)
        else:
            raise BadRequest(f"Missing required argument: {name}")

    while values and values[-1] is _ABSENT:
        values.pop()
    return [None if value is _ABSENT else value for value in values]


class RouteTable:
    """分发键 -> 参数投影并调用."""

    def __init__(
        self,
        definition: ServiceDefinition,
        registry: MethodRegistry,
        dispatcher: Dispatcher,
    ) -> None:
        self._definition = definition
        self._registry = registry
        self._dispatcher = dispatcher
        self.routes: dict[str, Route] = {}
        self._unsubscribers: list = []
        self._tasks: dict[str, asyncio.Task] = {}

    def build(self) -> "RouteTable":
        """校验服务定义并订阅所有分发键."""
        routes: dict[str, Route] = {}
        for service_name, info in self._definition.items():
            for method_name, spec in info.methods.items():
                check_param_order(service_name, method_name, spec)
                route = Route(service_name, method_name, spec)
                if route.key in routes:
                    other = routes[route.key]
                    raise ConfigurationError(
                        f"Dispatch key {route.key!r} is shared by "
                        f"{other.qualified_name} and {route.qualified_name}"
                    )
                if self._registry.resolve(service_name, method_name) is None:
                    logger.warning(f"No handler registered for {route.qualified_name}")
                routes[route.key] = route

        for route in routes.values():
            logger.debug(f"Subscribing to: {route.key}")
            self._unsubscribers.append(
                self._dispatcher.subscribe(route.key, self._listener(route))
            )
        self.routes = routes
        return self

    def dispatch_keys(self) -> list[str]:
        return list(self.routes)

    def _listener(self, route: Route):
        return lambda event: self._on_dispatch(route, event)

    def _on_dispatch(self, route: Route, event: DispatchEvent) -> None:
        logger.debug(f"Received {route.key} ({event.correlation_id}): {event.args}")
        try:
            args = project_args(route.spec, event.args)
            handler = self._registry.resolve(route.service_name, route.method_name)
            if handler is None:
                raise MissingHandler(f"No handler registered for {route.qualified_name}")
        except GatewayError as e:
            logger.warning(f"Rejected {route.key} ({event.correlation_id}): {e}")
            self._reply(event, ReplyEnvelope.from_error(e))
            return

        logger.debug(f"Invoking {route.qualified_name} with {args}")
        try:
            result = handler(*args)
        except Exception:
            logger.exception(f"Handler {route.qualified_name} failed")
            self._reply(event, ReplyEnvelope.from_error(HandlerFailure()))
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(self._await_result(route, event, result))
            self._tasks[event.correlation_id] = task
            task.add_done_callback(lambda _: self._tasks.pop(event.correlation_id, None))
            return

        self._complete(route, event, result)

    async def _await_result(
        self, route: Route, event: DispatchEvent, awaitable: Awaitable
    ) -> None:
        try:
            result = await awaitable
        except Exception:
            logger.exception(f"Handler {route.qualified_name} failed")
            self._reply(event, ReplyEnvelope.from_error(HandlerFailure()))
            return
        self._complete(route, event, result)

    def _complete(self, route: Route, event: DispatchEvent, result: Any) -> None:
        logger.debug(f"Method result: {result!r}")
        try:
            reply = ReplyEnvelope.success(route.spec.return_info.type, result)
        except Exception:
            logger.exception(f"Result of {route.qualified_name} is not JSON serialisable")
            reply = ReplyEnvelope.from_error(HandlerFailure())
        self._reply(event, reply)

    def _reply(self, event: DispatchEvent, reply: ReplyEnvelope) -> None:
        self._dispatcher.publish_reply(event.correlation_id, reply)

    @property
    def pending(self) -> int:
        """仍在运行的异步处理任务数."""
        return len(self._tasks)

    def cancel(self, correlation_id: str) -> bool:
        """取消某个请求仍在运行的处理任务，没有时返回 False."""
        task = self._tasks.pop(correlation_id, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_pending(self) -> None:
        for correlation_id in list(self._tasks):
            self.cancel(correlation_id)

    def close(self) -> None:
        """取消全部订阅和仍在运行的任务."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.cancel_pending()

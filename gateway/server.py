"""RPC Gateway Server Module.

提供基于 HTTP 的 RPC 网关，支持构建期注册、请求关联和生命周期管理。
"""

import asyncio
import inspect
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from aiohttp import web
from loguru import logger
from pydantic import ValidationError

from utils.logger import rewrite_logging_logger, setup_logger

from .config import LogTransport, ServerConfig
from .dispatcher import Dispatcher
from .errors import (
    BadRequest,
    ConfigurationError,
    CorrelationTimeout,
    GatewayError,
    HandlerFailure,
    RoutingMiss,
)
from .registry import MethodRegistry
from .routes import RouteTable
from .structs import DispatchEvent, ReplyEnvelope, RequestEnvelope, qualified_name

_start = """
#################################
#          RPC Gateway          #
#        Server Started         #
#################################
"""


class ServerBuilder:
    """服务器构建器.

    构建前收集日志输出、处理函数和生命周期钩子，build() 之后任何修改都会抛出
    ConfigurationError。

    Example:
        >>> server = (
        ...     ServerBuilder(config)
        ...     .add_console_logger("debug")
        ...     .add_function(add)
        ...     .build()
        ... )
    """

    def __init__(
        self, config: ServerConfig | dict, dispatcher: Optional[Dispatcher] = None
    ) -> None:
        if not isinstance(config, ServerConfig):
            try:
                config = ServerConfig.model_validate(config)
            except ValidationError as e:
                raise ConfigurationError(f"Invalid server config: {e}") from e
        self.config: ServerConfig = config
        self._dispatcher = dispatcher
        self._registry = MethodRegistry()
        self._transports: list[LogTransport] = []
        self._start_hooks: list[Callable] = []
        self._shutdown_hooks: list[Callable] = []
        self._built = False

    def _ensure_mutable(self, what: str) -> None:
        if self._built:
            raise ConfigurationError(f"Unable to add {what} after server built")

    def _add_transport(self, **kwargs: Any) -> "ServerBuilder":
        self._ensure_mutable(f"{kwargs['name']} logger")
        try:
            self._transports.append(LogTransport(**kwargs))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid {kwargs['name']} logger: {e}") from e
        return self

    def add_console_logger(self, level: str = "debug") -> "ServerBuilder":
        return self._add_transport(name="console", level=level)

    def add_file_logger(self, filename: str | Path, level: str = "debug") -> "ServerBuilder":
        return self._add_transport(name="file", level=level, filename=filename)

    def add_http_logger(self, host: str, port: int = 80, level: str = "warn") -> "ServerBuilder":
        return self._add_transport(name="http", level=level, host=host, port=port)

    def add_function(self, fn: Callable, name: str | None = None) -> "ServerBuilder":
        """注册处理函数，name 默认为函数名."""
        self._ensure_mutable("function")
        self._registry.register(name if name is not None else getattr(fn, "__name__", ""), fn)
        return self

    def method(self, f: Optional[Callable] = None, *, name: str | None = None):
        """以装饰器形式注册处理函数."""

        if f is None:
            return lambda f: self.method(f, name=name)

        self.add_function(f, name)
        return f

    def on_start(self, func: Callable) -> Callable:
        """注册启动钩子."""
        self._ensure_mutable("start hook")
        self._start_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable) -> Callable:
        """注册关闭钩子."""
        self._ensure_mutable("shutdown hook")
        self._shutdown_hooks.append(func)
        return func

    def _register_handler_classes(self) -> None:
        for service_name, info in self.config.service_definition.items():
            if info.handler_class is None:
                continue
            try:
                instance = info.handler_class()
            except Exception as e:
                raise ConfigurationError(
                    f"Unable to instantiate handler class of {service_name}: {e}"
                ) from e
            for method_name in info.methods:
                fn = getattr(instance, method_name, None)
                if fn is None:
                    logger.warning(
                        f"{info.handler_class.__name__} has no method {method_name!r}"
                    )
                    continue
                self._registry.register(qualified_name(service_name, method_name), fn)

    def build(self) -> "GatewayServer":
        """生成不可变的服务器实例."""
        self._ensure_mutable("anything")
        self._register_handler_classes()
        dispatcher = self._dispatcher or Dispatcher()
        routes = RouteTable(self.config.service_definition, self._registry, dispatcher).build()
        self._registry.freeze()
        self._built = True
        return GatewayServer(
            config=self.config,
            registry=self._registry,
            dispatcher=dispatcher,
            routes=routes,
            transports=tuple(self._transports),
            start_hooks=tuple(self._start_hooks),
            shutdown_hooks=tuple(self._shutdown_hooks),
        )


class GatewayServer:
    """RPC 网关服务器，由 ServerBuilder 构建，构建后配置不可修改."""

    def __init__(
        self,
        config: ServerConfig,
        registry: MethodRegistry,
        dispatcher: Dispatcher,
        routes: RouteTable,
        transports: Sequence[LogTransport] = (),
        start_hooks: Sequence[Callable] = (),
        shutdown_hooks: Sequence[Callable] = (),
    ) -> None:
        self.config = config
        self.registry = registry
        self.dispatcher = dispatcher
        self.routes = routes
        self._transports = tuple(transports)
        self._start_hooks = tuple(start_hooks)
        self._shutdown_hooks = tuple(shutdown_hooks)
        self._is_running: bool = False
        self._stopped: asyncio.Event | None = None
        self.runner: web.ServerRunner | None = None

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def _execute_hooks(self, hooks: Sequence[Callable]) -> None:
        """执行生命周期钩子."""
        for hook in hooks:
            if inspect.iscoroutinefunction(hook):
                try:
                    await hook()
                except Exception as e:
                    logger.error(f"Error executing hook {hook.__name__}: {e}")
            else:
                try:
                    await asyncio.to_thread(hook)
                except Exception as e:
                    logger.error(f"Error executing hook {hook.__name__}: {e}")

    async def handle_request(self, request: web.BaseRequest) -> web.Response:
        """处理一个 HTTP 请求，恰好返回一个回复."""
        method, path = request.method, request.path
        logger.debug(f"Parsing message: {method} {path}")

        if method.upper() != "POST" or path != self.config.endpoint:
            # 不读取请求体
            return self._respond(ReplyEnvelope.from_error(BadRequest()))

        # 1️⃣ 读取完整请求体
        raw = await request.read()

        # 2️⃣ 解析并校验信封
        try:
            envelope = RequestEnvelope.model_validate_json(raw)
        except ValidationError as e:
            logger.debug(f"Invalid envelope: {e}")
            return self._respond(ReplyEnvelope.from_error(BadRequest()))

        # 3️⃣ 分发并等待对应的回复
        reply = await self._dispatch(envelope)
        return self._respond(reply)

    async def _dispatch(self, envelope: RequestEnvelope) -> ReplyEnvelope:
        key = envelope.dispatch_key
        try:
            with self.dispatcher.expect_reply() as pending:
                event = DispatchEvent(correlation_id=pending.correlation_id, args=envelope.args)
                if not self.dispatcher.publish(key, event):
                    raise RoutingMiss(f"No subscriber for {key}")
                return await asyncio.wait_for(pending.future, self.config.reply_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"No reply for {key} ({pending.correlation_id}) "
                f"within {self.config.reply_timeout}s"
            )
            self.routes.cancel(pending.correlation_id)
            return ReplyEnvelope.from_error(CorrelationTimeout())
        except GatewayError as e:
            logger.warning(f"Dispatch of {key} failed: {e}")
            return ReplyEnvelope.from_error(e)
        except Exception:
            logger.exception(f"Dispatch of {key} failed")
            return ReplyEnvelope.from_error(HandlerFailure())

    @staticmethod
    def _respond(reply: ReplyEnvelope) -> web.Response:
        return web.Response(
            status=reply.status_code,
            text=reply.body(),
            content_type="application/json",
        )

    async def _serve(self) -> None:
        self.runner = web.ServerRunner(web.Server(self.handle_request))
        await self.runner.setup()
        try:
            site = web.TCPSite(self.runner, self.config.host, self.config.port)
            await site.start()
            logger.info(f"Server started at {self.config.host}:{self.config.port}")
            await self._stopped.wait()  # type: ignore[union-attr]
        finally:
            await self.runner.cleanup()
            self.runner = None

    async def start(self) -> None:
        """启动网关服务器，直到 shutdown() 被调用."""
        setup_logger(self._transports, self.config.log_level)
        for name in ("aiohttp.access", "aiohttp.server", "aiohttp.web"):
            rewrite_logging_logger(name)

        logger.info(_start)

        # 执行启动钩子
        await self._execute_hooks(self._start_hooks)

        self._stopped = asyncio.Event()
        self._is_running = True

        while self._is_running:
            try:
                await self._serve()

            except asyncio.CancelledError:
                # 正常 shutdown
                break

            except Exception as e:
                logger.exception(f"RPC Gateway crashed: {e}")
                await asyncio.sleep(5)
                logger.info("RPC Gateway restarting...")

        self._is_running = False

    async def shutdown(self) -> None:
        """关闭网关服务器."""
        logger.info("Shutting down RPC Gateway...")
        self._is_running = False
        if self._stopped is not None:
            self._stopped.set()
        self.routes.cancel_pending()
        # 执行关闭钩子
        await self._execute_hooks(self._shutdown_hooks)

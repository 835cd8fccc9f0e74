from typing import Callable, Iterator, Optional

from loguru import logger

from .errors import ConfigurationError
from .structs import qualified_name


class MethodRegistry:
    """
    方法名 -> 处理函数

    键可以是裸方法名（多个服务共享，后注册的覆盖先注册的），
    也可以是 `服务名:方法名`（只对该服务生效）。
    """

    def __init__(self) -> None:
        self._handlers: dict[str, Callable] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """服务器启动前冻结，之后禁止注册."""
        self._frozen = True

    def register(self, name: str, handler: Callable) -> None:
        if self._frozen:
            raise ConfigurationError(
                f"Unable to register method {name!r} after server built"
            )
        if not name or not name.strip():
            raise ConfigurationError("Method name must not be empty")
        if not callable(handler):
            raise ConfigurationError(f"Handler for {name!r} is not callable")

        if name in self._handlers:
            logger.warning(f"Method {name!r} re-registered, previous handler replaced")
        logger.debug(f"Registering method: {name}")
        self._handlers[name] = handler

    def handler(self, f: Optional[Callable] = None, *, name: str | None = None):
        """以装饰器形式注册处理函数."""

        if f is None:
            return lambda f: self.handler(f, name=name)

        self.register(name if name is not None else f.__name__, f)
        return f

    def lookup(self, name: str) -> Callable | None:
        return self._handlers.get(name)

    def resolve(self, service_name: str, method_name: str) -> Callable | None:
        """先查 `服务名:方法名`，再查裸方法名.

        限定名总是优先：裸方法名的注册（无论先后）只在该服务没有限定名处理函数时生效，
        裸方法名之间仍然是后注册的覆盖先注册的。处理类的方法以限定名注册。
        """
        handler = self._handlers.get(qualified_name(service_name, method_name))
        if handler is None:
            handler = self._handlers.get(method_name)
        return handler

    def names(self) -> list[str]:
        return list(self._handlers)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

import logging
import sys
from pathlib import Path
from typing import Literal, Optional, Sequence

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, field_validator

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

_LEVEL_ALIASES = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
}


def normalize_level(level: str) -> str:
    """把 debug|info|warn|error 转成 loguru 级别名."""
    try:
        return _LEVEL_ALIASES[level.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}") from None


class LogTransport(BaseModel):
    """日志输出目标."""

    model_config = ConfigDict(frozen=True)

    name: Literal["console", "file", "http"]
    level: str = "DEBUG"
    filename: Optional[Path] = None
    host: Optional[str] = None
    port: int = 80

    @field_validator("level")
    @classmethod
    def _level(cls, v: str) -> str:
        return normalize_level(v)


class InterceptHandler(logging.Handler):
    """将标准日志记录重定向到 Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        # 获取 Loguru 级别
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 查找调用栈深度
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:  # type: ignore[union-attr]
            frame = frame.f_back  # type: ignore[union-attr]
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def rewrite_logging_logger(logger_name: str) -> None:
    """重写指定名称的标准日志记录器以使用 Loguru.

    Args:
        logger_name: 要重写的日志记录器名称
    """
    logging_logger = logging.getLogger(logger_name)
    for handler in list(logging_logger.handlers):
        logging_logger.removeHandler(handler)
    logging_logger.addHandler(InterceptHandler())
    logging_logger.setLevel(logging.DEBUG)


class HttpSink:
    """把日志记录以 JSON POST 到远端的 sink."""

    def __init__(
        self,
        host: str,
        port: int = 80,
        path: str = "/",
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = f"http://{host}:{port}{path}"
        self._client = client or httpx.Client(timeout=5.0)

    def __call__(self, message) -> None:
        record = message.record
        payload = {
            "time": record["time"].isoformat(),
            "level": record["level"].name,
            "name": record["name"],
            "function": record["function"],
            "line": record["line"],
            "message": record["message"],
        }
        # 发送失败由 loguru 捕获并打印到 stderr
        self._client.post(self.url, json=payload).raise_for_status()


def _add_transport(transport: LogTransport) -> int:
    if transport.name == "console":
        return logger.add(
            sys.stderr,
            format=LOG_FORMAT,
            level=transport.level,
            colorize=True,
            backtrace=True,
            diagnose=True,
            enqueue=False,
        )
    if transport.name == "file":
        return logger.add(
            transport.filename or Path(Path.cwd(), "logs", "app.log"),
            rotation="00:00",
            retention="30 days",
            compression="zip",
            format=LOG_FORMAT,
            encoding="utf-8",
            level=transport.level,
            colorize=False,
            backtrace=True,
            diagnose=True,
            enqueue=True,
        )
    if not transport.host:
        raise ValueError("http log transport requires a host")
    # 入队发送，不阻塞事件循环
    return logger.add(
        HttpSink(transport.host, transport.port),
        level=transport.level,
        enqueue=True,
    )


def setup_logger(transports: Sequence[LogTransport] = (), level: str = "DEBUG") -> list[int]:
    """按给定的输出目标配置 loguru，返回 sink id 列表.

    level 是所有输出目标的最低级别，低于它的目标级别会被提高到 level。
    没有任何输出目标时只输出到控制台。
    """
    floor = normalize_level(level)
    logger.remove()
    if not transports:
        transports = [LogTransport(name="console", level=floor)]
    return [
        _add_transport(
            transport
            if logger.level(transport.level).no >= logger.level(floor).no
            else transport.model_copy(update={"level": floor})
        )
        for transport in transports
    ]

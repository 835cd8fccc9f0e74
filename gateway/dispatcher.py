"""Dispatcher Module.

进程内的同步发布/订阅总线，HTTP 层与业务层之间唯一的通信通道。
回复按请求的关联 ID 发布到独立的主题上，每个等待中的连接只会收到自己的回复。
"""

import asyncio
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator

from loguru import logger

from .structs import ReplyEnvelope

Listener = Callable[[Any], None]

REPLY_TOPIC_PREFIX = "result:"


def reply_topic(correlation_id: str) -> str:
    return f"{REPLY_TOPIC_PREFIX}{correlation_id}"


@dataclass
class PendingReply:
    """一个等待中的回复."""

    correlation_id: str
    future: asyncio.Future


class Dispatcher:
    """同步事件总线.

    publish 在调用方所在的线程上按订阅顺序依次调用监听器，
    监听器抛出的异常直接传给发布方。
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """订阅主题，返回取消订阅的函数."""
        self._listeners.setdefault(key, []).append(listener)
        return lambda: self.unsubscribe(key, listener)

    def unsubscribe(self, key: str, listener: Listener) -> None:
        listeners = self._listeners.get(key)
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[key]

    def publish(self, key: str, payload: Any) -> int:
        """发布事件，返回被调用的监听器数量（0 表示没有订阅者）."""
        listeners = list(self._listeners.get(key, ()))
        for listener in listeners:
            listener(payload)
        return len(listeners)

    def has_subscribers(self, key: str) -> bool:
        return bool(self._listeners.get(key))

    def topics(self) -> set[str]:
        return set(self._listeners)

    def listener_count(self, key: str | None = None) -> int:
        if key is not None:
            return len(self._listeners.get(key, ()))
        return sum(len(listeners) for listeners in self._listeners.values())

    @contextmanager
    def expect_reply(self) -> Iterator[PendingReply]:
        """为一个请求挂上一次性的回复监听器，退出时总是摘除.

        必须在事件循环中调用。
        """
        loop = asyncio.get_running_loop()
        pending = PendingReply(correlation_id=uuid.uuid4().hex, future=loop.create_future())
        topic = reply_topic(pending.correlation_id)

        def on_reply(reply: ReplyEnvelope) -> None:
            self.unsubscribe(topic, on_reply)
            if not pending.future.done():
                pending.future.set_result(reply)

        self.subscribe(topic, on_reply)
        try:
            yield pending
        finally:
            self.unsubscribe(topic, on_reply)

    def publish_reply(self, correlation_id: str, reply: ReplyEnvelope) -> bool:
        """发布回复，没有人在等待时丢弃并返回 False."""
        delivered = self.publish(reply_topic(correlation_id), reply)
        if not delivered:
            logger.debug(f"Dropping reply for {correlation_id}: no listener waiting")
        return bool(delivered)


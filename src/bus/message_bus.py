# -*- coding: utf-8 -*-
"""
事件总线 - 按事件类型分发

处理器按注册顺序依次 await，保证同一次调用内的写入顺序
"""
import inspect
import logging
from typing import Awaitable, Callable, Union

from .events import Event, EventKind

logger = logging.getLogger('bus')

EventHandler = Callable[[Event], Union[Awaitable[None], None]]


class EventBus:
    """
    事件总线

    负责：
    1. 按 EventKind 注册回调
    2. 发布事件并依次调用对应回调
    3. 隔离回调异常，不影响发布方
    """

    def __init__(self):
        self._handlers: dict[EventKind, list[EventHandler]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, handler: EventHandler) -> None:
        """
        订阅事件

        Args:
            kind: 事件类型
            handler: 处理函数（同步或异步）
        """
        self._handlers[kind].append(handler)
        logger.debug(f"事件处理器已订阅: {kind.value}，当前数量: {len(self._handlers[kind])}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """订阅全部事件类型（通道层常用）"""
        for kind in EventKind:
            self.subscribe(kind, handler)

    def unsubscribe(self, kind: EventKind, handler: EventHandler) -> None:
        """取消订阅"""
        if handler in self._handlers[kind]:
            self._handlers[kind].remove(handler)

    def handler_count(self, kind: EventKind) -> int:
        return len(self._handlers[kind])

    async def publish(self, kind: EventKind, payload=None) -> None:
        """
        发布事件

        所有订阅该类型的处理器都会按顺序收到事件
        """
        event = Event(kind=kind, payload=payload)
        for handler in list(self._handlers[kind]):
            await self._safe_call(handler, event)

    async def _safe_call(self, handler: EventHandler, event: Event) -> None:
        """安全调用处理器，捕获异常"""
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.exception(f"事件处理器错误 ({event.kind.value}): {e}")

# -*- coding: utf-8 -*-
"""
事件总线 - 用于解耦核心组件与通道/界面
"""
from .events import Event, EventKind
from .message_bus import EventBus

__all__ = [
    'Event',
    'EventKind',
    'EventBus',
]

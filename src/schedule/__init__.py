# -*- coding: utf-8 -*-
"""
调度系统

- ActionScheduler: 优先级 + 依赖的动作队列，单并发执行
- ActionHandlerRegistry: 按动作类型注册处理器
- IntervalScheduler: 周期定时器
"""
from .types import Action, ActionKind, ActionPriority, ActionStatus
from .handlers import ActionHandlerRegistry, DefaultActionHandlers
from .scheduler import ActionScheduler
from .timers import IntervalScheduler

__all__ = [
    'Action',
    'ActionKind',
    'ActionPriority',
    'ActionStatus',
    'ActionHandlerRegistry',
    'DefaultActionHandlers',
    'ActionScheduler',
    'IntervalScheduler',
]

# -*- coding: utf-8 -*-
"""
核心事件类型定义

事件类型是封闭的枚举，载荷是数据模型的副本
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class EventKind(Enum):
    """事件类型"""
    MEMORY_ADDED = "memoryAdded"
    MEMORY_CONSOLIDATED = "memoryConsolidated"
    MEMORY_ARCHIVED = "memoryArchived"
    TASK_CREATED = "taskCreated"
    TASK_UPDATED = "taskUpdated"
    ACTION_SCHEDULED = "actionScheduled"
    ACTION_UPDATED = "actionUpdated"
    THOUGHT_GENERATED = "thoughtGenerated"
    STATUS_UPDATED = "statusUpdated"
    PROVIDER_CHANGED = "providerChanged"


@dataclass
class Event:
    """
    核心事件

    Attributes:
        kind: 事件类型
        payload: 事件载荷（MemoryEntry / Action / Task / SystemStatus 等的副本）
        timestamp: 发生时间
    """
    kind: EventKind
    payload: Any = None
    timestamp: datetime = field(default_factory=datetime.now)

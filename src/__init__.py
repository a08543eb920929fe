# -*- coding: utf-8 -*-
"""
NOVA Assistant

记忆驱动的自主调度核心
核心特性：
- 评分、打标签、自动关联的记忆存储
- 从记忆中产生想法并转为动作
- 优先级 + 依赖的单并发动作调度
- 多提供方路由，本地兜底永不失败
"""

__version__ = "1.0.0"
__author__ = "NOVA Assistant Team"

# 核心模块导出
from src.core.context import CoreContext
from src.core.assistant import AssistantCore, SystemStatus
from src.memory.memory_store import MemoryStore
from src.schedule.scheduler import ActionScheduler
from src.providers.router import ProviderRouter

__all__ = [
    "CoreContext",
    "AssistantCore",
    "SystemStatus",
    "MemoryStore",
    "ActionScheduler",
    "ProviderRouter",
    "__version__",
]

# -*- coding: utf-8 -*-
"""
任务管理系统

支持：
- 任务状态：待处理、进行中、已完成、已取消
- 优先级与调度动作共用同一刻度
- 执行委托给调度器的 task 动作
"""
from .types import Task, TaskStatus
from .manager import TaskManager, TASK_COLLECTION

__all__ = [
    'Task',
    'TaskStatus',
    'TaskManager',
    'TASK_COLLECTION',
]

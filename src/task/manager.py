# -*- coding: utf-8 -*-
"""
任务管理器

管理任务的生命周期与状态流转，执行由调度器的 task 动作完成
"""
from __future__ import annotations
import copy
import logging
from datetime import datetime
from typing import Any, Optional

from ..bus import EventBus, EventKind
from ..schedule.types import ActionPriority
from ..storage import PersistencePort
from .types import Task, TaskStatus

logger = logging.getLogger('task.manager')

TASK_COLLECTION = "tasks"


class TaskManager:
    """
    任务管理器

    功能：
    - 创建/查询任务
    - 状态流转（pending → in_progress → completed，未完成可取消）
    - 每次变更整体写回 "tasks" 集合并发布事件
    """

    def __init__(self, persistence: PersistencePort, bus: Optional[EventBus] = None):
        self.persistence = persistence
        self.bus = bus
        self.tasks: dict[str, Task] = {}

    async def load(self) -> int:
        """从持久化端口加载任务"""
        self.tasks = {}
        for record in await self.persistence.load(TASK_COLLECTION):
            try:
                task = Task.from_dict(record)
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"跳过无法解析的任务记录: {e}")
                continue
            self.tasks[task.id] = task
        logger.info(f"已加载 {len(self.tasks)} 个任务")
        return len(self.tasks)

    async def _save_tasks(self):
        await self.persistence.save(TASK_COLLECTION, [t.to_dict() for t in self.tasks.values()])

    async def _publish(self, kind: EventKind, task: Task):
        if self.bus:
            await self.bus.publish(kind, copy.deepcopy(task))

    async def create(
        self,
        title: str,
        description: str = "",
        priority: Optional[ActionPriority | str] = None,
        tags: Optional[list[str]] = None,
        dependencies: Optional[list[str]] = None,
        source_conversation: Optional[str] = None
    ) -> Task:
        """
        创建任务

        Args:
            title: 任务标题
            description: 任务描述
            priority: 优先级（枚举或 "critical"/"high"/"medium"/"low"）
            tags: 标签
            dependencies: 依赖的任务ID
            source_conversation: 来源对话ID

        Returns:
            创建的任务（副本）
        """
        if isinstance(priority, str):
            priority = ActionPriority.from_string(priority)
        elif priority is None:
            priority = ActionPriority.MEDIUM

        task = Task(
            title=title,
            description=description,
            priority=priority,
            tags=tags or [],
            dependencies=dependencies or [],
            source_conversation=source_conversation,
        )

        self.tasks[task.id] = task
        await self._save_tasks()

        logger.info(f"创建任务: {task.id} - {title}")
        await self._publish(EventKind.TASK_CREATED, task)
        return copy.deepcopy(task)

    def get(self, task_id: str) -> Optional[Task]:
        """获取任务（副本）"""
        task = self.tasks.get(task_id)
        return copy.deepcopy(task) if task else None

    async def _transition(self, task_id: str, status: TaskStatus, allowed: tuple[TaskStatus, ...],
                          result: Optional[str] = None) -> bool:
        task = self.tasks.get(task_id)
        if not task or task.status not in allowed:
            return False

        task.status = status
        task.updated_at = datetime.now()
        if result is not None:
            task.result = result

        await self._save_tasks()
        logger.info(f"任务 {task_id} → {status.value}")
        await self._publish(EventKind.TASK_UPDATED, task)
        return True

    async def link_action(self, task_id: str, action_id: str) -> bool:
        """记录任务对应的调度动作"""
        task = self.tasks.get(task_id)
        if not task:
            return False
        task.action_id = action_id
        task.updated_at = datetime.now()
        await self._save_tasks()
        return True

    async def start(self, task_id: str) -> bool:
        """开始执行任务"""
        return await self._transition(task_id, TaskStatus.IN_PROGRESS, (TaskStatus.PENDING,))

    async def complete(self, task_id: str, result: str = "") -> bool:
        """
        完成任务

        Args:
            task_id: 任务ID
            result: 执行结果
        """
        return await self._transition(
            task_id, TaskStatus.COMPLETED, (TaskStatus.PENDING, TaskStatus.IN_PROGRESS), result
        )

    async def cancel(self, task_id: str) -> bool:
        """取消未完成的任务"""
        return await self._transition(
            task_id, TaskStatus.CANCELLED, (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)
        )

    def list_tasks(self, status: Optional[TaskStatus | str] = None) -> list[Task]:
        """
        列出任务（优先级降序，同优先级按创建时间）

        Args:
            status: 状态筛选（枚举或字符串）
        """
        if isinstance(status, str):
            status = TaskStatus(status)

        result = [t for t in self.tasks.values() if status is None or t.status == status]
        result.sort(key=lambda t: (-t.priority.rank, t.created_at))
        return [copy.deepcopy(t) for t in result]

    def in_progress_count(self) -> int:
        return sum(1 for t in self.tasks.values() if t.status == TaskStatus.IN_PROGRESS)

    def get_stats(self) -> dict[str, Any]:
        """获取统计信息"""
        by_status: dict[str, int] = {}
        for task in self.tasks.values():
            by_status[task.status.value] = by_status.get(task.status.value, 0) + 1
        return {"total": len(self.tasks), "by_status": by_status}

    def get_summary(self) -> str:
        """获取任务摘要（用于展示）"""
        stats = self.get_stats()
        lines = [f"📋 Tasks: {stats['total']}"]

        open_tasks = [t for t in self.list_tasks() if t.is_open]
        if open_tasks:
            lines.append("Open:")
            for task in open_tasks[:10]:
                lines.append(f"  [{task.priority.value}] {task.id} {task.title} ({task.status.value})")

        done = self.list_tasks(TaskStatus.COMPLETED)
        if done:
            lines.append(f"Completed: {len(done)}")

        if stats['total'] == 0:
            lines.append("No tasks yet. Try: create task <title>")
        return "\n".join(lines)

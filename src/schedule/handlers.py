# -*- coding: utf-8 -*-
"""
动作处理器

- ActionHandlerRegistry: 按 ActionKind 注册处理器，调度器只通过它分发
- DefaultActionHandlers: 五种动作类型的默认实现
"""
from __future__ import annotations

import inspect
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Union

from ..core.exceptions import ActionHandlerError, UnknownActionKindError
from ..memory.types import MemoryKind
from .types import Action, ActionKind

if TYPE_CHECKING:
    from ..core.context import CoreContext

logger = logging.getLogger('schedule.handlers')

ActionHandler = Callable[[Action], Union[Awaitable[Optional[str]], Optional[str]]]


class ActionHandlerRegistry:
    """动作处理器注册表"""

    def __init__(self):
        self._handlers: dict[ActionKind, ActionHandler] = {}

    def register(self, kind: ActionKind, handler: ActionHandler) -> None:
        """注册处理器（同一类型重复注册会覆盖）"""
        if kind in self._handlers:
            logger.warning(f"覆盖已注册的处理器: {kind.value}")
        self._handlers[kind] = handler
        logger.debug(f"注册动作处理器: {kind.value}")

    def unregister(self, kind: ActionKind) -> bool:
        return self._handlers.pop(kind, None) is not None

    def get(self, kind: ActionKind) -> Optional[ActionHandler]:
        return self._handlers.get(kind)

    def kinds(self) -> list[ActionKind]:
        return list(self._handlers.keys())

    async def dispatch(self, action: Action) -> Optional[str]:
        """
        执行动作

        Raises:
            UnknownActionKindError: 该类型没有处理器
        """
        handler = self._handlers.get(action.kind)
        if handler is None:
            raise UnknownActionKindError(f"未注册的动作类型: {action.kind.value}")

        result = handler(action)
        if inspect.isawaitable(result):
            result = await result
        return result


class DefaultActionHandlers:
    """
    默认动作处理器

    通过 CoreContext 访问记忆、任务和提供方路由
    """

    ANALYSIS_WINDOW = timedelta(hours=24)

    def __init__(self, context: CoreContext):
        self.context = context

    def register_all(self, registry: ActionHandlerRegistry) -> None:
        registry.register(ActionKind.TASK, self.handle_task)
        registry.register(ActionKind.LEARNING, self.handle_learning)
        registry.register(ActionKind.OPTIMIZATION, self.handle_optimization)
        registry.register(ActionKind.COMMUNICATION, self.handle_communication)
        registry.register(ActionKind.ANALYSIS, self.handle_analysis)

    async def handle_task(self, action: Action) -> str:
        """执行用户任务；没有关联任务时把描述交给提供方处理"""
        tasks = self.context.tasks
        memory = self.context.memory
        task_id = action.metadata.get("task_id")

        if not task_id:
            response = await self.context.router.process_request(action.description, mode="reasoning")
            await memory.capture(
                f"Plan executed: {action.description}\n{response.content}",
                kind=MemoryKind.TASK,
                importance=6,
                tags=["plan"],
                metadata={"action_id": action.id, "provider": response.provider},
            )
            return response.content

        task = tasks.get(task_id)
        if task is None:
            raise ActionHandlerError(f"任务不存在: {task_id}")

        await tasks.start(task_id)
        prompt = f"Complete the following task.\nTitle: {task.title}"
        if task.description:
            prompt += f"\nDetails: {task.description}"
        response = await self.context.router.process_request(prompt, mode="general")

        await tasks.complete(task_id, response.content)
        await memory.capture(
            f"Task completed: {task.title}",
            kind=MemoryKind.TASK,
            importance=6,
            tags=["task", *task.tags],
            metadata={"task_id": task_id, "action_id": action.id, "provider": response.provider},
        )
        return response.content

    async def handle_learning(self, action: Action) -> str:
        """就某个话题向提供方发起研究请求，结果存为学习记忆"""
        topic = action.metadata.get("topic") or action.description
        response = await self.context.router.process_request(
            f"Research and summarize the key points about: {topic}",
            mode="research",
        )
        await self.context.memory.capture(
            f"Learned about {topic}: {response.content}",
            kind=MemoryKind.LEARNING,
            importance=7,
            tags=["learning", str(topic)],
            metadata={"action_id": action.id, "provider": response.provider},
        )
        return response.content

    async def handle_optimization(self, action: Action) -> str:
        """整合与归档记忆"""
        memory = self.context.memory
        stats = await memory.consolidate()
        archived = await memory.maintenance()
        return (
            f"Consolidated {stats['removed']} memories into {stats['merged_groups']}, "
            f"archived {archived}, {memory.count()} active"
        )

    async def handle_communication(self, action: Action) -> str:
        """生成状态摘要并存为系统记忆"""
        memory = self.context.memory
        scheduler_stats = self.context.scheduler.get_stats()
        digest = (
            f"Status digest: {memory.count()} memories, "
            f"{scheduler_stats['planned']} planned / {scheduler_stats['queued']} queued actions, "
            f"{self.context.tasks.in_progress_count()} tasks in progress, "
            f"provider {self.context.router.preferred}"
        )
        await memory.capture(digest, kind=MemoryKind.SYSTEM, importance=4, tags=["status"])
        return digest

    async def handle_analysis(self, action: Action) -> str:
        """分析最近 24 小时的记忆模式"""
        memory = self.context.memory
        since = datetime.now() - self.ANALYSIS_WINDOW
        entries = memory.query(since=since)
        if not entries:
            return "No memories in the last 24 hours"

        kinds = Counter(e.kind.value for e in entries)
        tags = Counter(tag for e in entries for tag in e.tags if not _is_month_tag(tag))
        average = sum(e.importance for e in entries) / len(entries)

        top_tags = ", ".join(f"{tag}({n})" for tag, n in tags.most_common(3)) or "none"
        busiest = kinds.most_common(1)[0][0]
        summary = (
            f"Pattern analysis: {len(entries)} memories in 24h, mostly {busiest}; "
            f"top topics {top_tags}; average importance {average:.1f}"
        )
        await memory.capture(
            summary,
            kind=MemoryKind.SYSTEM,
            importance=6,
            tags=["analysis"],
            metadata={"action_id": action.id, "by_kind": dict(kinds)},
        )
        return summary


def _is_month_tag(tag: str) -> bool:
    return len(tag) == 7 and tag[4] == "-" and tag[:4].isdigit() and tag[5:].isdigit()

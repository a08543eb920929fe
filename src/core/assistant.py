# -*- coding: utf-8 -*-
"""
助理核心

外部通道只需要调用 process_command(text, conversation_id) 并订阅事件
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from ..bus import EventKind
from ..chat.intent import IntentClassifier, IntentResult, IntentType, extract_priority, parse_task_title
from ..memory.types import MemoryKind
from ..providers.base import ProviderDescriptor
from ..schedule.timers import IntervalScheduler
from ..schedule.types import Action, ActionKind
from ..task.types import TaskStatus
from .context import CoreContext

logger = logging.getLogger('core.assistant')

CORE_PROVIDER = "core"
CONTEXT_TURNS = 6
SEARCH_DISPLAY_LIMIT = 5
STALLED_TASK_AFTER = timedelta(hours=1)


@dataclass
class SystemStatus:
    """系统状态快照"""
    uptime_seconds: float
    active_memories: int
    archived_memories: int
    planned_actions: int
    queued_actions: int
    executing_actions: int
    tasks_in_progress: int
    preferred_provider: str
    providers: list[ProviderDescriptor] = field(default_factory=list)
    autonomous: bool = True
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uptime_seconds": round(self.uptime_seconds, 1),
            "active_memories": self.active_memories,
            "archived_memories": self.archived_memories,
            "planned_actions": self.planned_actions,
            "queued_actions": self.queued_actions,
            "executing_actions": self.executing_actions,
            "tasks_in_progress": self.tasks_in_progress,
            "preferred_provider": self.preferred_provider,
            "providers": [d.to_dict() for d in self.providers],
            "autonomous": self.autonomous,
            "timestamp": self.timestamp.isoformat(),
        }


class AssistantCore:
    """
    助理核心

    流程：
    1. 用户输入存为交互记忆
    2. 识别意图：命令由核心处理，其余交给提供方路由
    3. 回复存为交互记忆（in_reply_to 指向用户输入）
    """

    def __init__(self, context: CoreContext):
        self.context = context
        self.config = context.config
        self.intent = IntentClassifier()
        self.timers = IntervalScheduler()
        self.started_at = datetime.now()
        self.autonomous = self.config.autonomous
        self._initialized = False
        self._offline_warned = False
        self._stalled_reported: set[str] = set()

    async def initialize(self) -> None:
        """加载持久化状态并探测提供方"""
        if self._initialized:
            return
        ctx = self.context
        await ctx.memory.load()
        await ctx.tasks.load()
        await ctx.scheduler.initialize()
        await ctx.router.initialize()

        if self.autonomous:
            ctx.reasoning.attach(ctx.bus)

        self._initialized = True
        await ctx.memory.capture(
            f"{self.config.assistant_name} core initialized (provider: {ctx.router.preferred})",
            kind=MemoryKind.SYSTEM,
            importance=6,
            tags=["startup"],
        )
        logger.info(f"{self.config.assistant_name} 核心初始化完成")

    async def start(self) -> None:
        """注册并启动周期定时器"""
        await self.initialize()
        scheduler_config = self.config.scheduler

        self.timers.schedule_interval("execution", scheduler_config.tick_seconds, self.context.scheduler.execution_loop)
        if self.autonomous:
            self.timers.schedule_interval("thinking", self.config.reasoning.think_interval, self.think)
        self.timers.schedule_interval("status", self.config.status_interval, self.refresh_status)
        self.timers.schedule_interval("maintenance", self.config.maintenance_interval, self.maintenance)
        await self.timers.start()

    async def stop(self) -> None:
        await self.timers.stop()
        await self.context.router.close()
        logger.info(f"{self.config.assistant_name} 核心已停止")

    # ------------------------------------------------------------------
    # 周期任务
    # ------------------------------------------------------------------

    async def think(self) -> int:
        """自主思考一次，返回产生的想法数"""
        thoughts = await self.context.reasoning.think()
        return len(thoughts)

    async def set_autonomous(self, enabled: bool) -> bool:
        """
        运行时切换自主模式

        开启时订阅记忆写入并（定时器运行中）加入思考任务；关闭时全部撤下

        Returns:
            模式是否发生变化
        """
        if enabled == self.autonomous:
            return False
        ctx = self.context
        self.autonomous = enabled

        if enabled:
            ctx.reasoning.attach(ctx.bus)
            self.timers.schedule_interval("thinking", self.config.reasoning.think_interval, self.think)
            content = "Autonomous mode enabled. I will now think and act independently."
            tags = ["autonomous", "mode-change"]
        else:
            ctx.reasoning.detach(ctx.bus)
            self.timers.unschedule("thinking")
            content = "Autonomous mode disabled. Switching to manual operation."
            tags = ["manual", "mode-change"]

        await ctx.memory.capture(content, kind=MemoryKind.SYSTEM, importance=8, tags=tags)
        logger.info(f"自主模式: {'开启' if enabled else '关闭'}")
        return True

    async def health_check(self, now: Optional[datetime] = None) -> list[str]:
        """
        健康检查

        - 没有可用的联网提供方：记录重要度 9 的系统警告（每次离线只记一次）
        - 进行中超过一小时没有更新的任务：记为停滞（每个任务只报一次）

        Returns:
            本次记录的警告内容
        """
        now = now or datetime.now()
        ctx = self.context
        warnings = []

        online = [
            d for d in ctx.router.descriptors()
            if d.name != ctx.router.fallback.name and d.available
        ]
        if online:
            self._offline_warned = False
        elif not self._offline_warned:
            self._offline_warned = True
            warnings.append("Warning: No AI providers available. Operating in basic mode.")
            await ctx.memory.capture(
                warnings[-1],
                kind=MemoryKind.SYSTEM,
                importance=9,
                tags=["warning", "ai-providers"],
            )

        stalled = [
            t for t in ctx.tasks.list_tasks(TaskStatus.IN_PROGRESS)
            if now - t.updated_at > STALLED_TASK_AFTER and t.id not in self._stalled_reported
        ]
        if stalled:
            self._stalled_reported.update(t.id for t in stalled)
            warnings.append(f"Found {len(stalled)} stalled tasks: {', '.join(t.title for t in stalled)}")
            await ctx.memory.capture(
                warnings[-1],
                kind=MemoryKind.SYSTEM,
                importance=7,
                tags=["tasks", "maintenance", "stalled"],
                metadata={"task_ids": [t.id for t in stalled]},
            )

        for warning in warnings:
            logger.warning(warning)
        return warnings

    async def refresh_status(self) -> SystemStatus:
        """重新探测提供方（限频），做健康检查并发布状态"""
        await self.context.router.maybe_reprobe()
        await self.health_check()
        status = self.get_status()
        await self.context.bus.publish(EventKind.STATUS_UPDATED, status)
        return status

    async def maintenance(self) -> int:
        return await self.context.memory.maintenance()

    def get_status(self) -> SystemStatus:
        ctx = self.context
        scheduler_stats = ctx.scheduler.get_stats()
        return SystemStatus(
            uptime_seconds=(datetime.now() - self.started_at).total_seconds(),
            active_memories=ctx.memory.count(),
            archived_memories=ctx.memory.archived_count(),
            planned_actions=scheduler_stats["planned"],
            queued_actions=scheduler_stats["queued"],
            executing_actions=scheduler_stats["executing"],
            tasks_in_progress=ctx.tasks.in_progress_count(),
            preferred_provider=ctx.router.preferred,
            providers=ctx.router.descriptors(),
            autonomous=self.autonomous,
        )

    # ------------------------------------------------------------------
    # 入口
    # ------------------------------------------------------------------

    async def process_command(self, text: str, conversation_id: str = "main") -> str:
        """
        处理一条用户输入

        永不抛异常；出错时记录系统记忆并返回道歉信息
        """
        text = (text or "").strip()
        if not text:
            return "I didn't catch that. Could you say it again?"

        try:
            return await self._process(text, conversation_id)
        except Exception as e:
            logger.exception(f"处理命令失败: {e}")
            try:
                await self.context.memory.capture(
                    f"Error processing command: {text}. Error: {e}",
                    kind=MemoryKind.SYSTEM,
                    importance=8,
                    tags=["error", "processing"],
                    metadata={"conversation_id": conversation_id},
                )
            except Exception as record_error:
                logger.warning(f"记录错误记忆失败: {record_error}")
            return "Sorry, I ran into a problem while handling that. Please try again."

    async def _process(self, text: str, conversation_id: str) -> str:
        memory = self.context.memory
        history = self._conversation_context(conversation_id)

        user_id = await memory.capture(
            f"User: {text}",
            kind=MemoryKind.INTERACTION,
            tags=["conversation"],
            metadata={"conversation_id": conversation_id, "role": "user"},
        )

        intent = self.intent.analyze(text)
        if intent.intent_type.is_command:
            reply = await self._handle_command(intent, conversation_id, user_id)
            provider = CORE_PROVIDER
        else:
            response = await self.context.router.process_request(text, mode=intent.intent_type.mode, context=history)
            reply, provider = response.content, response.provider

        await memory.capture(
            f"{self.config.assistant_name}: {reply}",
            kind=MemoryKind.INTERACTION,
            tags=["conversation", "response"],
            metadata={
                "conversation_id": conversation_id,
                "role": "assistant",
                "in_reply_to": user_id,
                "provider": provider,
                "intent": intent.intent_type.value,
            },
        )
        return reply

    def _conversation_context(self, conversation_id: str) -> Optional[str]:
        """本会话最近几轮对话"""
        turns = [
            e for e in self.context.memory.query(kind=MemoryKind.INTERACTION)
            if e.metadata.get("conversation_id") == conversation_id
        ][-CONTEXT_TURNS:]
        if not turns:
            return None
        return "\n".join(e.content for e in turns)

    async def _handle_command(self, intent: IntentResult, conversation_id: str, user_id: str) -> str:
        handlers = {
            IntentType.TASK_CREATE: self._create_task,
            IntentType.TASK_LIST: self._list_tasks,
            IntentType.ACTION_CANCEL: self._cancel_action,
            IntentType.STATUS: self._status_reply,
            IntentType.MEMORY_SAVE: self._remember,
            IntentType.MEMORY_SEARCH: self._recall,
        }
        return await handlers[intent.intent_type](intent, conversation_id, user_id)

    async def _create_task(self, intent: IntentResult, conversation_id: str, user_id: str) -> str:
        argument, priority = extract_priority(intent.argument)
        title, description = parse_task_title(argument)
        if not title:
            return "Please give the task a title, for example: create task Write the weekly report"

        ctx = self.context
        task = await ctx.tasks.create(
            title=title,
            description=description,
            priority=priority,
            source_conversation=conversation_id,
        )
        action_id = await ctx.scheduler.schedule(Action(
            kind=ActionKind.TASK,
            description=f"Task: {title}",
            priority=task.priority,
            metadata={"task_id": task.id},
        ))
        await ctx.tasks.link_action(task.id, action_id)
        return (
            f"I've created a new task: \"{title}\" (id {task.id}, priority {task.priority.value}). "
            f"I'll work on it autonomously as action {action_id}."
        )

    async def _list_tasks(self, intent: IntentResult, conversation_id: str, user_id: str) -> str:
        return self.context.tasks.get_summary()

    async def _cancel_action(self, intent: IntentResult, conversation_id: str, user_id: str) -> str:
        ctx = self.context
        action = ctx.scheduler.get(intent.argument)
        if not await ctx.scheduler.cancel(intent.argument):
            if action is None:
                return f"I couldn't find action {intent.argument}."
            return f"Action {intent.argument} is already {action.status.value} and can't be cancelled."

        task_id = action.metadata.get("task_id") if action else None
        if task_id:
            await ctx.tasks.cancel(task_id)
        return f"Cancelled action {intent.argument}."

    async def _status_reply(self, intent: IntentResult, conversation_id: str, user_id: str) -> str:
        status = self.get_status()
        providers = ", ".join(
            f"{d.name}{'' if d.available else ' (down)'}" for d in status.providers
        )
        return "\n".join([
            f"{self.config.assistant_name} status",
            f"Uptime: {status.uptime_seconds / 60:.1f} min",
            f"Memories: {status.active_memories} active, {status.archived_memories} archived",
            f"Actions: {status.planned_actions} planned, {status.queued_actions} queued, "
            f"{status.executing_actions} executing",
            f"Tasks in progress: {status.tasks_in_progress}",
            f"Provider: {status.preferred_provider} [{providers}]",
        ])

    async def _remember(self, intent: IntentResult, conversation_id: str, user_id: str) -> str:
        await self.context.memory.capture(
            intent.argument,
            kind=MemoryKind.LEARNING,
            importance=7,
            tags=["user-fact", "important"],
            metadata={"conversation_id": conversation_id, "source": user_id},
        )
        return "Got it. I'll remember that."

    async def _recall(self, intent: IntentResult, conversation_id: str, user_id: str) -> str:
        query = intent.argument or intent.content
        # 得分只来自重要度的条目没有真正命中查询
        results = [
            r for r in self.context.memory.search(query)
            if r.score > r.entry.importance
            and r.entry.id != user_id and r.entry.metadata.get("role") != "user"
        ][:SEARCH_DISPLAY_LIMIT]
        if not results:
            return f"I couldn't find anything about \"{query}\"."

        lines = [f"Here's what I remember about \"{query}\":"]
        for result in results:
            lines.append(f"- [{result.entry.kind.value}] {result.entry.content}")
        return "\n".join(lines)

# -*- coding: utf-8 -*-
"""
动作调度器

优先级 + 依赖感知的执行队列，单并发执行循环

状态机：
    planned → executing → completed
    planned → executing → failed
    planned → cancelled
"""
import logging
from datetime import datetime
from typing import Any, Optional

from ..bus import EventBus, EventKind
from ..config import SchedulerConfig
from ..memory.memory_store import MemoryStore
from ..memory.types import MemoryKind
from ..storage import PersistencePort
from .handlers import ActionHandlerRegistry
from .types import Action, ActionStatus

logger = logging.getLogger('schedule.scheduler')

PLANNED_COLLECTION = "actions_planned"
QUEUE_COLLECTION = "actions_queue"
HISTORY_COLLECTION = "actions_history"

INTERRUPTED_ERROR = "interrupted"


class ActionScheduler:
    """
    动作调度器

    - 唯一持有 planned 列表和执行队列，对外只返回副本
    - 执行互斥用普通标志位，检查和设置之间没有 await
    - 已结束的动作保留在有限长度的历史中，用于依赖解析
    """

    def __init__(
        self,
        persistence: PersistencePort,
        memory: Optional[MemoryStore] = None,
        bus: Optional[EventBus] = None,
        config: Optional[SchedulerConfig] = None,
        registry: Optional[ActionHandlerRegistry] = None
    ):
        self.persistence = persistence
        self.memory = memory
        self.bus = bus
        self.config = config or SchedulerConfig()
        self.registry = registry or ActionHandlerRegistry()

        self._planned: list[Action] = []
        self._queue: list[Action] = []
        self._history: list[Action] = []
        self._executing: Optional[Action] = None
        self._is_executing = False

        # 依赖无法满足的动作从何时开始被阻塞
        self._blocked_since: dict[str, datetime] = {}

        self.stats = {
            "scheduled": 0,
            "completed": 0,
            "failed": 0,
            "cancelled": 0,
        }

    # ------------------------------------------------------------------
    # 加载与持久化
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        从持久化端口恢复状态

        上次进程退出时仍在执行的动作标记为失败（interrupted）
        """
        planned = self._parse_all(await self.persistence.load(PLANNED_COLLECTION))
        queue = self._parse_all(await self.persistence.load(QUEUE_COLLECTION))
        self._history = self._parse_all(await self.persistence.load(HISTORY_COLLECTION))
        self._planned = []
        self._queue = []

        interrupted = 0
        for action, target in [(a, self._planned) for a in planned] + [(a, self._queue) for a in queue]:
            if action.status == ActionStatus.EXECUTING:
                action.status = ActionStatus.FAILED
                action.error = INTERRUPTED_ERROR
                action.finished_at = datetime.now()
                interrupted += 1
            if action.status.is_terminal:
                self._history.append(action)
            else:
                target.append(action)

        self._trim_history()
        if interrupted:
            logger.warning(f"{interrupted} 个动作在上次运行中被中断，已标记为失败")

        await self._persist()
        await self.prioritize()
        logger.info(
            f"调度器已加载: planned={len(self._planned)}, queue={len(self._queue)}, "
            f"history={len(self._history)}"
        )

    def _parse_all(self, records: list[dict[str, Any]]) -> list[Action]:
        actions = []
        for record in records:
            try:
                actions.append(Action.from_dict(record))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"跳过无法解析的动作记录: {e}")
        return actions

    async def _persist(self) -> None:
        await self.persistence.save(PLANNED_COLLECTION, [a.to_dict() for a in self._planned])
        await self.persistence.save(QUEUE_COLLECTION, [a.to_dict() for a in self._queue])
        await self.persistence.save(HISTORY_COLLECTION, [a.to_dict() for a in self._history])

    async def _publish(self, kind: EventKind, action: Action) -> None:
        if self.bus:
            await self.bus.publish(kind, action.copy())

    async def _record(self, content: str, importance: int, action: Action, **metadata) -> None:
        """写入动作生命周期记忆（失败只记录日志）"""
        if self.memory is None:
            return
        try:
            await self.memory.capture(
                content,
                kind=MemoryKind.SYSTEM,
                importance=importance,
                tags=["action", action.kind.value],
                metadata={"action_id": action.id, "status": action.status.value, **metadata},
            )
        except Exception as e:
            logger.warning(f"记录动作记忆失败: {e}")

    def _trim_history(self) -> None:
        overflow = len(self._history) - self.config.history_limit
        if overflow > 0:
            del self._history[:overflow]

    # ------------------------------------------------------------------
    # 调度
    # ------------------------------------------------------------------

    async def schedule(self, action: Action) -> str:
        """
        计划一个动作

        Args:
            action: 动作（调度器保存副本）

        Returns:
            动作ID
        """
        action = action.copy()
        action.status = ActionStatus.PLANNED
        self._planned.append(action)
        self.stats["scheduled"] += 1
        await self._persist()

        logger.info(f"计划动作: {action.id} [{action.kind.value}/{action.priority.value}] {action.description}")
        await self._record(f"Scheduled action: {action.description}", 6, action)
        await self._publish(EventKind.ACTION_SCHEDULED, action)

        await self.prioritize()
        return action.id

    async def prioritize(self, now: Optional[datetime] = None) -> int:
        """
        排序并把就绪的动作移入执行队列

        排序：优先级降序，同优先级按 created_at 升序（稳定排序）
        就绪：依赖全部 completed，且 scheduled_for 不在未来

        Returns:
            本次移入队列的数量
        """
        now = now or datetime.now()
        self._planned.sort(key=lambda a: (-a.priority.rank, a.created_at))

        ready: list[Action] = []
        waiting: list[Action] = []
        for action in self._planned:
            if self._is_ready(action, now):
                ready.append(action)
            else:
                waiting.append(action)

        self._planned = waiting
        self._queue.extend(ready)
        for action in ready:
            self._blocked_since.pop(action.id, None)

        expired = self._expire_blocked(now)

        if ready or expired:
            await self._persist()
        for action in expired:
            await self._record(f"Action failed: {action.description} - {action.error}", 8, action, error=action.error)
            await self._publish(EventKind.ACTION_UPDATED, action)

        if ready:
            logger.debug(f"{len(ready)} 个动作进入执行队列")
        return len(ready)

    def _is_ready(self, action: Action, now: datetime) -> bool:
        if action.scheduled_for and action.scheduled_for > now:
            return False
        return all(self._dependency_status(dep) == ActionStatus.COMPLETED for dep in action.dependencies)

    def _dependency_status(self, action_id: str) -> Optional[ActionStatus]:
        """依赖的当前状态；找不到返回 None"""
        action = self._find(action_id)
        return action.status if action else None

    def _expire_blocked(self, now: datetime) -> list[Action]:
        """
        依赖超时处理

        未配置 dependency_timeout_seconds 时，依赖缺失/取消/失败的动作永久停留在 planned
        """
        timeout = self.config.dependency_timeout_seconds
        if timeout is None:
            return []

        expired: list[Action] = []
        for action in list(self._planned):
            unresolvable = [
                dep for dep in action.dependencies
                if self._dependency_status(dep) in (None, ActionStatus.CANCELLED, ActionStatus.FAILED)
            ]
            if not unresolvable:
                self._blocked_since.pop(action.id, None)
                continue

            since = self._blocked_since.setdefault(action.id, now)
            if (now - since).total_seconds() < timeout:
                continue

            self._planned.remove(action)
            self._blocked_since.pop(action.id, None)
            action.status = ActionStatus.FAILED
            action.error = f"dependency unresolved: {', '.join(unresolvable)}"
            action.finished_at = now
            self._history.append(action)
            self.stats["failed"] += 1
            expired.append(action)
            logger.warning(f"动作 {action.id} 依赖超时，标记为失败: {action.error}")

        self._trim_history()
        return expired

    # ------------------------------------------------------------------
    # 执行
    # ------------------------------------------------------------------

    async def execution_loop(self) -> Optional[Action]:
        """
        执行一次（周期调用）

        正在执行或队列为空时直接返回 None；否则执行队首动作，返回其最终状态的副本
        """
        if self._is_executing or not self._queue:
            return None
        self._is_executing = True

        action = self._queue.pop(0)
        try:
            action.status = ActionStatus.EXECUTING
            action.started_at = datetime.now()
            self._executing = action
            await self._persist()
            await self._record(f"Executing action: {action.description}", 7, action)
            await self._publish(EventKind.ACTION_UPDATED, action)

            logger.info(f"执行动作: {action.id} [{action.kind.value}] {action.description}")
            action.result = await self.registry.dispatch(action)

            action.status = ActionStatus.COMPLETED
            self.stats["completed"] += 1
            await self._record(f"Completed action: {action.description}", 6, action)
            logger.info(f"动作完成: {action.id}")
        except Exception as e:
            action.status = ActionStatus.FAILED
            action.error = str(e) or e.__class__.__name__
            self.stats["failed"] += 1
            logger.error(f"动作失败: {action.id} - {action.error}")
            await self._record(f"Action failed: {action.description} - {action.error}", 8, action, error=action.error)
        finally:
            action.finished_at = datetime.now()
            self._executing = None
            self._history.append(action)
            self._trim_history()
            self._is_executing = False
            await self._persist()
            await self._publish(EventKind.ACTION_UPDATED, action)
            await self.prioritize()

        return action.copy()

    async def cancel(self, action_id: str) -> bool:
        """
        取消动作

        只有仍处于 planned 状态的动作可以取消

        Returns:
            是否取消成功
        """
        for collection in (self._planned, self._queue):
            for action in collection:
                if action.id == action_id and action.status == ActionStatus.PLANNED:
                    collection.remove(action)
                    action.status = ActionStatus.CANCELLED
                    action.finished_at = datetime.now()
                    self._history.append(action)
                    self._trim_history()
                    self._blocked_since.pop(action_id, None)
                    self.stats["cancelled"] += 1

                    await self._persist()
                    logger.info(f"取消动作: {action_id}")
                    await self._publish(EventKind.ACTION_UPDATED, action)
                    return True

        logger.debug(f"无法取消动作 {action_id}（不存在或已开始）")
        return False

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def _find(self, action_id: str) -> Optional[Action]:
        if self._executing and self._executing.id == action_id:
            return self._executing
        for collection in (self._planned, self._queue, self._history):
            for action in collection:
                if action.id == action_id:
                    return action
        return None

    def get(self, action_id: str) -> Optional[Action]:
        action = self._find(action_id)
        return action.copy() if action else None

    def planned(self) -> list[Action]:
        return [a.copy() for a in self._planned]

    def queue(self) -> list[Action]:
        return [a.copy() for a in self._queue]

    def history(self, limit: Optional[int] = None) -> list[Action]:
        items = self._history if limit is None else self._history[-limit:]
        return [a.copy() for a in items]

    @property
    def executing(self) -> Optional[Action]:
        return self._executing.copy() if self._executing else None

    @property
    def is_executing(self) -> bool:
        return self._is_executing

    def get_stats(self) -> dict[str, Any]:
        """获取调度器统计"""
        return {
            **self.stats,
            "planned": len(self._planned),
            "queued": len(self._queue),
            "executing": 1 if self._executing else 0,
            "history": len(self._history),
            "handlers": [kind.value for kind in self.registry.kinds()],
        }

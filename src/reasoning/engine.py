# -*- coding: utf-8 -*-
"""
自主思考引擎

周期触发 + 记忆写入触发，对最近窗口运行全部检测器：
1. 观察系统状态
2. 检测器各自产生至多一个 Thought
3. Thought 存为 thought 记忆
4. 需要行动的 Thought 转为一个 Action 交给调度器
"""
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Optional

from ..bus import Event, EventBus, EventKind
from ..config import ReasoningConfig
from ..memory.memory_store import MemoryStore
from ..memory.types import MemoryEntry, MemoryKind
from ..providers.router import ProviderRouter
from ..schedule.scheduler import ActionScheduler
from ..schedule.types import Action, ActionPriority
from .detectors import Detector, default_detectors
from .types import SystemState, Thought

logger = logging.getLogger('reasoning.engine')

# 这些记忆由系统自己写入，不触发思考
SELF_GENERATED_KINDS = (MemoryKind.THOUGHT, MemoryKind.SYSTEM)


class ReasoningSource:
    """
    思考来源

    - 每个检测器有冷却时间，避免调度器自身的记忆写入形成反馈循环
    - 思考过程不可重入
    """

    def __init__(
        self,
        memory: MemoryStore,
        scheduler: ActionScheduler,
        router: Optional[ProviderRouter] = None,
        bus: Optional[EventBus] = None,
        config: Optional[ReasoningConfig] = None,
        detectors: Optional[list[Detector]] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.memory = memory
        self.scheduler = scheduler
        self.router = router
        self.bus = bus
        self.config = config or ReasoningConfig()
        self.detectors = detectors if detectors is not None else default_detectors(self.config)
        self._clock = clock

        self._thinking = False
        self.attached = False
        self._last_fired: dict[str, datetime] = {}
        self.stats = {"ticks": 0, "thoughts": 0, "actions": 0, "skipped_reentry": 0}

    def observe(self, now: Optional[datetime] = None) -> SystemState:
        """采样最近窗口和系统状态"""
        now = now or self._clock()
        since = now - timedelta(seconds=self.config.window_seconds)
        window = [e for e in self.memory.recent(self.config.window_size) if e.timestamp >= since]
        window.reverse()

        state = SystemState(
            now=now,
            window=window,
            executing_actions=1 if self.scheduler.executing else 0,
        )
        if self.router:
            descriptors = self.router.descriptors()
            if descriptors:
                state.top_provider = descriptors[0].name
                state.top_provider_available = descriptors[0].available
            state.preferred_provider = self.router.preferred
        return state

    async def think(self, now: Optional[datetime] = None) -> list[Thought]:
        """
        运行一次思考

        Returns:
            本次产生的 Thought（正在思考时返回空列表）
        """
        if self._thinking:
            self.stats["skipped_reentry"] += 1
            return []
        self._thinking = True

        try:
            state = self.observe(now)
            self.stats["ticks"] += 1
            thoughts = []
            for detector in self.detectors:
                if self._cooling_down(detector.name, state.now):
                    continue
                try:
                    thought = detector.detect(state)
                except Exception as e:
                    logger.exception(f"检测器 {detector.name} 出错: {e}")
                    continue
                if thought is None:
                    continue

                thought.detector = detector.name
                thought.timestamp = state.now
                self._last_fired[detector.name] = state.now
                await self._commit(thought)
                thoughts.append(thought)

            if thoughts:
                logger.info(f"产生 {len(thoughts)} 个想法: {', '.join(t.detector for t in thoughts)}")
            return thoughts
        finally:
            self._thinking = False

    def _cooling_down(self, name: str, now: datetime) -> bool:
        last = self._last_fired.get(name)
        if last is None:
            return False
        return (now - last).total_seconds() < self.config.detector_cooldown_seconds

    async def _commit(self, thought: Thought) -> None:
        """存储 Thought，需要行动时转为 Action"""
        memory_id = await self.memory.capture(
            thought.content,
            kind=MemoryKind.THOUGHT,
            importance=thought.importance,
            tags=thought.tags,
            metadata={
                "thought_type": thought.thought_type.value,
                "detector": thought.detector,
                "action_required": thought.action_required,
                "reasoning": thought.reasoning,
            },
        )
        self.stats["thoughts"] += 1
        if self.bus:
            await self.bus.publish(EventKind.THOUGHT_GENERATED, thought)

        if not thought.action_required:
            return

        action = Action(
            kind=thought.thought_type.action_kind,
            description=thought.action_description or thought.content,
            priority=ActionPriority.from_importance(thought.importance),
            metadata={
                "thought_id": memory_id,
                "thought_type": thought.thought_type.value,
                "detector": thought.detector,
                **thought.metadata,
            },
        )
        await self.scheduler.schedule(action)
        self.stats["actions"] += 1

    async def on_memory_added(self, event: Event) -> None:
        """记忆写入触发（忽略系统自己写入的记忆）"""
        entry = event.payload
        if not isinstance(entry, MemoryEntry) or entry.kind in SELF_GENERATED_KINDS:
            return
        await self.think()

    def attach(self, bus: EventBus) -> None:
        """订阅记忆写入事件"""
        if self.attached:
            return
        self.bus = self.bus or bus
        bus.subscribe(EventKind.MEMORY_ADDED, self.on_memory_added)
        self.attached = True

    def detach(self, bus: EventBus) -> None:
        """取消订阅记忆写入事件"""
        bus.unsubscribe(EventKind.MEMORY_ADDED, self.on_memory_added)
        self.attached = False

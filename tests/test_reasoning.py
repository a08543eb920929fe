# -*- coding: utf-8 -*-
"""
自主思考测试
"""
from datetime import datetime, timedelta

import pytest

from src.bus import EventBus, EventKind
from src.config import ReasoningConfig
from src.memory import MemoryEntry, MemoryKind, MemoryStore
from src.reasoning import (
    HighInteractionDetector,
    IdleDetector,
    LearningOpportunityDetector,
    ProviderDegradedDetector,
    ReasoningSource,
    SystemState,
    TemporalDetector,
    ThoughtType,
)
from src.reasoning.detectors import is_user_question, topic_words
from src.schedule import ActionHandlerRegistry, ActionKind, ActionPriority, ActionScheduler
from src.storage import InMemoryPersistence

NOW = datetime(2024, 5, 6, 10, 30)


def question(content: str, minutes_ago: int = 5) -> MemoryEntry:
    return MemoryEntry(
        content=content,
        kind=MemoryKind.INTERACTION,
        timestamp=NOW - timedelta(minutes=minutes_ago),
        metadata={"role": "user"},
    )


def reply(to: MemoryEntry, provider: str) -> MemoryEntry:
    return MemoryEntry(
        content="NOVA: here is an answer",
        kind=MemoryKind.INTERACTION,
        timestamp=to.timestamp + timedelta(seconds=1),
        metadata={"role": "assistant", "in_reply_to": to.id, "provider": provider},
    )


DOCKER_QUESTIONS = [
    "User: how do I install docker?",
    "User: why does docker crash on startup?",
    "User: what is docker compose?",
]


class TestDetectors:
    """测试各检测器"""

    def test_idle(self):
        """测试空闲检测"""
        detector = IdleDetector()
        thought = detector.detect(SystemState(now=NOW))

        assert thought.thought_type == ThoughtType.OBSERVATION
        assert thought.importance == 4
        assert not thought.action_required
        assert detector.detect(SystemState(now=NOW, executing_actions=1)) is None

    def test_high_interaction(self):
        """测试高交互检测"""
        detector = HighInteractionDetector(ReasoningConfig(interaction_threshold=5))
        entries = [
            MemoryEntry(content=f"User: message {i}", kind=MemoryKind.INTERACTION,
                        tags=["docker", "2024-05"], timestamp=NOW - timedelta(minutes=i))
            for i in range(6)
        ]

        thought = detector.detect(SystemState(now=NOW, window=entries))
        assert thought.thought_type == ThoughtType.INSIGHT
        assert thought.action_required
        assert thought.metadata["topic"] == "docker"

        assert detector.detect(SystemState(now=NOW, window=entries[:5])) is None

    def test_high_interaction_ignores_old(self):
        """测试一小时之前的交互不计入"""
        detector = HighInteractionDetector(ReasoningConfig(interaction_threshold=2))
        entries = [
            MemoryEntry(content="User: hi", kind=MemoryKind.INTERACTION, timestamp=NOW - timedelta(hours=2))
            for _ in range(5)
        ]
        assert detector.detect(SystemState(now=NOW, window=entries)) is None

    def test_learning_opportunity(self):
        """测试重复未解答问题产生学习计划"""
        detector = LearningOpportunityDetector(ReasoningConfig(question_repeat_threshold=3))
        window = [question(text) for text in DOCKER_QUESTIONS]

        thought = detector.detect(SystemState(now=NOW, window=window))

        assert thought.thought_type == ThoughtType.PLAN
        assert thought.importance == 8
        assert thought.action_required
        assert thought.metadata["topic"] == "docker"

    def test_answered_questions_do_not_count(self):
        """测试已被真实提供方回答的问题不计入"""
        detector = LearningOpportunityDetector(ReasoningConfig(question_repeat_threshold=3))
        window = [question(text) for text in DOCKER_QUESTIONS]
        answered = window + [reply(window[0], "ollama")]

        assert detector.detect(SystemState(now=NOW, window=answered)) is None

    def test_fallback_answers_still_count(self):
        """测试兜底回答视为未解答"""
        detector = LearningOpportunityDetector(ReasoningConfig(question_repeat_threshold=3))
        window = [question(text) for text in DOCKER_QUESTIONS]
        window += [reply(q, "fallback") for q in window]

        assert detector.detect(SystemState(now=NOW, window=window)) is not None

    def test_no_shared_topic(self):
        """测试没有重复话题词时不触发"""
        detector = LearningOpportunityDetector(ReasoningConfig(question_repeat_threshold=3))
        window = [
            question("User: how do I bake bread?"),
            question("User: why is the sky blue?"),
            question("User: what time is sunset?"),
        ]
        assert detector.detect(SystemState(now=NOW, window=window)) is None

    def test_is_user_question(self):
        """测试问题识别"""
        assert is_user_question(question("User: can you check this"))
        assert is_user_question(question("User: 这是什么？"))
        assert not is_user_question(question("User: tell me a joke"))
        assistant = question("NOVA: how about this?")
        assistant.metadata["role"] = "assistant"
        assert not is_user_question(assistant)

    def test_topic_words(self):
        """测试话题词提取"""
        assert topic_words("User: how does docker networking work?") == {"docker", "networking", "work"}

    def test_provider_degraded(self):
        """测试首选提供方不可用"""
        detector = ProviderDegradedDetector()
        state = SystemState(now=NOW, top_provider="ollama", top_provider_available=False,
                            preferred_provider="fallback")

        thought = detector.detect(state)

        assert thought.thought_type == ThoughtType.REFLECTION
        assert "ollama" in thought.content
        assert detector.detect(SystemState(now=NOW, top_provider="ollama")) is None

    def test_temporal(self):
        """测试活跃时段（含边界）"""
        detector = TemporalDetector(ReasoningConfig(active_hours=(9, 17)))

        assert detector.detect(SystemState(now=NOW)) is not None
        assert detector.detect(SystemState(now=NOW.replace(hour=17, minute=45))) is not None
        assert detector.detect(SystemState(now=NOW.replace(hour=20))) is None

    def test_thought_type_mapping(self):
        """测试思考类型到动作类型的映射"""
        assert ThoughtType.OBSERVATION.action_kind == ActionKind.ANALYSIS
        assert ThoughtType.INSIGHT.action_kind == ActionKind.LEARNING
        assert ThoughtType.PLAN.action_kind == ActionKind.TASK
        assert ThoughtType.REFLECTION.action_kind == ActionKind.OPTIMIZATION


class TestReasoningSource:
    """测试思考引擎"""

    @pytest.fixture
    def persistence(self):
        return InMemoryPersistence()

    @pytest.fixture
    def memory(self, persistence):
        return MemoryStore(persistence)

    @pytest.fixture
    def scheduler(self, persistence, memory):
        return ActionScheduler(persistence, memory=memory, registry=ActionHandlerRegistry())

    @pytest.fixture
    def engine(self, memory, scheduler):
        config = ReasoningConfig(question_repeat_threshold=3, detector_cooldown_seconds=300)
        return ReasoningSource(memory, scheduler, config=config,
                               detectors=[LearningOpportunityDetector(config)])

    async def _ask_docker(self, memory):
        for text in DOCKER_QUESTIONS:
            await memory.capture(text, kind=MemoryKind.INTERACTION, metadata={"role": "user"})

    @pytest.mark.asyncio
    async def test_thought_becomes_action(self, engine, memory, scheduler):
        """测试需要行动的想法转为动作"""
        await self._ask_docker(memory)

        thoughts = await engine.think(datetime.now())

        assert len(thoughts) == 1
        assert thoughts[0].detector == "learning_opportunity"

        stored = memory.query(kind=MemoryKind.THOUGHT)
        assert len(stored) == 1
        assert stored[0].metadata["thought_type"] == "plan"

        actions = scheduler.queue() + scheduler.planned()
        assert len(actions) == 1
        assert actions[0].kind == ActionKind.TASK
        assert actions[0].priority == ActionPriority.HIGH
        assert actions[0].metadata["topic"] == "docker"
        assert actions[0].metadata["thought_id"] == stored[0].id
        assert engine.stats["actions"] == 1

    @pytest.mark.asyncio
    async def test_cooldown(self, engine, memory):
        """测试检测器冷却"""
        await self._ask_docker(memory)
        now = datetime.now()

        assert len(await engine.think(now)) == 1
        assert await engine.think(now + timedelta(seconds=10)) == []
        assert len(await engine.think(now + timedelta(seconds=301))) == 1

    @pytest.mark.asyncio
    async def test_not_reentrant(self, engine):
        """测试思考不可重入"""
        engine._thinking = True

        assert await engine.think() == []
        assert engine.stats["skipped_reentry"] == 1
        assert engine.stats["ticks"] == 0

    @pytest.mark.asyncio
    async def test_detector_error_isolated(self, memory, scheduler):
        """测试单个检测器异常不影响其他检测器"""

        class BrokenDetector(IdleDetector):
            name = "broken"

            def detect(self, state):
                raise RuntimeError("bad detector")

        engine = ReasoningSource(memory, scheduler, detectors=[BrokenDetector(), IdleDetector()])
        thoughts = await engine.think(datetime.now())

        assert [t.detector for t in thoughts] == ["idle"]

    @pytest.mark.asyncio
    async def test_observe_window(self, memory, scheduler):
        """测试观察窗口按时间过滤并按旧到新排列"""
        now = datetime.now()
        await memory.add(MemoryEntry(content="ancient", timestamp=now - timedelta(hours=5)))
        await memory.add(MemoryEntry(content="older", timestamp=now - timedelta(minutes=20)))
        await memory.add(MemoryEntry(content="newer", timestamp=now - timedelta(minutes=1)))

        engine = ReasoningSource(memory, scheduler, config=ReasoningConfig(window_seconds=3600))
        state = engine.observe(now)

        assert [e.content for e in state.window] == ["older", "newer"]
        assert state.executing_actions == 0

    @pytest.mark.asyncio
    async def test_memory_trigger_ignores_self_generated(self, persistence, scheduler):
        """测试系统和想法记忆不触发思考"""
        bus = EventBus()
        memory = MemoryStore(persistence, bus)
        engine = ReasoningSource(memory, scheduler, detectors=[])
        engine.attach(bus)

        await memory.capture("system note", kind=MemoryKind.SYSTEM)
        await memory.capture("a thought", kind=MemoryKind.THOUGHT)
        assert engine.stats["ticks"] == 0

        await memory.capture("User: hello", kind=MemoryKind.INTERACTION)
        assert engine.stats["ticks"] == 1

        engine.detach(bus)
        await memory.capture("User: anyone there?", kind=MemoryKind.INTERACTION)
        assert engine.stats["ticks"] == 1
        assert not engine.attached

    @pytest.mark.asyncio
    async def test_attach_is_idempotent(self, persistence, scheduler):
        """测试重复订阅只触发一次思考"""
        bus = EventBus()
        memory = MemoryStore(persistence, bus)
        engine = ReasoningSource(memory, scheduler, detectors=[])
        engine.attach(bus)
        engine.attach(bus)

        await memory.capture("User: hello", kind=MemoryKind.INTERACTION)

        assert bus.handler_count(EventKind.MEMORY_ADDED) == 1
        assert engine.stats["ticks"] == 1

    @pytest.mark.asyncio
    async def test_thought_event(self, memory, scheduler):
        """测试发布想法事件"""
        bus = EventBus()
        events = []
        bus.subscribe(EventKind.THOUGHT_GENERATED, events.append)
        engine = ReasoningSource(memory, scheduler, bus=bus, detectors=[IdleDetector()])

        await engine.think(datetime.now())

        assert len(events) == 1
        assert events[0].payload.thought_type == ThoughtType.OBSERVATION

# -*- coding: utf-8 -*-
"""
动作调度器测试
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from src.bus import EventBus, EventKind
from src.config import SchedulerConfig
from src.core.exceptions import UnknownActionKindError
from src.memory import MemoryKind, MemoryStore
from src.schedule import Action, ActionHandlerRegistry, ActionKind, ActionPriority, ActionScheduler, ActionStatus
from src.schedule.scheduler import INTERRUPTED_ERROR, PLANNED_COLLECTION, QUEUE_COLLECTION
from src.storage import InMemoryPersistence


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def registry():
    registry = ActionHandlerRegistry()
    for kind in ActionKind:
        registry.register(kind, lambda action: f"done: {action.description}")
    return registry


@pytest.fixture
def memory(persistence):
    return MemoryStore(persistence)


@pytest.fixture
def scheduler(persistence, memory, registry):
    return ActionScheduler(persistence, memory=memory, registry=registry)


async def drain(scheduler: ActionScheduler, limit: int = 20) -> list[Action]:
    """反复执行直到队列为空"""
    executed = []
    for _ in range(limit):
        action = await scheduler.execution_loop()
        if action is None:
            break
        executed.append(action)
    return executed


class TestActionTypes:
    """测试动作类型"""

    def test_priority_from_importance(self):
        """测试重要度到优先级的映射"""
        assert ActionPriority.from_importance(10) == ActionPriority.CRITICAL
        assert ActionPriority.from_importance(9) == ActionPriority.CRITICAL
        assert ActionPriority.from_importance(8) == ActionPriority.HIGH
        assert ActionPriority.from_importance(7) == ActionPriority.HIGH
        assert ActionPriority.from_importance(5) == ActionPriority.MEDIUM
        assert ActionPriority.from_importance(4) == ActionPriority.LOW

    def test_priority_from_string(self):
        """测试字符串解析"""
        assert ActionPriority.from_string("HIGH") == ActionPriority.HIGH
        assert ActionPriority.from_string("whatever") == ActionPriority.MEDIUM

    def test_serialization(self):
        """测试序列化"""
        action = Action(
            kind=ActionKind.LEARNING,
            description="learn docker",
            priority=ActionPriority.HIGH,
            dependencies=["abc"],
            scheduled_for=datetime(2024, 1, 1, 9, 0),
            metadata={"topic": "docker"},
        )
        restored = Action.from_dict(action.to_dict())

        assert restored.id == action.id
        assert restored.kind == ActionKind.LEARNING
        assert restored.priority == ActionPriority.HIGH
        assert restored.dependencies == ["abc"]
        assert restored.scheduled_for == action.scheduled_for
        assert restored.metadata == {"topic": "docker"}


class TestActionScheduler:
    """测试动作调度器"""

    @pytest.mark.asyncio
    async def test_dependency_runs_before_higher_priority(self, persistence, memory):
        """测试依赖优先于优先级"""
        registry = ActionHandlerRegistry()
        scheduler = ActionScheduler(persistence, memory=memory, registry=registry)
        observed = {}

        def run_a(action):
            observed["b_in_queue"] = any(a.id == b_id for a in scheduler.queue())
            observed["b_status"] = scheduler.get(b_id).status
            return "a"

        def run_critical(action):
            return action.description

        registry.register(ActionKind.TASK, run_a)
        registry.register(ActionKind.ANALYSIS, run_critical)

        a_id = await scheduler.schedule(Action(kind=ActionKind.TASK, description="A",
                                               priority=ActionPriority.HIGH))
        b_id = await scheduler.schedule(Action(kind=ActionKind.ANALYSIS, description="B",
                                               priority=ActionPriority.CRITICAL, dependencies=[a_id]))

        assert [a.id for a in scheduler.queue()] == [a_id]
        assert [a.id for a in scheduler.planned()] == [b_id]

        executed = await drain(scheduler)

        assert [a.id for a in executed] == [a_id, b_id]
        assert all(a.status == ActionStatus.COMPLETED for a in executed)
        assert observed == {"b_in_queue": False, "b_status": ActionStatus.PLANNED}

    @pytest.mark.asyncio
    async def test_priority_then_fifo(self, scheduler):
        """测试优先级降序，同优先级先来先服务"""
        later = datetime.now() + timedelta(minutes=5)
        low = await scheduler.schedule(Action(kind=ActionKind.TASK, description="low",
                                              priority=ActionPriority.LOW, scheduled_for=later))
        first_high = await scheduler.schedule(Action(kind=ActionKind.TASK, description="high 1",
                                                     priority=ActionPriority.HIGH, scheduled_for=later))
        second_high = await scheduler.schedule(Action(kind=ActionKind.TASK, description="high 2",
                                                      priority=ActionPriority.HIGH, scheduled_for=later))
        critical = await scheduler.schedule(Action(kind=ActionKind.TASK, description="critical",
                                                   priority=ActionPriority.CRITICAL, scheduled_for=later))

        assert scheduler.queue() == []
        moved = await scheduler.prioritize(now=later + timedelta(seconds=1))

        assert moved == 4
        assert [a.id for a in scheduler.queue()] == [critical, first_high, second_high, low]

    @pytest.mark.asyncio
    async def test_scheduled_for_waits(self, scheduler):
        """测试未到时间的动作不进入队列"""
        action_id = await scheduler.schedule(Action(
            kind=ActionKind.TASK,
            description="later",
            scheduled_for=datetime.now() + timedelta(hours=1),
        ))

        assert await scheduler.execution_loop() is None
        assert scheduler.get(action_id).status == ActionStatus.PLANNED

    @pytest.mark.asyncio
    async def test_single_execution(self, persistence):
        """测试同一时刻最多一个动作在执行"""
        gate = asyncio.Event()
        registry = ActionHandlerRegistry()

        async def slow(action):
            await gate.wait()
            return "slow"

        registry.register(ActionKind.TASK, slow)
        scheduler = ActionScheduler(persistence, registry=registry)
        for i in range(3):
            await scheduler.schedule(Action(kind=ActionKind.TASK, description=f"job {i}"))

        first = asyncio.create_task(scheduler.execution_loop())
        for _ in range(5):
            await asyncio.sleep(0)

        assert scheduler.is_executing
        assert scheduler.executing is not None
        others = await asyncio.gather(*(scheduler.execution_loop() for _ in range(3)))
        assert others == [None, None, None]
        assert len(scheduler.queue()) == 2

        gate.set()
        result = await first
        assert result.status == ActionStatus.COMPLETED
        assert not scheduler.is_executing
        assert scheduler.executing is None

    @pytest.mark.asyncio
    async def test_unknown_kind_fails(self, persistence, memory):
        """测试未注册类型的动作失败"""
        registry = ActionHandlerRegistry()
        scheduler = ActionScheduler(persistence, memory=memory, registry=registry)
        await scheduler.schedule(Action(kind=ActionKind.COMMUNICATION, description="report"))

        result = await scheduler.execution_loop()

        assert result.status == ActionStatus.FAILED
        assert "communication" in result.error
        failures = [e for e in memory.query(kind=MemoryKind.SYSTEM) if e.content.startswith("Action failed")]
        assert len(failures) == 1
        assert failures[0].importance >= 8

    @pytest.mark.asyncio
    async def test_dispatch_raises_unknown_kind(self):
        """测试注册表直接分发未知类型"""
        with pytest.raises(UnknownActionKindError):
            await ActionHandlerRegistry().dispatch(Action(kind=ActionKind.TASK, description="x"))

    @pytest.mark.asyncio
    async def test_handler_exception_does_not_stop_loop(self, persistence, registry):
        """测试处理器异常后循环继续"""
        def boom(action):
            raise RuntimeError("handler exploded")

        registry.register(ActionKind.LEARNING, boom)
        scheduler = ActionScheduler(persistence, registry=registry)
        await scheduler.schedule(Action(kind=ActionKind.LEARNING, description="bad"))
        await scheduler.schedule(Action(kind=ActionKind.TASK, description="good"))

        executed = await drain(scheduler)

        assert [a.status for a in executed] == [ActionStatus.FAILED, ActionStatus.COMPLETED]
        assert executed[0].error == "handler exploded"
        assert executed[1].result == "done: good"
        assert scheduler.get_stats()["failed"] == 1

    @pytest.mark.asyncio
    async def test_failed_dependency_never_runs(self, persistence, registry):
        """测试依赖失败时后续动作保持 planned"""
        def fail(action):
            raise ValueError("nope")

        registry.register(ActionKind.LEARNING, fail)
        scheduler = ActionScheduler(persistence, registry=registry)
        a_id = await scheduler.schedule(Action(kind=ActionKind.LEARNING, description="A"))
        b_id = await scheduler.schedule(Action(kind=ActionKind.TASK, description="B", dependencies=[a_id]))

        executed = await drain(scheduler)

        assert [a.id for a in executed] == [a_id]
        assert scheduler.get(b_id).status == ActionStatus.PLANNED

    @pytest.mark.asyncio
    async def test_cancel(self, scheduler):
        """测试取消各状态的动作"""
        queued = await scheduler.schedule(Action(kind=ActionKind.TASK, description="queued"))
        waiting = await scheduler.schedule(Action(kind=ActionKind.TASK, description="waiting",
                                                  scheduled_for=datetime.now() + timedelta(hours=1)))
        done = await scheduler.schedule(Action(kind=ActionKind.TASK, description="done"))

        assert await scheduler.cancel(waiting)
        assert scheduler.get(waiting).status == ActionStatus.CANCELLED

        assert await scheduler.cancel(queued)
        assert scheduler.get(queued).status == ActionStatus.CANCELLED

        await drain(scheduler)
        assert scheduler.get(done).status == ActionStatus.COMPLETED
        assert not await scheduler.cancel(done)
        assert not await scheduler.cancel("missing")
        assert scheduler.get_stats()["cancelled"] == 2

    @pytest.mark.asyncio
    async def test_missing_dependency_blocks_by_default(self, scheduler):
        """测试默认情况下依赖缺失永久阻塞"""
        action_id = await scheduler.schedule(Action(kind=ActionKind.TASK, description="orphan",
                                                    dependencies=["does-not-exist"]))

        await scheduler.prioritize(now=datetime.now() + timedelta(days=30))

        assert scheduler.get(action_id).status == ActionStatus.PLANNED
        assert await scheduler.execution_loop() is None

    @pytest.mark.asyncio
    async def test_dependency_timeout(self, persistence, memory, registry):
        """测试配置依赖超时后动作失败"""
        scheduler = ActionScheduler(
            persistence,
            memory=memory,
            registry=registry,
            config=SchedulerConfig(dependency_timeout_seconds=60),
        )
        dep = await scheduler.schedule(Action(kind=ActionKind.TASK, description="dep",
                                              scheduled_for=datetime.now() + timedelta(days=1)))
        await scheduler.cancel(dep)

        start = datetime.now()
        action_id = await scheduler.schedule(Action(kind=ActionKind.TASK, description="blocked",
                                                    dependencies=[dep]))
        await scheduler.prioritize(now=start)

        await scheduler.prioritize(now=start + timedelta(seconds=30))
        assert scheduler.get(action_id).status == ActionStatus.PLANNED

        await scheduler.prioritize(now=start + timedelta(seconds=61))
        action = scheduler.get(action_id)
        assert action.status == ActionStatus.FAILED
        assert dep in action.error
        assert any("dependency unresolved" in e.content for e in memory.query(kind=MemoryKind.SYSTEM))

    @pytest.mark.asyncio
    async def test_initialize_marks_interrupted(self, persistence, registry):
        """测试重启后执行中的动作标记为中断失败"""
        running = Action(kind=ActionKind.TASK, description="was running", status=ActionStatus.EXECUTING)
        pending = Action(kind=ActionKind.TASK, description="pending")
        await persistence.save(QUEUE_COLLECTION, [running.to_dict()])
        await persistence.save(PLANNED_COLLECTION, [pending.to_dict(), {"broken": True}])

        scheduler = ActionScheduler(persistence, registry=registry)
        await scheduler.initialize()

        restored = scheduler.get(running.id)
        assert restored.status == ActionStatus.FAILED
        assert restored.error == INTERRUPTED_ERROR
        assert [a.id for a in scheduler.queue()] == [pending.id]

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, persistence, registry):
        """测试持久化后重新加载"""
        scheduler = ActionScheduler(persistence, registry=registry)
        done = await scheduler.schedule(Action(kind=ActionKind.TASK, description="done"))
        await drain(scheduler)
        later = await scheduler.schedule(Action(kind=ActionKind.TASK, description="later",
                                                scheduled_for=datetime.now() + timedelta(hours=1)))

        reloaded = ActionScheduler(persistence, registry=registry)
        await reloaded.initialize()

        assert reloaded.get(done).status == ActionStatus.COMPLETED
        assert [a.id for a in reloaded.planned()] == [later]

    @pytest.mark.asyncio
    async def test_events_and_memories(self, persistence, memory, registry):
        """测试事件发布和生命周期记忆"""
        bus = EventBus()
        events = []
        bus.subscribe(EventKind.ACTION_SCHEDULED, events.append)
        bus.subscribe(EventKind.ACTION_UPDATED, events.append)
        scheduler = ActionScheduler(persistence, memory=memory, bus=bus, registry=registry)

        action_id = await scheduler.schedule(Action(kind=ActionKind.ANALYSIS, description="look around"))
        await scheduler.execution_loop()

        assert [e.kind for e in events] == [
            EventKind.ACTION_SCHEDULED,
            EventKind.ACTION_UPDATED,
            EventKind.ACTION_UPDATED,
        ]
        assert [e.payload.status for e in events] == [
            ActionStatus.PLANNED,
            ActionStatus.EXECUTING,
            ActionStatus.COMPLETED,
        ]
        contents = [e.content for e in memory.query(tags=["action"])]
        assert "Scheduled action: look around" in contents
        assert "Executing action: look around" in contents
        assert "Completed action: look around" in contents
        assert all(e.metadata["action_id"] == action_id for e in memory.query(tags=["action"]))

    @pytest.mark.asyncio
    async def test_returned_copies(self, scheduler):
        """测试对外返回的是副本"""
        action_id = await scheduler.schedule(Action(kind=ActionKind.TASK, description="first draft",
                                                    scheduled_for=datetime.now() + timedelta(hours=1)))
        copy = scheduler.get(action_id)
        copy.description = "changed"

        assert scheduler.get(action_id).description == "first draft"

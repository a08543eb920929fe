# -*- coding: utf-8 -*-
"""
思考类型定义
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from ..memory.types import MemoryEntry
from ..schedule.types import ActionKind


class ThoughtType(Enum):
    """思考类型"""
    OBSERVATION = "observation"
    INSIGHT = "insight"
    PLAN = "plan"
    REFLECTION = "reflection"

    @property
    def action_kind(self) -> ActionKind:
        """思考转为动作时的类型"""
        return _ACTION_KIND[self]


_ACTION_KIND = {
    ThoughtType.OBSERVATION: ActionKind.ANALYSIS,
    ThoughtType.INSIGHT: ActionKind.LEARNING,
    ThoughtType.PLAN: ActionKind.TASK,
    ThoughtType.REFLECTION: ActionKind.OPTIMIZATION,
}


@dataclass
class Thought:
    """候选想法，需要行动的会被提升为 Action"""
    content: str
    thought_type: ThoughtType
    importance: int = 5
    tags: list[str] = field(default_factory=list)
    action_required: bool = False
    reasoning: str = ""
    detector: str = ""
    action_description: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "thought_type": self.thought_type.value,
            "importance": self.importance,
            "tags": list(self.tags),
            "action_required": self.action_required,
            "reasoning": self.reasoning,
            "detector": self.detector,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class SystemState:
    """一次思考时观察到的系统状态"""
    now: datetime
    window: list[MemoryEntry] = field(default_factory=list)   # 最近的记忆（旧的在前）
    executing_actions: int = 0
    top_provider: Optional[str] = None
    top_provider_available: bool = True
    preferred_provider: Optional[str] = None

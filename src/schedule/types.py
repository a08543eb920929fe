# -*- coding: utf-8 -*-
"""
动作类型定义
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import uuid


class ActionKind(Enum):
    """动作类型"""
    TASK = "task"                      # 执行用户任务
    LEARNING = "learning"              # 学习/研究
    OPTIMIZATION = "optimization"      # 记忆整合与维护
    COMMUNICATION = "communication"    # 状态汇报
    ANALYSIS = "analysis"              # 记忆模式分析


class ActionPriority(Enum):
    """动作优先级（critical > high > medium > low）"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]

    @classmethod
    def from_importance(cls, importance: int) -> "ActionPriority":
        """由重要度推导优先级"""
        if importance >= 9:
            return cls.CRITICAL
        if importance >= 7:
            return cls.HIGH
        if importance >= 5:
            return cls.MEDIUM
        return cls.LOW

    @classmethod
    def from_string(cls, level: str) -> "ActionPriority":
        try:
            return cls(level.lower())
        except ValueError:
            return cls.MEDIUM


_PRIORITY_RANK = {
    ActionPriority.CRITICAL: 4,
    ActionPriority.HIGH: 3,
    ActionPriority.MEDIUM: 2,
    ActionPriority.LOW: 1,
}


class ActionStatus(Enum):
    """动作状态"""
    PLANNED = "planned"          # 已计划（等待依赖或排队）
    EXECUTING = "executing"      # 执行中
    COMPLETED = "completed"      # 已完成
    FAILED = "failed"            # 失败
    CANCELLED = "cancelled"      # 已取消

    @property
    def is_terminal(self) -> bool:
        return self in (ActionStatus.COMPLETED, ActionStatus.FAILED, ActionStatus.CANCELLED)


@dataclass
class Action:
    """可调度的自主工作单元"""
    kind: ActionKind
    description: str
    priority: ActionPriority = ActionPriority.MEDIUM
    status: ActionStatus = ActionStatus.PLANNED

    # 标识
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    created_at: datetime = field(default_factory=datetime.now)

    # 调度
    dependencies: list[str] = field(default_factory=list)
    scheduled_for: Optional[datetime] = None   # 不早于该时间执行

    # 执行
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    result: Optional[str] = None
    error: Optional[str] = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "Action":
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """序列化"""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "description": self.description,
            "priority": self.priority.value,
            "status": self.status.value,
            "dependencies": list(self.dependencies),
            "created_at": self.created_at.isoformat(),
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result,
            "error": self.error,
            "metadata": copy.deepcopy(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Action":
        """反序列化"""
        description = data.get("description", "")
        dependencies = data.get("dependencies", [])
        if not isinstance(description, str):
            raise TypeError("description 必须是字符串")
        if not isinstance(dependencies, list) or not all(isinstance(d, str) for d in dependencies):
            raise TypeError("dependencies 必须是字符串列表")
        return cls(
            id=data.get("id", uuid.uuid4().hex[:12]),
            kind=ActionKind(data["kind"]),
            description=description,
            priority=ActionPriority(data.get("priority", "medium")),
            status=ActionStatus(data.get("status", "planned")),
            dependencies=list(dependencies),
            created_at=datetime.fromisoformat(data.get("created_at", datetime.now().isoformat())),
            scheduled_for=datetime.fromisoformat(data["scheduled_for"]) if data.get("scheduled_for") else None,
            started_at=datetime.fromisoformat(data["started_at"]) if data.get("started_at") else None,
            finished_at=datetime.fromisoformat(data["finished_at"]) if data.get("finished_at") else None,
            result=data.get("result"),
            error=data.get("error"),
            metadata=dict(data.get("metadata") or {}),
        )

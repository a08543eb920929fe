# -*- coding: utf-8 -*-
"""
任务类型定义
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import uuid

from ..schedule.types import ActionPriority


class TaskStatus(Enum):
    """任务状态"""
    PENDING = "pending"          # 待处理
    IN_PROGRESS = "in_progress"  # 进行中
    COMPLETED = "completed"      # 已完成
    CANCELLED = "cancelled"      # 已取消


@dataclass
class Task:
    """用户可见的任务，执行交给调度器的 task 动作"""
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: ActionPriority = ActionPriority.MEDIUM

    # 标识
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    # 关系
    dependencies: list[str] = field(default_factory=list)  # 依赖的任务ID
    action_id: Optional[str] = None                         # 对应的调度动作

    tags: list[str] = field(default_factory=list)
    result: Optional[str] = None
    source_conversation: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)

    def to_dict(self) -> dict[str, Any]:
        """序列化"""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "dependencies": list(self.dependencies),
            "action_id": self.action_id,
            "tags": list(self.tags),
            "result": self.result,
            "source_conversation": self.source_conversation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """反序列化"""
        if not isinstance(data["title"], str):
            raise TypeError("title 必须是字符串")
        created_at = datetime.fromisoformat(data.get("created_at", datetime.now().isoformat()))
        return cls(
            id=data.get("id", str(uuid.uuid4())[:8]),
            title=data["title"],
            description=data.get("description", ""),
            status=TaskStatus(data.get("status", "pending")),
            priority=ActionPriority(data.get("priority", "medium")),
            created_at=created_at,
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else created_at,
            dependencies=list(data.get("dependencies", [])),
            action_id=data.get("action_id"),
            tags=list(data.get("tags", [])),
            result=data.get("result"),
            source_conversation=data.get("source_conversation"),
        )

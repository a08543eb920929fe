# -*- coding: utf-8 -*-
"""
记忆类型定义
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
import uuid

MIN_IMPORTANCE = 1
MAX_IMPORTANCE = 10
DEFAULT_IMPORTANCE = 5


def clamp_importance(value: int) -> int:
    """重要度限制在 [1, 10]"""
    return max(MIN_IMPORTANCE, min(MAX_IMPORTANCE, int(value)))


def _str_list(value: Any, name: str) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise TypeError(f"{name} 必须是字符串列表")
    return list(value)


class MemoryKind(Enum):
    """记忆类型"""
    THOUGHT = "thought"            # 自主思考
    TASK = "task"                  # 任务相关
    LEARNING = "learning"          # 学习成果
    INTERACTION = "interaction"    # 用户对话
    PLUGIN = "plugin"              # 插件事件
    SYSTEM = "system"              # 系统事件


@dataclass
class MemoryEntry:
    """记忆条目 - 统一存储格式"""
    content: str
    kind: MemoryKind = MemoryKind.SYSTEM
    importance: int = DEFAULT_IMPORTANCE

    # 标识
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=datetime.now)

    # 元数据
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    # 树形关系
    parent_id: Optional[str] = None
    child_ids: list[str] = field(default_factory=list)

    @property
    def related_memories(self) -> list[str]:
        return list(self.metadata.get("relatedMemories", []))

    @property
    def merged_from(self) -> list[str]:
        return list(self.metadata.get("mergedFrom", []))

    def copy(self) -> "MemoryEntry":
        """深拷贝（对外只暴露副本）"""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """序列化为字典"""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value,
            "content": self.content,
            "importance": self.importance,
            "tags": list(self.tags),
            "metadata": copy.deepcopy(self.metadata),
            "parent_id": self.parent_id,
            "child_ids": list(self.child_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MemoryEntry":
        """
        从字典反序列化

        Raises:
            KeyError: 缺少 content
            TypeError: 字段类型不对（content 必须是字符串，tags/child_ids 必须是字符串列表）
        """
        content = data["content"]
        if not isinstance(content, str):
            raise TypeError(f"content 必须是字符串: {type(content).__name__}")
        return cls(
            id=data.get("id", uuid.uuid4().hex[:12]),
            timestamp=datetime.fromisoformat(data.get("timestamp", datetime.now().isoformat())),
            kind=MemoryKind(data.get("kind", "system")),
            content=content,
            importance=clamp_importance(data.get("importance", DEFAULT_IMPORTANCE)),
            tags=_str_list(data.get("tags", []), "tags"),
            metadata=dict(data.get("metadata") or {}),
            parent_id=data.get("parent_id"),
            child_ids=_str_list(data.get("child_ids", []), "child_ids"),
        )


@dataclass
class MemoryCluster:
    """话题聚类"""
    topic: str
    memory_ids: list[str] = field(default_factory=list)
    importance: int = MIN_IMPORTANCE
    last_updated: Optional[datetime] = None

    @property
    def size(self) -> int:
        return len(self.memory_ids)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "memory_ids": list(self.memory_ids),
            "importance": self.importance,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }

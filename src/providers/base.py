# -*- coding: utf-8 -*-
"""
AI 提供方接口

路由器只依赖 check_connection / generate 两个能力
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class Provider(ABC):
    """
    AI 提供方基类

    Attributes:
        name: 提供方名称（路由内唯一）
        model: 模型标识
        networked: 是否依赖网络（本地兜底为 False）
    """

    name: str = "provider"
    model: str = ""
    networked: bool = True

    @abstractmethod
    async def check_connection(self) -> bool:
        """探测是否可用，不抛异常"""
        raise NotImplementedError("Subclasses must implement check_connection()")

    @abstractmethod
    async def generate(self, prompt: str, model_hint: Optional[str] = None) -> str:
        """
        生成文本

        调用是原子的：要么返回完整结果，要么抛出异常

        Raises:
            ProviderError: 调用失败
        """
        raise NotImplementedError("Subclasses must implement generate()")

    async def close(self) -> None:
        """释放资源（默认无）"""
        return None


@dataclass
class ProviderDescriptor:
    """提供方描述（对外只给副本）"""
    name: str
    rank: int
    model: str
    available: bool = False
    last_checked: Optional[datetime] = None
    last_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "rank": self.rank,
            "model": self.model,
            "available": self.available,
            "last_checked": self.last_checked.isoformat() if self.last_checked else None,
            "last_error": self.last_error,
        }


@dataclass
class ProviderResponse:
    """路由结果"""
    content: str
    provider: str
    mode: str = "general"
    model: Optional[str] = None
    fallback_used: bool = False
    attempts: list[str] = field(default_factory=list)
    duration_ms: float = 0.0

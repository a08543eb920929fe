# -*- coding: utf-8 -*-
"""
持久化端口

核心只把存储看作 collection 名 → 记录数组 的黑盒
"""
import copy
from abc import ABC, abstractmethod
from typing import Any

Record = dict[str, Any]


class PersistencePort(ABC):
    """持久化端口基类"""

    @abstractmethod
    async def load(self, collection: str) -> list[Record]:
        """
        加载集合

        Args:
            collection: 集合名

        Returns:
            记录列表；集合不存在或内容损坏时返回空列表
        """
        raise NotImplementedError("Subclasses must implement load()")

    @abstractmethod
    async def save(self, collection: str, records: list[Record]) -> None:
        """整体写入集合"""
        raise NotImplementedError("Subclasses must implement save()")


class InMemoryPersistence(PersistencePort):
    """进程内存储（测试和无磁盘场景）"""

    def __init__(self):
        self._collections: dict[str, list[Record]] = {}
        self.save_count = 0

    async def load(self, collection: str) -> list[Record]:
        return copy.deepcopy(self._collections.get(collection, []))

    async def save(self, collection: str, records: list[Record]) -> None:
        self._collections[collection] = copy.deepcopy(records)
        self.save_count += 1

    def collections(self) -> list[str]:
        return list(self._collections.keys())

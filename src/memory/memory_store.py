# -*- coding: utf-8 -*-
"""
记忆存储主类

整合评分、标签增强、关联发现、检索、整合与归档
"""
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from ..bus import EventBus, EventKind
from ..config import MemoryConfig
from ..storage import PersistencePort
from .consolidation import MemoryConsolidation, cluster_by_topic
from .retrieval import RetrievalResult, rank
from .scoring import calculate_importance, enhance_tags, find_related
from .types import DEFAULT_IMPORTANCE, MemoryCluster, MemoryEntry, MemoryKind, clamp_importance

logger = logging.getLogger('memory.store')

MEMORY_COLLECTION = "memories"
ARCHIVE_COLLECTION = "memories_archive"

# 带有该标签的记忆永不归档
PROTECTED_TAG = "important"
ARCHIVE_IMPORTANCE_BELOW = 5


class MemoryStore:
    """
    记忆存储

    - 唯一持有 MemoryEntry 实例，对外只返回副本
    - 每次变更整体写回 "memories" 集合
    - 归档的记忆写入 "memories_archive"，不再参与检索、聚类和关联
    """

    def __init__(
        self,
        persistence: PersistencePort,
        bus: Optional[EventBus] = None,
        config: Optional[MemoryConfig] = None
    ):
        self.persistence = persistence
        self.bus = bus
        self.config = config or MemoryConfig()
        self.consolidation = MemoryConsolidation(self.config.similarity_threshold)

        self._entries: dict[str, MemoryEntry] = {}
        self._archive: list[MemoryEntry] = []

        self.stats = {
            "memories_added": 0,
            "searches": 0,
            "consolidations": 0,
            "last_consolidation": None,
            "last_maintenance": None,
        }

    async def load(self) -> int:
        """
        从持久化端口加载

        Returns:
            加载的活跃记忆数量
        """
        self._entries = {}
        for record in await self.persistence.load(MEMORY_COLLECTION):
            entry = self._parse(record)
            if entry:
                self._entries[entry.id] = entry

        self._archive = [
            entry for entry in map(self._parse, await self.persistence.load(ARCHIVE_COLLECTION))
            if entry
        ]
        logger.info(f"已加载 {len(self._entries)} 条记忆，归档 {len(self._archive)} 条")
        return len(self._entries)

    def _parse(self, record: dict[str, Any]) -> Optional[MemoryEntry]:
        try:
            return MemoryEntry.from_dict(record)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"跳过无法解析的记忆记录: {e}")
            return None

    async def _persist(self) -> None:
        await self.persistence.save(MEMORY_COLLECTION, [e.to_dict() for e in self._entries.values()])

    async def _publish(self, kind: EventKind, payload: Any) -> None:
        if self.bus:
            await self.bus.publish(kind, payload)

    async def add(self, entry: MemoryEntry) -> str:
        """
        添加记忆

        步骤：
        1. 计算重要度
        2. 增强标签
        3. 发现关联记忆
        4. 维护父子关系
        5. 持久化并发布 MEMORY_ADDED

        Args:
            entry: 记忆条目（调用方的对象不会被修改）

        Returns:
            记忆ID
        """
        entry = entry.copy()
        entry.importance = calculate_importance(entry)
        entry.tags = enhance_tags(entry)

        related = find_related(entry, self._entries.values(), limit=self.config.related_limit)
        if related:
            entry.metadata["relatedMemories"] = related

        if entry.parent_id:
            parent = self._entries.get(entry.parent_id)
            if parent is None:
                logger.debug(f"父记忆不存在: {entry.parent_id}")
            elif entry.id not in parent.child_ids:
                parent.child_ids.append(entry.id)

        self._entries[entry.id] = entry
        self.stats["memories_added"] += 1
        await self._persist()

        logger.debug(f"添加记忆: {entry.id} [{entry.kind.value}] 重要度={entry.importance}")
        await self._publish(EventKind.MEMORY_ADDED, entry.copy())

        if len(self._entries) > self.config.consolidate_threshold:
            logger.info(f"活跃记忆数 {len(self._entries)} 超过阈值，自动整合")
            await self.consolidate()
            # 新记忆可能已被合并，返回合并后的记忆ID
            return self.resolve(entry.id) or entry.id

        return entry.id

    async def capture(
        self,
        content: str,
        kind: MemoryKind = MemoryKind.SYSTEM,
        importance: Optional[int] = None,
        tags: Optional[list[str]] = None,
        metadata: Optional[dict[str, Any]] = None,
        parent_id: Optional[str] = None
    ) -> str:
        """快捷添加记忆"""
        entry = MemoryEntry(
            content=content,
            kind=kind,
            importance=clamp_importance(importance if importance is not None else DEFAULT_IMPORTANCE),
            tags=list(tags or []),
            metadata=dict(metadata or {}),
            parent_id=parent_id,
        )
        return await self.add(entry)

    def resolve(self, memory_id: str) -> Optional[str]:
        """记忆ID（或已被合并的旧ID）对应的活跃记忆ID"""
        if memory_id in self._entries:
            return memory_id
        for entry in self._entries.values():
            if memory_id in entry.merged_from:
                return entry.id
        return None

    def get(self, memory_id: str) -> Optional[MemoryEntry]:
        entry = self._entries.get(memory_id)
        return entry.copy() if entry else None

    def search(self, query: str, limit: Optional[int] = None) -> list[RetrievalResult]:
        """
        关键词检索

        Returns:
            RetrievalResult 列表（条目为副本）
        """
        self.stats["searches"] += 1
        results = rank(self._entries.values(), query, limit or self.config.search_limit)
        return [RetrievalResult(entry=r.entry.copy(), score=r.score) for r in results]

    def recent(self, limit: int = 10, kind: Optional[MemoryKind] = None) -> list[MemoryEntry]:
        """最近的记忆（新的在前）"""
        entries = [e for e in self._entries.values() if kind is None or e.kind == kind]
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return [e.copy() for e in entries[:limit]]

    def query(
        self,
        kind: Optional[MemoryKind] = None,
        tags: Optional[list[str]] = None,
        min_importance: int = 0,
        since: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> list[MemoryEntry]:
        """
        条件查询（按时间升序）

        Args:
            kind: 类型筛选
            tags: 需全部包含的标签
            min_importance: 最低重要度
            since: 起始时间（含）
            limit: 只保留最近的 N 条
        """
        result = []
        for entry in self._entries.values():
            if kind is not None and entry.kind != kind:
                continue
            if tags and not set(tags).issubset(entry.tags):
                continue
            if entry.importance < min_importance:
                continue
            if since is not None and entry.timestamp < since:
                continue
            result.append(entry)

        result.sort(key=lambda e: e.timestamp)
        if limit is not None:
            result = result[-limit:] if limit > 0 else []
        return [e.copy() for e in result]

    def count(self) -> int:
        return len(self._entries)

    def archived_count(self) -> int:
        return len(self._archive)

    async def consolidate(self) -> dict[str, Any]:
        """
        去重合并

        Returns:
            统计信息 {"before", "after", "merged_groups", "removed"}
        """
        before = len(self._entries)
        result = self.consolidation.run(self._entries.values())

        stats = {
            "before": before,
            "after": len(result.entries),
            "merged_groups": result.merge_count,
            "removed": len(result.removed_ids),
        }
        self.stats["consolidations"] += 1
        self.stats["last_consolidation"] = datetime.now().isoformat()

        if not result.merged:
            return stats

        removed = set(result.removed_ids)
        replacement = {m.id: m for m in result.merged}
        for merged in result.merged:
            for original_id in merged.merged_from:
                replacement.setdefault(original_id, merged)

        rebuilt: dict[str, MemoryEntry] = {}
        for entry in result.entries:
            rebuilt[entry.id] = entry
            # 指向已合并记忆的引用改为指向新记忆
            if entry.parent_id in removed:
                entry.parent_id = replacement[entry.parent_id].id
            entry.child_ids = self._remap(entry.child_ids, removed, replacement, entry.id)
            if entry.related_memories:
                entry.metadata["relatedMemories"] = self._remap(
                    entry.related_memories, removed, replacement, entry.id
                )

        self._entries = rebuilt
        await self._persist()

        logger.info(f"记忆整合完成: {before} → {len(self._entries)}")
        await self._publish(EventKind.MEMORY_CONSOLIDATED, dict(stats))
        return stats

    @staticmethod
    def _remap(ids: list[str], removed: set[str], replacement: dict[str, MemoryEntry], self_id: str) -> list[str]:
        remapped: list[str] = []
        for memory_id in ids:
            if memory_id in removed:
                memory_id = replacement[memory_id].id
            if memory_id != self_id and memory_id not in remapped:
                remapped.append(memory_id)
        return remapped

    def cluster(self) -> list[MemoryCluster]:
        """按主标签聚类（大的在前）"""
        clusters = cluster_by_topic(self._entries.values())
        clusters.sort(key=lambda c: c.size, reverse=True)
        return clusters

    async def maintenance(self, now: Optional[datetime] = None) -> int:
        """
        维护：归档过期的低重要度记忆

        条件：早于保留期、重要度 < 5、没有 "important" 标签

        Returns:
            归档数量
        """
        now = now or datetime.now()
        cutoff = now - timedelta(days=self.config.retention_days)

        archived = [
            entry for entry in self._entries.values()
            if entry.timestamp < cutoff
            and entry.importance < ARCHIVE_IMPORTANCE_BELOW
            and PROTECTED_TAG not in entry.tags
        ]
        self.stats["last_maintenance"] = now.isoformat()

        if not archived:
            return 0

        for entry in archived:
            del self._entries[entry.id]
            entry.metadata["archivedAt"] = now.isoformat()
        self._archive.extend(archived)

        await self.persistence.save(ARCHIVE_COLLECTION, [e.to_dict() for e in self._archive])
        await self._persist()

        logger.info(f"归档 {len(archived)} 条记忆")
        await self._publish(EventKind.MEMORY_ARCHIVED, [e.id for e in archived])
        return len(archived)

    def export_json(self) -> str:
        """导出活跃记忆为 JSON 文本"""
        return json.dumps(
            [e.to_dict() for e in self._entries.values()],
            ensure_ascii=False,
            indent=2
        )

    async def import_json(self, text: str) -> int:
        """
        导入 JSON 文本中的记忆（已存在的ID跳过，不重新评分）

        Returns:
            导入数量
        """
        try:
            records = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"导入失败，JSON 无效: {e}")
            return 0

        if not isinstance(records, list):
            logger.warning("导入失败，内容不是数组")
            return 0

        imported = 0
        for record in records:
            if not isinstance(record, dict):
                continue
            entry = self._parse(record)
            if entry and entry.id not in self._entries:
                self._entries[entry.id] = entry
                imported += 1

        if imported:
            await self._persist()
        logger.info(f"导入 {imported} 条记忆")
        return imported

    def get_stats(self) -> dict[str, Any]:
        kinds: dict[str, int] = {}
        for entry in self._entries.values():
            kinds[entry.kind.value] = kinds.get(entry.kind.value, 0) + 1
        return {
            **self.stats,
            "active": len(self._entries),
            "archived": len(self._archive),
            "by_kind": kinds,
        }

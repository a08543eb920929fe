# -*- coding: utf-8 -*-
"""
记忆整合 (Consolidation)

- 去重合并：内容词集合 Jaccard 相似度超过阈值的记忆合并为一条
- 话题聚类：按主标签分组

合并规则是确定性的：标签取并集，重要度取最大值，
并反复合并直到没有相似对，因此连续整合两次不会再产生变化。
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from .scoring import extract_words
from .types import MemoryCluster, MemoryEntry

logger = logging.getLogger('memory.consolidation')

MERGE_SEPARATOR = " | "


@dataclass
class ConsolidationResult:
    """整合结果"""
    entries: list[MemoryEntry] = field(default_factory=list)
    merged: list[MemoryEntry] = field(default_factory=list)
    removed_ids: list[str] = field(default_factory=list)

    @property
    def merge_count(self) -> int:
        return len(self.merged)


class MemoryConsolidation:
    """
    记忆整合引擎

    流程：
    1. 找出相似组 → 2. 合并每组 → 3. 重复直到稳定
    """

    def __init__(self, similarity_threshold: float = 0.8):
        self.similarity_threshold = similarity_threshold

    def run(self, entries: Iterable[MemoryEntry]) -> ConsolidationResult:
        """
        运行去重合并

        Args:
            entries: 活跃记忆（不会被修改）

        Returns:
            ConsolidationResult，entries 为合并后的完整列表
        """
        current = sorted(entries, key=lambda e: e.timestamp)
        result = ConsolidationResult()
        merged_ids: set[str] = set()

        while True:
            groups = self._find_groups(current)
            if not groups:
                break

            grouped_ids = {m.id for group in groups for m in group}
            survivors = [e for e in current if e.id not in grouped_ids]
            for group in groups:
                merged = self._merge(group)
                survivors.append(merged)
                merged_ids.add(merged.id)
                result.merged.append(merged)
                result.removed_ids.extend(m.id for m in group)

            current = sorted(survivors, key=lambda e: e.timestamp)

        # 中间轮次产生又被再次合并的条目不算最终结果
        result.merged = [m for m in result.merged if m.id in {e.id for e in current}]
        result.removed_ids = [i for i in result.removed_ids if i not in merged_ids]
        result.entries = current

        if result.merged:
            logger.info(f"记忆整合: 合并 {len(result.removed_ids)} 条为 {len(result.merged)} 条")
        return result

    def _find_groups(self, entries: list[MemoryEntry]) -> list[list[MemoryEntry]]:
        """找出相似记忆组（以组内第一条为基准）"""
        words = {e.id: extract_words(e.content) for e in entries}
        processed: set[str] = set()
        groups = []

        for entry in entries:
            if entry.id in processed:
                continue

            duplicates = [
                other for other in entries
                if other.id != entry.id
                and other.id not in processed
                and self._similar(words[entry.id], words[other.id])
            ]

            if duplicates:
                group = [entry, *duplicates]
                groups.append(group)
                processed.update(m.id for m in group)

        return groups

    def _similar(self, words1: set[str], words2: set[str]) -> bool:
        union = words1 | words2
        if not union:
            return False
        return len(words1 & words2) / len(union) > self.similarity_threshold

    def _merge(self, group: list[MemoryEntry]) -> MemoryEntry:
        """合并一组记忆"""
        seed = group[0]
        group_ids = {m.id for m in group}

        tags: list[str] = []
        merged_from: list[str] = []
        related: list[str] = []
        child_ids: list[str] = []
        for member in group:
            tags.extend(t for t in member.tags if t not in tags)
            for original_id in [*member.merged_from, member.id]:
                if original_id not in merged_from:
                    merged_from.append(original_id)
            related.extend(r for r in member.related_memories if r not in related and r not in group_ids)
            child_ids.extend(c for c in member.child_ids if c not in child_ids)

        metadata = dict(seed.metadata)
        metadata["mergedFrom"] = merged_from
        metadata["mergedAt"] = datetime.now().isoformat()
        if related:
            metadata["relatedMemories"] = related
        else:
            metadata.pop("relatedMemories", None)

        return MemoryEntry(
            content=MERGE_SEPARATOR.join(m.content for m in group),
            kind=seed.kind,
            importance=max(m.importance for m in group),
            timestamp=max(m.timestamp for m in group),
            tags=tags,
            metadata=metadata,
            parent_id=seed.parent_id,
            child_ids=child_ids,
        )


def cluster_by_topic(entries: Iterable[MemoryEntry]) -> list[MemoryCluster]:
    """
    按主标签聚类

    主标签为第一个标签，没有标签的归入 "general"
    """
    clusters: dict[str, MemoryCluster] = {}
    for entry in entries:
        topic = entry.tags[0] if entry.tags else "general"
        cluster = clusters.get(topic)
        if cluster is None:
            cluster = clusters[topic] = MemoryCluster(topic=topic, importance=entry.importance,
                                                      last_updated=entry.timestamp)
        cluster.memory_ids.append(entry.id)
        cluster.importance = max(cluster.importance, entry.importance)
        if cluster.last_updated is None or entry.timestamp > cluster.last_updated:
            cluster.last_updated = entry.timestamp

    return list(clusters.values())

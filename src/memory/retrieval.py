# -*- coding: utf-8 -*-
"""
记忆检索

关键词打分：
- 完整查询短语命中 +10
- 每个查询词出现在内容中 +2
- 每个查询词命中标签 +3
- 加上记忆自身重要度
"""
import logging
from dataclasses import dataclass
from typing import Iterable

from .types import MemoryEntry

logger = logging.getLogger('memory.retrieval')

EXACT_MATCH_SCORE = 10
WORD_MATCH_SCORE = 2
TAG_MATCH_SCORE = 3
MIN_SCORE = 5


@dataclass
class RetrievalResult:
    """检索结果"""
    entry: MemoryEntry
    score: int


def score_entry(entry: MemoryEntry, query: str) -> int:
    """计算单条记忆对查询的得分"""
    query_lower = query.lower().strip()
    content = entry.content.lower()
    tags = [tag.lower() for tag in entry.tags]
    score = 0

    if query_lower and query_lower in content:
        score += EXACT_MATCH_SCORE

    for word in query_lower.split():
        if word in content:
            score += WORD_MATCH_SCORE
        if any(word in tag for tag in tags):
            score += TAG_MATCH_SCORE

    return score + entry.importance


def rank(entries: Iterable[MemoryEntry], query: str, limit: int = 20) -> list[RetrievalResult]:
    """
    对记忆排序

    Args:
        entries: 候选记忆
        query: 查询
        limit: 返回上限

    Returns:
        分数 > 5 的结果，分数降序，同分时较新的在前
    """
    if not query or not query.strip():
        return []

    results = []
    for entry in entries:
        score = score_entry(entry, query)
        if score > MIN_SCORE:
            results.append(RetrievalResult(entry=entry, score=score))

    results.sort(key=lambda r: (r.score, r.entry.timestamp), reverse=True)
    logger.debug(f"检索 '{query}' 命中 {len(results)} 条")
    return results[:limit]

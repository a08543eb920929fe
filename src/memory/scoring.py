# -*- coding: utf-8 -*-
"""
记忆评分

- 重要度：基础分 + 信号类别命中
- 标签增强：话题关键词 + 年月标签
- 关联发现：标签/词汇/类型/时间接近度打分
"""
import re
from datetime import datetime
from typing import Iterable

from .types import MemoryEntry, MemoryKind, clamp_importance

# 信号类别：每命中一个类别 +1
SIGNAL_CATEGORIES: dict[str, tuple[str, ...]] = {
    "urgency": ("error", "critical", "urgent", "important", "asap", "crash", "failed",
                "错误", "紧急", "重要", "失败"),
    "question": ("?", "？", "how", "why", "what", "怎么", "为什么", "什么"),
    "code": ("function", "class", "import", "code", "函数", "代码"),
    "emotional": ("love", "hate", "excited", "frustrated", "happy", "sad", "angry", "worried",
                  "喜欢", "讨厌", "开心", "难过", "生气"),
}

ERROR_TERMS: tuple[str, ...] = ("error", "exception", "failed", "failure", "crash", "错误", "异常", "失败")

# 话题标签：命中任一关键词即添加
TOPIC_TAGS: dict[str, tuple[str, ...]] = {
    "programming": ("function", "method", "code", "class", "函数", "代码"),
    "debugging": ("error", "bug", "debug", "错误", "调试"),
    "api": ("api", "endpoint", "接口"),
    "database": ("database", "sql", "数据库"),
    "learning": ("learn", "understand", "学习"),
    "research": ("research", "study", "研究"),
    "problem-solving": ("problem", "issue", "问题"),
    "achievement": ("success", "completed", "成功", "完成"),
}

WORD_PATTERN = re.compile(r'[^\w\s]')


def mentions(text: str, term: str) -> bool:
    """
    判断文本是否提到某个词

    英文词按词首匹配（"how" 不会命中 "show"，"error" 会命中 "errors"），
    标点和中文按子串匹配
    """
    if term.isascii() and term.isalpha():
        return re.search(r'\b' + re.escape(term), text) is not None
    return term in text


def mentions_any(text: str, terms: Iterable[str]) -> bool:
    return any(mentions(text, term) for term in terms)


def matched_signals(content: str) -> list[str]:
    """返回命中的信号类别"""
    text = content.lower()
    return [name for name, terms in SIGNAL_CATEGORIES.items() if mentions_any(text, terms)]


def calculate_importance(entry: MemoryEntry) -> int:
    """
    计算重要度

    基础分（调用方给出，默认 5）
    + 每个命中的信号类别 +1
    + 用户交互 +1
    + 系统事件且提到错误 +2
    结果限制在 [1, 10]
    """
    importance = entry.importance
    importance += len(matched_signals(entry.content))

    if entry.kind == MemoryKind.INTERACTION:
        importance += 1

    if entry.kind == MemoryKind.SYSTEM and mentions_any(entry.content.lower(), ERROR_TERMS):
        importance += 2

    return clamp_importance(importance)


def derive_tags(content: str, timestamp: datetime) -> list[str]:
    """根据内容自动生成标签"""
    text = content.lower()
    tags = [tag for tag, terms in TOPIC_TAGS.items() if mentions_any(text, terms)]
    tags.append(timestamp.strftime("%Y-%m"))
    return tags


def enhance_tags(entry: MemoryEntry) -> list[str]:
    """合并调用方标签和自动标签并去重（保留调用方标签在前）"""
    merged: list[str] = []
    for tag in list(entry.tags) + derive_tags(entry.content, entry.timestamp):
        if tag and tag not in merged:
            merged.append(tag)
    return merged


def content_words(content: str, min_length: int = 4) -> set[str]:
    """按空白切分的内容词（用于关联打分）"""
    return {w for w in content.lower().split() if len(w) >= min_length}


def extract_words(text: str) -> set[str]:
    """去标点后的词集合（用于相似度计算）"""
    return {w for w in WORD_PATTERN.sub(' ', text.lower()).split() if len(w) > 2}


def jaccard_similarity(text1: str, text2: str) -> float:
    """两段文本词集合的 Jaccard 相似度"""
    words1 = extract_words(text1)
    words2 = extract_words(text2)
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


def relation_score(entry: MemoryEntry, other: MemoryEntry) -> int:
    """两条记忆的关联分数"""
    score = 0

    shared_tags = set(entry.tags) & set(other.tags)
    score += len(shared_tags) * 2

    score += len(content_words(entry.content) & content_words(other.content))

    if entry.kind == other.kind:
        score += 1

    days = abs((entry.timestamp - other.timestamp).total_seconds()) / 86400
    if days < 1:
        score += 2
    elif days < 7:
        score += 1

    return score


def find_related(
    entry: MemoryEntry,
    candidates: Iterable[MemoryEntry],
    limit: int = 5,
    min_score: int = 3
) -> list[str]:
    """
    查找关联记忆

    Args:
        entry: 新记忆
        candidates: 其他记忆
        limit: 最多返回数量
        min_score: 分数需大于该值

    Returns:
        关联记忆ID（分数降序，同分时较新的在前）
    """
    scored = []
    for other in candidates:
        if other.id == entry.id:
            continue
        score = relation_score(entry, other)
        if score > min_score:
            scored.append((score, other.timestamp, other.id))

    scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
    return [memory_id for _, _, memory_id in scored[:limit]]

# -*- coding: utf-8 -*-
"""
思考检测器

每个检测器独立观察 SystemState，每次最多产生一个 Thought
"""
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from datetime import timedelta
from typing import Optional

from ..config import ReasoningConfig
from ..memory.scoring import extract_words
from ..memory.types import MemoryEntry, MemoryKind
from .types import SystemState, Thought, ThoughtType

logger = logging.getLogger('reasoning.detectors')

FALLBACK_PROVIDER = "fallback"

QUESTION_STARTERS = ("how", "why", "what", "when", "where", "which", "who", "can", "could", "should", "is", "are", "do", "does")
USER_PREFIX = re.compile(r'^\s*user\s*:\s*', re.IGNORECASE)
MONTH_TAG = re.compile(r'^\d{4}-\d{2}$')

STOPWORDS = {
    "that", "this", "with", "from", "have", "what", "when", "where", "which", "there", "their",
    "about", "would", "could", "should", "does", "doing", "into", "your", "them", "then", "than",
    "user", "please", "just", "make", "like", "want",
}


class Detector(ABC):
    """检测器基类"""

    name: str = "detector"

    def __init__(self, config: Optional[ReasoningConfig] = None):
        self.config = config or ReasoningConfig()

    @abstractmethod
    def detect(self, state: SystemState) -> Optional[Thought]:
        raise NotImplementedError("Subclasses must implement detect()")


class IdleDetector(Detector):
    """没有执行中的动作"""

    name = "idle"

    def detect(self, state: SystemState) -> Optional[Thought]:
        if state.executing_actions > 0:
            return None
        return Thought(
            content="No actions are running. I can look for ways to be helpful or learn something new.",
            thought_type=ThoughtType.OBSERVATION,
            importance=4,
            tags=["autonomous", "idle"],
            reasoning="Idle time is an opportunity for proactive engagement",
        )


class HighInteractionDetector(Detector):
    """过去一小时交互数超过阈值"""

    name = "high_interaction"

    def detect(self, state: SystemState) -> Optional[Thought]:
        since = state.now - timedelta(hours=1)
        interactions = [
            e for e in state.window
            if e.kind == MemoryKind.INTERACTION and e.timestamp >= since
        ]
        if len(interactions) <= self.config.interaction_threshold:
            return None

        topics = Counter(
            tag for e in interactions for tag in e.tags
            if not MONTH_TAG.match(tag)
        )
        topic = topics.most_common(1)[0][0] if topics else "recent conversations"

        return Thought(
            content=f"High interaction volume ({len(interactions)} in the past hour). "
                    "I should consolidate what I've learned and look for patterns.",
            thought_type=ThoughtType.INSIGHT,
            importance=7,
            tags=["autonomous", "learning", "analysis"],
            action_required=True,
            reasoning="Frequent interactions provide rich learning opportunities",
            action_description=f"Learn from recent conversations about {topic}",
            metadata={"topic": topic, "interactions": len(interactions)},
        )


def is_user_question(entry: MemoryEntry) -> bool:
    """用户在交互中提出的问题"""
    if entry.kind != MemoryKind.INTERACTION or entry.metadata.get("role", "user") != "user":
        return False
    text = USER_PREFIX.sub("", entry.content).strip().lower()
    if "?" in text or "？" in text:
        return True
    first = text.split(" ", 1)[0] if text else ""
    return first in QUESTION_STARTERS


def answered_ids(entries: list[MemoryEntry]) -> set[str]:
    """被非兜底提供方回答过的问题ID"""
    answered = set()
    for entry in entries:
        reply_to = entry.metadata.get("in_reply_to")
        provider = entry.metadata.get("provider")
        if entry.kind == MemoryKind.INTERACTION and reply_to and provider and provider != FALLBACK_PROVIDER:
            answered.add(reply_to)
    return answered


def topic_words(text: str) -> set[str]:
    text = USER_PREFIX.sub("", text)
    return {w for w in extract_words(text) if len(w) > 3 and w not in STOPWORDS}


class LearningOpportunityDetector(Detector):
    """同一话题词在多个未解答问题中重复出现"""

    name = "learning_opportunity"

    def detect(self, state: SystemState) -> Optional[Thought]:
        answered = answered_ids(state.window)
        unanswered = [e for e in state.window if is_user_question(e) and e.id not in answered]
        if len(unanswered) < self.config.question_repeat_threshold:
            return None

        counts: Counter = Counter()
        for question in unanswered:
            counts.update(topic_words(question.content))

        candidates = [
            (count, word) for word, count in counts.items()
            if count >= self.config.question_repeat_threshold
        ]
        if not candidates:
            return None

        # 次数多的优先，同次数按字母序
        count, topic = min(candidates, key=lambda item: (-item[0], item[1]))
        return Thought(
            content=f"'{topic}' came up in {count} unanswered questions. I should research it.",
            thought_type=ThoughtType.PLAN,
            importance=8,
            tags=["autonomous", "learning", "growth", topic],
            action_required=True,
            reasoning="Repeated unanswered questions point to a knowledge gap",
            action_description=f"Research '{topic}' and prepare an answer to the repeated questions",
            metadata={"topic": topic, "questions": count},
        )


class ProviderDegradedDetector(Detector):
    """排名最高的提供方不可用"""

    name = "provider_degraded"

    def detect(self, state: SystemState) -> Optional[Thought]:
        if state.top_provider is None or state.top_provider_available:
            return None
        return Thought(
            content=f"Provider '{state.top_provider}' is unavailable. Running on "
                    f"'{state.preferred_provider}' and watching for reconnection.",
            thought_type=ThoughtType.REFLECTION,
            importance=7,
            tags=["autonomous", "system", "adaptation"],
            reasoning="System resilience requires adaptive responses to component failures",
        )


class TemporalDetector(Detector):
    """当前处于活跃时段"""

    name = "temporal"

    def detect(self, state: SystemState) -> Optional[Thought]:
        start, end = self.config.active_hours
        if not start <= state.now.hour <= end:
            return None
        return Thought(
            content="Working hours. I should be extra attentive and proactive.",
            thought_type=ThoughtType.OBSERVATION,
            importance=5,
            tags=["autonomous", "scheduling", "attention"],
            reasoning="User activity is usually higher during working hours",
        )


def default_detectors(config: Optional[ReasoningConfig] = None) -> list[Detector]:
    return [
        IdleDetector(config),
        HighInteractionDetector(config),
        LearningOpportunityDetector(config),
        ProviderDegradedDetector(config),
        TemporalDetector(config),
    ]

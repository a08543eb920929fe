# -*- coding: utf-8 -*-
"""
意图识别 - 关键词规则

两步：
1. 显式命令（任务、记忆、状态、取消动作）直接由核心处理
2. 其他输入按关键词选择提供方模式（code / research / reasoning / general）
"""
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..memory.scoring import mentions_any

logger = logging.getLogger('chat.intent')


class IntentType(Enum):
    """意图类型"""
    TASK_CREATE = "task_create"        # create task / add task
    TASK_LIST = "task_list"            # list tasks / show tasks
    ACTION_CANCEL = "action_cancel"    # cancel action <id>
    STATUS = "status"                  # status
    MEMORY_SAVE = "memory_save"        # remember that ...
    MEMORY_SEARCH = "memory_search"    # recall ... / do you remember ...
    CODE = "code"
    RESEARCH = "research"
    REASONING = "reasoning"
    GENERAL = "general"

    @property
    def is_command(self) -> bool:
        return self not in (IntentType.CODE, IntentType.RESEARCH, IntentType.REASONING, IntentType.GENERAL)

    @property
    def mode(self) -> str:
        """对应的提供方模式"""
        if self in (IntentType.CODE, IntentType.RESEARCH, IntentType.REASONING):
            return self.value
        return "general"


@dataclass
class IntentResult:
    """意图识别结果"""
    intent_type: IntentType
    confidence: float = 1.0
    content: str = ""
    argument: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)


class IntentClassifier:
    """
    规则意图分类器

    命令按正则匹配，模式按关键词匹配（英文按词首，中文按子串）
    """

    COMMAND_PATTERNS: list[tuple[IntentType, re.Pattern]] = [
        (IntentType.TASK_CREATE, re.compile(r'^\s*(?:create|add|new)\s+task\s*[:：]?\s*(?P<arg>.*)$', re.IGNORECASE | re.DOTALL)),
        (IntentType.TASK_CREATE, re.compile(r'^\s*(?:创建|添加|新建)任务\s*[:：]?\s*(?P<arg>.*)$', re.DOTALL)),
        (IntentType.TASK_LIST, re.compile(r'^\s*(?:list|show)\s+(?:my\s+)?tasks\b', re.IGNORECASE)),
        (IntentType.TASK_LIST, re.compile(r'^\s*(?:任务列表|查看任务)')),
        (IntentType.ACTION_CANCEL, re.compile(r'^\s*cancel\s+action\s+(?P<arg>\S+)', re.IGNORECASE)),
        (IntentType.STATUS, re.compile(r'^\s*(?:status|状态)\s*[?？]?\s*$', re.IGNORECASE)),
        (IntentType.MEMORY_SAVE, re.compile(r'^\s*(?:please\s+)?remember\s+(?:that\s+)?(?P<arg>.+)$', re.IGNORECASE | re.DOTALL)),
        (IntentType.MEMORY_SAVE, re.compile(r'^\s*记住\s*[:：]?\s*(?P<arg>.+)$', re.DOTALL)),
        (IntentType.MEMORY_SEARCH, re.compile(r'^\s*(?:recall|search memory|search memories)\s*[:：]?\s*(?P<arg>.*)$', re.IGNORECASE | re.DOTALL)),
        (IntentType.MEMORY_SEARCH, re.compile(r'^\s*(?:what\s+)?do you remember(?:\s+about)?\s*(?P<arg>.*?)[?？]?\s*$', re.IGNORECASE | re.DOTALL)),
        (IntentType.MEMORY_SEARCH, re.compile(r'^\s*(?:回忆|搜索记忆)\s*[:：]?\s*(?P<arg>.*)$', re.DOTALL)),
    ]

    # 按顺序检查，先命中先返回
    MODE_KEYWORDS: list[tuple[IntentType, float, tuple[str, ...]]] = [
        (IntentType.CODE, 0.9, (
            "function", "class", "variable", "method", "code", "programming", "debug",
            "error", "bug", "syntax", "compile", "algorithm", "refactor",
            "javascript", "python", "typescript", "api", "database",
            "函数", "代码", "编程", "调试",
        )),
        (IntentType.RESEARCH, 0.85, (
            "research", "study", "investigate", "explore", "learn about",
            "find information", "what is", "how does", "why does", "explain",
            "compare", "contrast", "review",
            "研究", "调研", "解释", "比较",
        )),
        (IntentType.REASONING, 0.8, (
            "think", "reason", "analyze", "logic", "therefore", "conclude",
            "deduce", "infer", "hypothesis", "prove", "justify", "what if", "evaluate",
            "推理", "分析", "逻辑",
        )),
    ]

    def analyze(self, user_input: str) -> IntentResult:
        """
        分析用户输入

        Args:
            user_input: 用户输入

        Returns:
            意图识别结果
        """
        text = user_input.strip()

        for intent_type, pattern in self.COMMAND_PATTERNS:
            match = pattern.match(text)
            if match:
                argument = (match.groupdict().get("arg") or "").strip()
                logger.debug(f"命令意图: {intent_type.value} ({argument!r})")
                return IntentResult(intent_type=intent_type, content=user_input, argument=argument)

        lowered = text.lower()
        for intent_type, confidence, keywords in self.MODE_KEYWORDS:
            if mentions_any(lowered, keywords):
                return IntentResult(intent_type=intent_type, confidence=confidence, content=user_input)

        return IntentResult(intent_type=IntentType.GENERAL, confidence=0.6, content=user_input)


def parse_task_title(argument: str) -> tuple[str, str]:
    """
    拆分任务标题与描述

    "title - details" / "title: details" → ("title", "details")
    """
    for separator in (" - ", ": ", "："):
        if separator in argument:
            title, description = argument.split(separator, 1)
            return title.strip(), description.strip()
    return argument.strip(), ""


def extract_priority(argument: str) -> tuple[str, Optional[str]]:
    """从任务文本中取出 "!high" / "priority: high" 形式的优先级"""
    match = re.search(r'(?:!|priority\s*[:=]\s*)(critical|high|medium|low)\b', argument, re.IGNORECASE)
    if not match:
        return argument, None
    cleaned = (argument[:match.start()] + argument[match.end():]).strip()
    return re.sub(r'\s{2,}', ' ', cleaned), match.group(1).lower()

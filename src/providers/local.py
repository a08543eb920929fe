# -*- coding: utf-8 -*-
"""
本地兜底提供方

纯本地计算，不访问网络，永不失败；同样的输入得到同样的输出
"""
import logging
import re
from typing import Optional

from .base import Provider

logger = logging.getLogger('providers.local')

MAX_ECHO_LENGTH = 120

# (关键词, 回复) 按顺序匹配第一条
CANNED_REPLIES: list[tuple[tuple[str, ...], str]] = [
    (("hello", "hi", "hey", "你好"),
     "Hello! I'm running in offline mode right now, but I'm still keeping track of everything you tell me."),
    (("help", "what can you do", "帮助"),
     "I can remember things (remember ...), search memory (recall ...), manage tasks "
     "(create task ..., list tasks) and report status (status)."),
    (("thank", "thanks", "谢谢"),
     "You're welcome!"),
]


class LocalFallbackProvider(Provider):
    """本地兜底提供方"""

    name = "fallback"
    model = "nova-core"
    networked = False

    async def check_connection(self) -> bool:
        return True

    async def generate(self, prompt: str, model_hint: Optional[str] = None) -> str:
        return self.respond(prompt)

    def respond(self, prompt: str) -> str:
        """根据提示生成确定性回复"""
        request = self._last_user_line(prompt)
        lowered = request.lower()

        for keywords, reply in CANNED_REPLIES:
            if any(_matches(lowered, k) for k in keywords):
                return reply

        echo = request if len(request) <= MAX_ECHO_LENGTH else request[:MAX_ECHO_LENGTH] + "..."
        return (
            "No language model is reachable at the moment, so I can't give a full answer. "
            f"I've saved your request and will follow up on it: \"{echo}\""
        )

    @staticmethod
    def _last_user_line(prompt: str) -> str:
        """取出提示中最后一条用户输入（去掉上下文和模式说明）"""
        lines = [line.strip() for line in prompt.strip().splitlines() if line.strip()]
        for line in reversed(lines):
            if line.lower().startswith("user:"):
                return line[5:].strip()
        return lines[-1] if lines else ""


def _matches(text: str, keyword: str) -> bool:
    """英文关键词按整词匹配（"hi" 不命中 "this"），中文按子串"""
    if keyword.isascii():
        return re.search(r'\b' + re.escape(keyword) + r'\b', text) is not None
    return keyword in text

# -*- coding: utf-8 -*-
"""
Gemini 远程 API
"""
import logging
from typing import Optional

import aiohttp

from ..core.exceptions import ProviderError
from .base import Provider

logger = logging.getLogger('providers.gemini')


class GeminiProvider(Provider):
    """
    Gemini 提供方

    - 探测: GET {base_url}/models?key=...
    - 生成: POST {base_url}/models/{model}:generateContent?key=...
    """

    name = "gemini"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-1.5-flash",
        probe_timeout: float = 3.0,
        request_timeout: float = 30.0
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.probe_timeout = probe_timeout
        self.request_timeout = request_timeout

    async def check_connection(self) -> bool:
        if not self.api_key:
            return False
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.base_url}/models",
                    params={"key": self.api_key},
                    timeout=aiohttp.ClientTimeout(total=self.probe_timeout)
                ) as response:
                    return response.status == 200
        except Exception as e:
            logger.debug(f"Gemini 不可用: {e}")
            return False

    async def generate(self, prompt: str, model_hint: Optional[str] = None) -> str:
        if not self.api_key:
            raise ProviderError("未配置 GEMINI_API_KEY", provider=self.name)

        model = model_hint or self.model
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": 0.7,
                "topK": 40,
                "topP": 0.95,
                "maxOutputTokens": 2048,
            },
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/models/{model}:generateContent",
                    params={"key": self.api_key},
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout)
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise ProviderError(
                            f"Gemini API 错误 ({response.status}): {body[:200]}",
                            provider=self.name,
                            status_code=response.status
                        )
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise ProviderError(f"Gemini 请求失败: {e}", provider=self.name) from e

        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Gemini 响应格式无效", provider=self.name) from e

# -*- coding: utf-8 -*-
"""
Ollama 本地模型服务
"""
import logging
from typing import Optional

import aiohttp

from ..core.exceptions import ProviderError
from .base import Provider

logger = logging.getLogger('providers.ollama')


class OllamaProvider(Provider):
    """
    Ollama 提供方

    - 探测: GET {base_url}/api/tags
    - 生成: POST {base_url}/api/generate (stream=false)
    """

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1",
        probe_timeout: float = 3.0,
        request_timeout: float = 30.0
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.probe_timeout = probe_timeout
        self.request_timeout = request_timeout
        self.available_models: list[str] = []

    async def check_connection(self) -> bool:
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    f"{self.base_url}/api/tags",
                    timeout=aiohttp.ClientTimeout(total=self.probe_timeout)
                ) as response:
                    if response.status != 200:
                        return False
                    data = await response.json()
                    self.available_models = [m.get("name", "") for m in data.get("models", [])]
                    return True
        except Exception as e:
            logger.debug(f"Ollama 不可用: {e}")
            return False

    async def generate(self, prompt: str, model_hint: Optional[str] = None) -> str:
        payload = {
            "model": model_hint or self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": 0.7, "top_p": 0.9, "top_k": 40},
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    f"{self.base_url}/api/generate",
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout)
                ) as response:
                    if response.status != 200:
                        body = await response.text()
                        raise ProviderError(
                            f"Ollama API 错误 ({response.status}): {body[:200]}",
                            provider=self.name,
                            status_code=response.status
                        )
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise ProviderError(f"Ollama 请求失败: {e}", provider=self.name) from e

        text = data.get("response")
        if not text:
            raise ProviderError("Ollama 返回空内容", provider=self.name)
        return text

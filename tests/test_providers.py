# -*- coding: utf-8 -*-
"""
联网提供方测试（HTTP 会话全部 Mock）
"""
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from src.core.exceptions import ProviderError
from src.providers import GeminiProvider, OllamaProvider


def fake_session(status=200, json_data=None, text=""):
    """构造 aiohttp.ClientSession 的 Mock"""
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)

    session = MagicMock()
    session.get.return_value.__aenter__.return_value = response
    session.post.return_value.__aenter__.return_value = response

    session_cls = MagicMock()
    session_cls.return_value.__aenter__.return_value = session
    return session_cls, session


class TestOllamaProvider:
    """测试 Ollama 提供方"""

    @pytest.mark.asyncio
    async def test_check_connection(self):
        """测试探测并记录模型列表"""
        session_cls, session = fake_session(json_data={"models": [{"name": "llama3.1"}]})
        provider = OllamaProvider(base_url="http://ollama:11434/")

        with patch('src.providers.ollama.aiohttp.ClientSession', session_cls):
            assert await provider.check_connection()

        assert provider.available_models == ["llama3.1"]
        assert session.get.call_args.args[0] == "http://ollama:11434/api/tags"

    @pytest.mark.asyncio
    async def test_generate(self):
        """测试生成"""
        session_cls, session = fake_session(json_data={"response": "pong"})
        provider = OllamaProvider(model="mistral")

        with patch('src.providers.ollama.aiohttp.ClientSession', session_cls):
            assert await provider.generate("ping") == "pong"

        payload = session.post.call_args.kwargs["json"]
        assert payload["model"] == "mistral"
        assert payload["stream"] is False

    @pytest.mark.asyncio
    async def test_http_error(self):
        """测试非 200 状态"""
        session_cls, _ = fake_session(status=500, text="internal")

        with patch('src.providers.ollama.aiohttp.ClientSession', session_cls):
            with pytest.raises(ProviderError) as exc_info:
                await OllamaProvider().generate("ping")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_empty_response(self):
        """测试空内容视为失败"""
        session_cls, _ = fake_session(json_data={"response": ""})

        with patch('src.providers.ollama.aiohttp.ClientSession', session_cls):
            with pytest.raises(ProviderError):
                await OllamaProvider().generate("ping")

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        """测试连接失败"""
        session_cls, _ = fake_session()
        session_cls.return_value.__aenter__.side_effect = aiohttp.ClientConnectionError("refused")
        provider = OllamaProvider()

        with patch('src.providers.ollama.aiohttp.ClientSession', session_cls):
            assert not await provider.check_connection()
            with pytest.raises(ProviderError):
                await provider.generate("ping")


class TestGeminiProvider:
    """测试 Gemini 提供方"""

    @pytest.mark.asyncio
    async def test_no_key(self):
        """测试没有密钥"""
        provider = GeminiProvider(api_key=None)

        assert not await provider.check_connection()
        with pytest.raises(ProviderError):
            await provider.generate("hi")

    @pytest.mark.asyncio
    async def test_generate(self):
        """测试解析候选结果"""
        data = {"candidates": [{"content": {"parts": [{"text": "bonjour"}]}}]}
        session_cls, session = fake_session(json_data=data)
        provider = GeminiProvider(api_key="k", model="gemini-pro")

        with patch('src.providers.gemini.aiohttp.ClientSession', session_cls):
            assert await provider.generate("hello") == "bonjour"

        assert session.post.call_args.args[0].endswith("/models/gemini-pro:generateContent")
        assert session.post.call_args.kwargs["params"] == {"key": "k"}

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        """测试响应格式无效"""
        session_cls, _ = fake_session(json_data={"candidates": []})

        with patch('src.providers.gemini.aiohttp.ClientSession', session_cls):
            with pytest.raises(ProviderError):
                await GeminiProvider(api_key="k").generate("hello")

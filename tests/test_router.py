# -*- coding: utf-8 -*-
"""
提供方路由测试
"""
import asyncio
from typing import Optional

import pytest

from src.bus import EventBus, EventKind
from src.config import ProviderConfig
from src.core.exceptions import ProviderError
from src.providers import LocalFallbackProvider, Provider, ProviderRouter
from src.providers.router import IDENTITY_PROVIDER, LAST_RESORT_REPLY


class StubProvider(Provider):
    """可控的测试提供方"""

    def __init__(
        self,
        name: str,
        available: bool = True,
        reply: Optional[str] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        probe_error: Optional[Exception] = None,
        networked: bool = True
    ):
        self.name = name
        self.model = f"{name}-model"
        self.networked = networked
        self.available = available
        self.reply = reply or f"reply from {name}"
        self.error = error
        self.delay = delay
        self.probe_error = probe_error
        self.prompts: list[str] = []
        self.closed = False

    async def check_connection(self) -> bool:
        if self.probe_error:
            raise self.probe_error
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.available

    async def generate(self, prompt: str, model_hint: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestProviderRouter:
    """测试提供方路由"""

    @pytest.mark.asyncio
    async def test_unreachable_chain_uses_fallback(self):
        """测试全部不可达时返回本地兜底的确定性回复"""
        local = StubProvider("ollama", available=False)
        remote = StubProvider("gemini", available=False)
        router = ProviderRouter([local, remote])

        assert await router.initialize() == "fallback"
        response = await router.process_request("Summarize the quarterly report")

        expected = LocalFallbackProvider().respond("User: Summarize the quarterly report")
        assert response.content == expected
        assert response.provider == "fallback"
        assert response.fallback_used
        assert local.prompts == [] and remote.prompts == []

    @pytest.mark.asyncio
    async def test_preferred_is_highest_ranked_available(self):
        """测试首选为排名最高的可用提供方"""
        router = ProviderRouter([
            StubProvider("ollama", available=False),
            StubProvider("gemini"),
        ])

        assert await router.initialize() == "gemini"
        response = await router.process_request("hi there")
        assert response.provider == "gemini"
        assert response.content == "reply from gemini"
        assert not response.fallback_used

    @pytest.mark.asyncio
    async def test_failover_marks_provider_unavailable(self):
        """测试调用失败后降级并更新首选"""
        bus = EventBus()
        changes = []
        bus.subscribe(EventKind.PROVIDER_CHANGED, lambda event: changes.append(event.payload.name))

        first = StubProvider("ollama", error=ProviderError("boom", provider="ollama"))
        second = StubProvider("gemini")
        router = ProviderRouter([first, second], bus=bus)
        await router.initialize()

        response = await router.process_request("explain recursion")

        assert response.provider == "gemini"
        assert response.attempts == ["ollama", "gemini"]
        assert router.preferred == "gemini"
        descriptors = {d.name: d for d in router.descriptors()}
        assert not descriptors["ollama"].available
        assert descriptors["ollama"].last_error == "boom"
        assert changes == ["ollama", "gemini"]
        assert router.get_stats()["failures"] == {"ollama": 1}

    @pytest.mark.asyncio
    async def test_never_raises(self):
        """测试所有提供方包括兜底都失败时仍返回回复"""
        broken_fallback = StubProvider("fallback", networked=False, error=RuntimeError("dead"))
        router = ProviderRouter(
            [StubProvider("ollama", error=RuntimeError("down"))],
            fallback=broken_fallback,
        )
        await router.initialize()

        response = await router.process_request("anything")

        assert response.content == LAST_RESORT_REPLY
        assert response.fallback_used
        assert response.attempts == ["ollama", "fallback"]

    @pytest.mark.asyncio
    async def test_probe_errors_mean_unavailable(self):
        """测试探测异常和超时都视为不可用"""
        raising = StubProvider("ollama", probe_error=ConnectionError("refused"))
        slow = StubProvider("gemini", delay=0.5)
        router = ProviderRouter([raising, slow], config=ProviderConfig(probe_timeout=0.01))

        assert await router.initialize() == "fallback"
        descriptors = {d.name: d for d in router.descriptors()}
        assert descriptors["ollama"].last_error == "refused"
        assert descriptors["gemini"].last_error == "probe timed out"
        assert descriptors["fallback"].available

    @pytest.mark.asyncio
    async def test_request_timeout_falls_through(self):
        """测试请求超时后降级"""
        slow = StubProvider("ollama")
        router = ProviderRouter([slow], config=ProviderConfig(request_timeout=0.01))
        await router.initialize()
        slow.delay = 0.5

        response = await router.process_request("hello")

        assert response.provider == "fallback"
        assert router.preferred == "fallback"

    @pytest.mark.asyncio
    async def test_identity_question(self):
        """测试身份问题不经过提供方"""
        provider = StubProvider("ollama")
        router = ProviderRouter([provider], assistant_name="NOVA")
        await router.initialize()

        response = await router.process_request("Who made you?")

        assert response.provider == IDENTITY_PROVIDER
        assert "NOVA" in response.content
        assert provider.prompts == []
        assert router.is_identity_question("谁开发了你")
        assert not router.is_identity_question("who made this cake?")

    @pytest.mark.asyncio
    async def test_force_provider(self):
        """测试强制指定提供方"""
        router = ProviderRouter([StubProvider("ollama"), StubProvider("gemini")])
        await router.initialize()

        assert (await router.process_request("x", force_provider="gemini")).provider == "gemini"
        assert (await router.process_request("x", force_provider="nope")).provider == "ollama"

    @pytest.mark.asyncio
    async def test_reprobe_rate_limited(self):
        """测试重新探测限频与恢复"""
        clock = FakeClock()
        local = StubProvider("ollama", available=False)
        router = ProviderRouter([local], config=ProviderConfig(reprobe_interval=300), clock=clock)
        await router.initialize()
        assert router.preferred == "fallback"

        local.available = True
        clock.now = 10
        assert not await router.maybe_reprobe()
        assert router.preferred == "fallback"

        clock.now = 301
        assert await router.maybe_reprobe()
        assert router.preferred == "ollama"
        assert await router.maybe_reprobe(force=True)

    @pytest.mark.asyncio
    async def test_set_preferred(self):
        """测试手动指定首选"""
        router = ProviderRouter([StubProvider("ollama"), StubProvider("gemini", available=False)])
        await router.initialize()

        assert not await router.set_preferred("gemini")
        assert not await router.set_preferred("missing")
        assert await router.set_preferred("fallback")
        assert router.preferred == "fallback"

    def test_duplicate_names_rejected(self):
        """测试提供方名称重复"""
        with pytest.raises(ValueError):
            ProviderRouter([StubProvider("ollama"), StubProvider("ollama")])

    def test_build_prompt(self):
        """测试提示拼装"""
        router = ProviderRouter([])

        assert router.build_prompt("hi") == "User: hi"
        code = router.build_prompt("sort a list", mode="code", context="User: earlier")
        assert code.startswith("You are an expert programmer")
        assert "User: earlier" in code
        assert code.endswith("User: sort a list")

    @pytest.mark.asyncio
    async def test_unknown_mode_is_general(self):
        """测试未知模式按 general 处理"""
        provider = StubProvider("ollama")
        router = ProviderRouter([provider])
        await router.initialize()

        response = await router.process_request("question", mode="poetry")

        assert response.mode == "general"
        assert provider.prompts == ["User: question"]

    @pytest.mark.asyncio
    async def test_close(self):
        """测试关闭释放提供方"""
        provider = StubProvider("ollama")
        router = ProviderRouter([provider])
        await router.close()
        assert provider.closed


class TestLocalFallbackProvider:
    """测试本地兜底"""

    def test_deterministic(self):
        """测试同样输入同样输出"""
        provider = LocalFallbackProvider()
        assert provider.respond("User: plan my week") == provider.respond("User: plan my week")
        assert "plan my week" in provider.respond("context line\n\nUser: plan my week")

    def test_canned_replies(self):
        """测试固定回复"""
        provider = LocalFallbackProvider()
        assert provider.respond("User: hello").startswith("Hello!")
        assert provider.respond("User: thanks a lot") == "You're welcome!"
        assert not provider.respond("User: check this function").startswith("Hello!")

    def test_long_request_truncated(self):
        """测试长输入截断"""
        reply = LocalFallbackProvider().respond("User: " + "x" * 300)
        assert "x" * 120 + "..." in reply

    @pytest.mark.asyncio
    async def test_always_available(self):
        """测试始终可用"""
        assert await LocalFallbackProvider().check_connection()

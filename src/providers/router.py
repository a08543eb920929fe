# -*- coding: utf-8 -*-
"""
AI 提供方路由

固定排名的提供方链，失败时按排名依次降级，最后落到本地兜底
"""
import asyncio
import copy
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..bus import EventBus, EventKind
from ..config import ProviderConfig
from .base import Provider, ProviderDescriptor, ProviderResponse
from .local import LocalFallbackProvider

logger = logging.getLogger('providers.router')

IDENTITY_PROVIDER = "identity"

# 身份类问题直接返回固定回复，不经过任何提供方
IDENTITY_PATTERNS = [
    re.compile(r"who (made|created|built) you", re.IGNORECASE),
    re.compile(r"who is your (creator|author|founder|maker)", re.IGNORECASE),
    re.compile(r"who's your (creator|author|founder|maker)", re.IGNORECASE),
    re.compile(r"who developed you", re.IGNORECASE),
    re.compile(r"who owns you", re.IGNORECASE),
    re.compile(r"who is behind you", re.IGNORECASE),
    re.compile(r"who designed you", re.IGNORECASE),
    re.compile(r"谁(创造|开发|制作)了你"),
]

MODE_PROMPTS = {
    "general": "",
    "code": "You are an expert programmer. Provide clean, working code with a brief explanation.",
    "research": "Research the following topic thoroughly and summarize the key findings.",
    "reasoning": "Please analyze this logically and provide detailed reasoning.",
}

LAST_RESORT_REPLY = "I'm having trouble processing that right now. Please try again in a moment."


@dataclass
class RouterStats:
    """路由统计"""
    total_requests: int = 0
    identity_responses: int = 0
    fallback_responses: int = 0
    successes: dict[str, int] = field(default_factory=dict)
    failures: dict[str, int] = field(default_factory=dict)
    probes: int = 0
    last_error: Optional[str] = None


class ProviderRouter:
    """
    提供方路由器

    - 唯一持有 ProviderDescriptor 状态，对外只返回副本
    - process_request 永不抛异常
    - 重新探测有最小间隔，避免反复连接不可达的服务
    """

    def __init__(
        self,
        providers: list[Provider],
        fallback: Optional[Provider] = None,
        bus: Optional[EventBus] = None,
        config: Optional[ProviderConfig] = None,
        assistant_name: str = "NOVA",
        clock: Callable[[], float] = time.monotonic
    ):
        self.bus = bus
        self.config = config or ProviderConfig()
        self.assistant_name = assistant_name
        self._clock = clock

        self.fallback = fallback or LocalFallbackProvider()
        ranked = [p for p in providers if p.name != self.fallback.name] + [self.fallback]

        self._providers: dict[str, Provider] = {}
        self._descriptors: dict[str, ProviderDescriptor] = {}
        for rank, provider in enumerate(ranked, start=1):
            if provider.name in self._providers:
                raise ValueError(f"提供方名称重复: {provider.name}")
            self._providers[provider.name] = provider
            self._descriptors[provider.name] = ProviderDescriptor(
                name=provider.name,
                rank=rank,
                model=provider.model,
                available=not provider.networked,
            )

        self._preferred = self.fallback.name
        self._last_probe: Optional[float] = None
        self._probing = False
        self.stats = RouterStats()

    # ------------------------------------------------------------------
    # 探测
    # ------------------------------------------------------------------

    async def initialize(self) -> str:
        """
        按排名探测全部提供方并选出首选

        Returns:
            首选提供方名称
        """
        await self._probe_all()
        logger.info(f"首选 AI 提供方: {self._preferred}")
        return self._preferred

    async def maybe_reprobe(self, force: bool = False) -> bool:
        """
        重新探测（限频）

        Returns:
            本次是否真正执行了探测
        """
        if self._probing:
            return False
        if not force and self._last_probe is not None:
            if self._clock() - self._last_probe < self.config.reprobe_interval:
                return False
        await self._probe_all()
        return True

    async def _probe_all(self) -> None:
        self._probing = True
        try:
            for name, provider in self._providers.items():
                descriptor = self._descriptors[name]
                if not provider.networked:
                    descriptor.available = True
                    descriptor.last_checked = datetime.now()
                    continue
                descriptor.available = await self._probe(provider, descriptor)
                descriptor.last_checked = datetime.now()
            self.stats.probes += 1
        finally:
            self._last_probe = self._clock()
            self._probing = False

        await self._select_preferred()

    async def _probe(self, provider: Provider, descriptor: ProviderDescriptor) -> bool:
        try:
            available = await asyncio.wait_for(provider.check_connection(), timeout=self.config.probe_timeout)
            descriptor.last_error = None if available else "unreachable"
        except asyncio.TimeoutError:
            available = False
            descriptor.last_error = "probe timed out"
        except Exception as e:
            available = False
            descriptor.last_error = str(e)
        logger.debug(f"探测 {provider.name}: {'可用' if available else '不可用'}")
        return bool(available)

    async def _select_preferred(self) -> None:
        """选择排名最高的可用提供方"""
        ranked = sorted(self._descriptors.values(), key=lambda d: d.rank)
        chosen = next((d.name for d in ranked if d.available), self.fallback.name)
        await self._set_preferred(chosen)

    async def _set_preferred(self, name: str) -> None:
        if name == self._preferred:
            return
        previous, self._preferred = self._preferred, name
        logger.info(f"首选提供方变更: {previous} → {name}")
        if self.bus:
            await self.bus.publish(EventKind.PROVIDER_CHANGED, copy.copy(self._descriptors[name]))

    async def set_preferred(self, name: str) -> bool:
        """手动指定首选提供方（必须已注册且可用）"""
        descriptor = self._descriptors.get(name)
        if descriptor is None or not descriptor.available:
            return False
        await self._set_preferred(name)
        return True

    # ------------------------------------------------------------------
    # 请求
    # ------------------------------------------------------------------

    @staticmethod
    def is_identity_question(text: str) -> bool:
        return any(pattern.search(text) for pattern in IDENTITY_PATTERNS)

    def identity_response(self) -> str:
        return (
            f"I'm {self.assistant_name}, a personal AI assistant. I keep a scored memory of our "
            "conversations, plan follow-up work on my own, and answer through whichever "
            "language model is reachable."
        )

    def build_prompt(self, text: str, mode: str = "general", context: Optional[str] = None) -> str:
        """按模式和上下文拼装提示"""
        instruction = MODE_PROMPTS.get(mode, "")
        parts = [p for p in (instruction, context) if p]
        parts.append(f"User: {text}")
        return "\n\n".join(parts)

    def _dispatch_order(self, force_provider: Optional[str]) -> list[str]:
        ranked = [d.name for d in sorted(self._descriptors.values(), key=lambda d: d.rank)]
        order: list[str] = []

        if force_provider:
            if force_provider in self._providers:
                order.append(force_provider)
            else:
                logger.warning(f"未知的提供方: {force_provider}，使用首选")

        if self._preferred not in order and self._descriptors[self._preferred].available:
            order.append(self._preferred)

        for name in ranked:
            if name not in order and self._descriptors[name].available:
                order.append(name)

        if self.fallback.name in order:
            order.remove(self.fallback.name)
        order.append(self.fallback.name)
        return order

    async def process_request(
        self,
        text: str,
        mode: str = "general",
        force_provider: Optional[str] = None,
        context: Optional[str] = None
    ) -> ProviderResponse:
        """
        处理请求

        Args:
            text: 用户输入
            mode: general / code / research / reasoning
            force_provider: 强制使用的提供方（失败后仍会降级）
            context: 附加的对话上下文

        Returns:
            ProviderResponse（永不抛异常）
        """
        start = time.perf_counter()
        try:
            return await self._route(text, mode, force_provider, context, start)
        except Exception as e:
            self.stats.last_error = str(e)
            logger.exception(f"路由异常: {e}")
            return ProviderResponse(
                content=LAST_RESORT_REPLY,
                provider=self.fallback.name,
                mode=mode,
                fallback_used=True,
                duration_ms=(time.perf_counter() - start) * 1000,
            )

    async def _route(
        self,
        text: str,
        mode: str,
        force_provider: Optional[str],
        context: Optional[str],
        start: float
    ) -> ProviderResponse:
        self.stats.total_requests += 1

        if self.is_identity_question(text):
            self.stats.identity_responses += 1
            return ProviderResponse(
                content=self.identity_response(),
                provider=IDENTITY_PROVIDER,
                mode=mode,
                model="canned",
                duration_ms=(time.perf_counter() - start) * 1000,
            )

        if mode not in MODE_PROMPTS:
            logger.warning(f"未知模式 {mode}，按 general 处理")
            mode = "general"

        prompt = self.build_prompt(text, mode, context)
        attempts: list[str] = []

        for name in self._dispatch_order(force_provider):
            provider = self._providers[name]
            attempts.append(name)
            try:
                content = await asyncio.wait_for(
                    provider.generate(prompt, None),
                    timeout=self.config.request_timeout
                )
            except Exception as e:
                error = str(e) or e.__class__.__name__
                await self._record_failure(name, error)
                continue

            self.stats.successes[name] = self.stats.successes.get(name, 0) + 1
            fallback_used = name == self.fallback.name
            if fallback_used:
                self.stats.fallback_responses += 1
            return ProviderResponse(
                content=content,
                provider=name,
                mode=mode,
                model=provider.model,
                fallback_used=fallback_used,
                attempts=attempts,
                duration_ms=(time.perf_counter() - start) * 1000,
            )

        self.stats.fallback_responses += 1
        return ProviderResponse(
            content=LAST_RESORT_REPLY,
            provider=self.fallback.name,
            mode=mode,
            fallback_used=True,
            attempts=attempts,
            duration_ms=(time.perf_counter() - start) * 1000,
        )

    async def _record_failure(self, name: str, error: str) -> None:
        """记录失败；联网提供方标记为不可用，等待下次探测恢复"""
        self.stats.failures[name] = self.stats.failures.get(name, 0) + 1
        self.stats.last_error = f"{name}: {error}"
        logger.warning(f"提供方 {name} 调用失败: {error}")

        descriptor = self._descriptors[name]
        descriptor.last_error = error
        if self._providers[name].networked:
            descriptor.available = False
            if name == self._preferred:
                await self._select_preferred()

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    @property
    def preferred(self) -> str:
        return self._preferred

    def descriptors(self) -> list[ProviderDescriptor]:
        return [copy.copy(d) for d in sorted(self._descriptors.values(), key=lambda d: d.rank)]

    def get_stats(self) -> dict[str, Any]:
        return {
            "preferred": self._preferred,
            "total_requests": self.stats.total_requests,
            "identity_responses": self.stats.identity_responses,
            "fallback_responses": self.stats.fallback_responses,
            "successes": dict(self.stats.successes),
            "failures": dict(self.stats.failures),
            "probes": self.stats.probes,
            "last_error": self.stats.last_error,
        }

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()

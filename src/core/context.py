# -*- coding: utf-8 -*-
"""
核心上下文

显式构造一次，按引用传给各组件；没有模块级单例
"""
import logging
from dataclasses import dataclass
from typing import Optional

from ..bus import EventBus
from ..config import AppConfig
from ..memory.memory_store import MemoryStore
from ..providers import GeminiProvider, LocalFallbackProvider, OllamaProvider, Provider, ProviderRouter
from ..reasoning.engine import ReasoningSource
from ..schedule.handlers import ActionHandlerRegistry, DefaultActionHandlers
from ..schedule.scheduler import ActionScheduler
from ..storage import JsonFileStore, PersistencePort
from ..task.manager import TaskManager

logger = logging.getLogger('core.context')


def build_providers(config: AppConfig) -> list[Provider]:
    """按配置创建联网提供方（排名顺序：Ollama → Gemini）"""
    settings = config.providers
    providers: list[Provider] = []
    if settings.ollama_enabled:
        providers.append(OllamaProvider(
            base_url=settings.ollama_base_url,
            model=settings.ollama_model,
            probe_timeout=settings.probe_timeout,
            request_timeout=settings.request_timeout,
        ))
    if settings.gemini_enabled and settings.gemini_api_key:
        providers.append(GeminiProvider(
            api_key=settings.gemini_api_key,
            base_url=settings.gemini_base_url,
            model=settings.gemini_model,
            probe_timeout=settings.probe_timeout,
            request_timeout=settings.request_timeout,
        ))
    elif settings.gemini_enabled:
        logger.info("未配置 GEMINI_API_KEY，跳过 Gemini")
    return providers


@dataclass
class CoreContext:
    """核心组件集合"""
    config: AppConfig
    bus: EventBus
    persistence: PersistencePort
    memory: MemoryStore
    tasks: TaskManager
    router: ProviderRouter
    registry: ActionHandlerRegistry
    scheduler: ActionScheduler
    reasoning: ReasoningSource

    @classmethod
    def build(
        cls,
        config: Optional[AppConfig] = None,
        persistence: Optional[PersistencePort] = None,
        providers: Optional[list[Provider]] = None,
        fallback: Optional[Provider] = None,
        bus: Optional[EventBus] = None
    ) -> "CoreContext":
        """
        装配全部组件

        Args:
            config: 应用配置（默认值）
            persistence: 持久化端口（默认写入 data_dir 下的 JSON 文件）
            providers: 联网提供方（默认按配置创建）
            fallback: 本地兜底提供方
            bus: 事件总线
        """
        config = config or AppConfig()
        bus = bus or EventBus()
        persistence = persistence or JsonFileStore(config.data_dir)
        if providers is None:
            providers = build_providers(config)

        memory = MemoryStore(persistence, bus, config.memory)
        tasks = TaskManager(persistence, bus)
        router = ProviderRouter(
            providers,
            fallback=fallback or LocalFallbackProvider(),
            bus=bus,
            config=config.providers,
            assistant_name=config.assistant_name,
        )
        registry = ActionHandlerRegistry()
        scheduler = ActionScheduler(persistence, memory, bus, config.scheduler, registry)
        reasoning = ReasoningSource(memory, scheduler, router, bus, config.reasoning)

        context = cls(
            config=config,
            bus=bus,
            persistence=persistence,
            memory=memory,
            tasks=tasks,
            router=router,
            registry=registry,
            scheduler=scheduler,
            reasoning=reasoning,
        )
        DefaultActionHandlers(context).register_all(registry)
        return context

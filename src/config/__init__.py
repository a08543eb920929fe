# -*- coding: utf-8 -*-
"""
配置管理模块
"""
from .settings import (
    AppConfig,
    MemoryConfig,
    ReasoningConfig,
    SchedulerConfig,
    ProviderConfig,
    load_config,
)

__all__ = [
    'AppConfig',
    'MemoryConfig',
    'ReasoningConfig',
    'SchedulerConfig',
    'ProviderConfig',
    'load_config',
]

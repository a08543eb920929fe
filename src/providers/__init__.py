# -*- coding: utf-8 -*-
"""
AI 提供方 - 接口、具体实现与路由
"""
from .base import Provider, ProviderDescriptor, ProviderResponse
from .ollama import OllamaProvider
from .gemini import GeminiProvider
from .local import LocalFallbackProvider
from .router import ProviderRouter, IDENTITY_PROVIDER

__all__ = [
    'Provider',
    'ProviderDescriptor',
    'ProviderResponse',
    'OllamaProvider',
    'GeminiProvider',
    'LocalFallbackProvider',
    'ProviderRouter',
    'IDENTITY_PROVIDER',
]

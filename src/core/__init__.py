# -*- coding: utf-8 -*-
"""
核心 - 异常定义

CoreContext / AssistantCore 从 src.core.context / src.core.assistant 导入
"""
from .exceptions import NovaError, ProviderError, ActionHandlerError, UnknownActionKindError

__all__ = [
    'NovaError',
    'ProviderError',
    'ActionHandlerError',
    'UnknownActionKindError',
]

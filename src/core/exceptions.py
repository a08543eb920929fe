# -*- coding: utf-8 -*-
"""
核心异常定义
"""
from typing import Optional


class NovaError(Exception):
    """核心基础异常"""
    pass


class ProviderError(NovaError):
    """AI 提供方调用错误"""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ActionHandlerError(NovaError):
    """动作执行错误"""
    pass


class UnknownActionKindError(ActionHandlerError):
    """没有为该动作类型注册处理器"""
    pass

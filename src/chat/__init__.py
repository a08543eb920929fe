# -*- coding: utf-8 -*-
"""
对话 - 意图识别
"""
from .intent import IntentClassifier, IntentResult, IntentType

__all__ = [
    'IntentClassifier',
    'IntentResult',
    'IntentType',
]

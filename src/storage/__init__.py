# -*- coding: utf-8 -*-
"""
持久化 - 端口定义与实现
"""
from .base import PersistencePort, InMemoryPersistence, Record
from .json_store import JsonFileStore

__all__ = [
    'PersistencePort',
    'InMemoryPersistence',
    'JsonFileStore',
    'Record',
]

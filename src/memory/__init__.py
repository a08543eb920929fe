# -*- coding: utf-8 -*-
"""
记忆系统 - 评分、标签、关联、检索、整合与归档
"""
from .types import MemoryEntry, MemoryKind, MemoryCluster, clamp_importance
from .consolidation import MemoryConsolidation, ConsolidationResult, cluster_by_topic
from .retrieval import RetrievalResult
from .memory_store import MemoryStore, MEMORY_COLLECTION, ARCHIVE_COLLECTION

__all__ = [
    'MemoryEntry',
    'MemoryKind',
    'MemoryCluster',
    'clamp_importance',
    'MemoryConsolidation',
    'ConsolidationResult',
    'cluster_by_topic',
    'RetrievalResult',
    'MemoryStore',
    'MEMORY_COLLECTION',
    'ARCHIVE_COLLECTION',
]

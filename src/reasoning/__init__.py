# -*- coding: utf-8 -*-
"""
自主思考 - 检测器与思考引擎
"""
from .types import Thought, ThoughtType, SystemState
from .detectors import (
    Detector,
    IdleDetector,
    HighInteractionDetector,
    LearningOpportunityDetector,
    ProviderDegradedDetector,
    TemporalDetector,
    default_detectors,
)
from .engine import ReasoningSource

__all__ = [
    'Thought',
    'ThoughtType',
    'SystemState',
    'Detector',
    'IdleDetector',
    'HighInteractionDetector',
    'LearningOpportunityDetector',
    'ProviderDegradedDetector',
    'TemporalDetector',
    'default_detectors',
    'ReasoningSource',
]

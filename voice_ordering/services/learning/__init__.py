"""
Learning Services Package

Execution metrics, the feedback log, adaptation-rule mining and user
profiles.
"""

from voice_ordering.services.learning.engine import LearningEngine, common_conditions, seed_rules
from voice_ordering.services.learning.metrics import ExecutionMetrics, IntentAccuracy

__all__ = [
    "LearningEngine",
    "common_conditions",
    "seed_rules",
    "ExecutionMetrics",
    "IntentAccuracy",
]

"""
                        Services Module

Contains the voice pipeline components. Collaborators with an external
counterpart (key-value store, ordering callbacks) follow the hybrid pattern:
a Mock/in-memory implementation for development and a Real one for
staging/production.

Services:
    - nlp: Normalizer, intent classifier, entity extractor
    - context: Layered context store, patterns, predictions
    - dispatch: Command dispatcher, handlers, business rules
    - learning: Metrics, feedback, adaptation rules, user profiles
    - storage: Key-value store (memory / SQLAlchemy)
    - ordering: Host ordering callbacks
"""

from voice_ordering.services.context import ContextEngine
from voice_ordering.services.dispatch import CommandDispatcher
from voice_ordering.services.learning import ExecutionMetrics, LearningEngine
from voice_ordering.services.nlp import VoiceInterpreter

__all__ = [
    "ContextEngine",
    "CommandDispatcher",
    "ExecutionMetrics",
    "LearningEngine",
    "VoiceInterpreter",
]

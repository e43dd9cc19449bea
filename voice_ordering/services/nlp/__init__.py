"""
Natural language layer: normalizer, intent classifier, entity extractor and
the interpreter that combines them.
"""

from voice_ordering.services.nlp.classifier import ClassificationContext, IntentClassifier
from voice_ordering.services.nlp.extractor import EntityExtractor
from voice_ordering.services.nlp.interpreter import (
    VoiceInterpreter,
    context_features,
    resolve_locale,
)
from voice_ordering.services.nlp.normalizer import TextNormalizer

__all__ = [
    "ClassificationContext",
    "EntityExtractor",
    "IntentClassifier",
    "TextNormalizer",
    "VoiceInterpreter",
    "context_features",
    "resolve_locale",
]

"""Layered context store, pattern detection and predictions."""

from voice_ordering.services.context.engine import ContextEngine

__all__ = ["ContextEngine"]

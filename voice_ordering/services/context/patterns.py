"""
Context pattern tables: trigger vocabularies, meal times, step sequences
and the Swiss context constants used by the context engine.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class TriggerPattern:
    name: str
    triggers: tuple[str, ...]
    context_boost: tuple[str, ...]
    threshold: float
    predicted: tuple[str, ...]


@dataclass(frozen=True)
class SequentialPattern:
    """Three consecutive record labels (type value, or "page" for PAGE-layer records)."""
    name: str
    steps: tuple[str, str, str]
    predicted: tuple[str, ...]
    confidence: float = 0.85


TRIGGER_PATTERNS: tuple[TriggerPattern, ...] = (
    TriggerPattern(
        name="ORDERING",
        triggers=("bestell", "order", "hätt gern", "möcht", "nimm"),
        context_boost=("menu", "product", "cart"),
        threshold=0.9,
        predicted=("business", "interaction"),
    ),
    TriggerPattern(
        name="NAVIGATION",
        triggers=("zeig", "gah", "öffne", "wechsle"),
        context_boost=("page", "section", "menu"),
        threshold=0.8,
        predicted=("system",),
    ),
    TriggerPattern(
        name="INQUIRY",
        triggers=("was", "wie", "wann", "wo", "warum"),
        context_boost=("information", "help", "details"),
        threshold=0.7,
        predicted=("interaction",),
    ),
    TriggerPattern(
        name="MODIFICATION",
        triggers=("änder", "entfern", "add", "ohne", "mit"),
        context_boost=("cart", "order", "customization"),
        threshold=0.85,
        predicted=("business",),
    ),
)

SEQUENTIAL_PATTERNS: tuple[SequentialPattern, ...] = (
    SequentialPattern("menu_browse_order", ("page", "user", "business"), ("business",)),
    SequentialPattern("order_modify_confirm", ("business", "interaction", "business"), ("system",)),
    SequentialPattern("browse_inquire_order", ("page", "interaction", "business"), ("business",)),
)

TRIGGER_HIT_SCORE = 0.3
BOOST_WINDOW = 5
BOOST_SCORE = 0.4

TEMPORAL_CONFIDENCE = 0.8
PATTERN_PREDICTION_FACTOR = 0.8
BEHAVIOR_PREDICTION_CONFIDENCE = 0.75
BEHAVIOR_MIN_SIMILAR = 3

# name → (start hour, end hour); end < start wraps midnight
MEAL_TIMES: dict[str, tuple[int, int]] = {
    "breakfast": (6, 11),
    "lunch": (11, 14),
    "dinner": (17, 22),
    "late_night": (22, 2),
}

SWISS_LOCALES = ("de-CH", "fr-CH", "it-CH")
DIALECT_MARKERS = ("gaht", "hätt", "chönd", "zäme", "isch")
DIALECT_BONUS = 0.1
DIALECT_MARKER_WEIGHT = 0.15
OFF_HOURS_FACTOR = 0.9

# Opening hours assumed by the context engine: (open, close) hour
CONTEXT_WEEKDAY_HOURS = (11, 23)
CONTEXT_WEEKEND_HOURS = (10, 24)


def hour_in_range(hour: int, start: int, end: int) -> bool:
    if end < start:
        return hour >= start or hour < end
    return start <= hour < end


def meal_time(moment: datetime) -> Optional[str]:
    for name, (start, end) in MEAL_TIMES.items():
        if hour_in_range(moment.hour, start, end):
            return name
    return None


def is_context_business_hours(moment: datetime) -> bool:
    opens, closes = CONTEXT_WEEKEND_HOURS if moment.weekday() >= 5 else CONTEXT_WEEKDAY_HOURS
    return opens <= moment.hour < closes

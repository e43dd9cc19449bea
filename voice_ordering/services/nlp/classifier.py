"""
Intent Classifier

Scores every intent rule of the locale against the normalized text:

    1. A trigger-pattern match yields the rule's base confidence plus
       context boosts and learned adjustments.
    2. Otherwise the best edit-distance similarity between a text window and
       the textual form of a pattern is taken; above the similarity floor it
       scores `base × factor × similarity`.
    3. Page, cart and time-of-day weights are added on top.
    4. Scores are clamped to [0, 1] and ranked (ties keep declaration order).

Version: 1.0.0
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from rapidfuzz.distance import Levenshtein

from voice_ordering.schemas import AdaptationRule, Intent
from voice_ordering.services.nlp import locale_data
from voice_ordering.services.nlp.locale_data import IntentRule, LocaleRules

logger = logging.getLogger(__name__)

UNKNOWN_INTENT = Intent(name="unknown", confidence=0.0, category="UNKNOWN")

_GROUP = re.compile(r"\(([^()]*)\)(\?)?")


def pattern_phrases(pattern: str) -> list[str]:
    """
    Expand a trigger pattern into the plain phrases it matches.

    `ich (möchte|will)` → ["ich möchte", "ich will"]; optional groups
    expand to both forms.
    """
    match = _GROUP.search(pattern)
    if match is None:
        return [" ".join(pattern.split())]

    options = match.group(1).split("|")
    if match.group(2):
        options.append("")

    phrases: list[str] = []
    for option in options:
        phrases.extend(pattern_phrases(pattern[:match.start()] + option + pattern[match.end():]))
    return phrases


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def time_period(hour: int) -> str:
    if hour < 11:
        return "morning"
    if hour < 14:
        return "lunch"
    if hour > 17:
        return "evening"
    return "afternoon"


@dataclass
class ClassificationContext:
    """Situational inputs the classifier consults."""
    current_page: Optional[str] = None
    cart_size: int = 0
    hour: Optional[int] = None
    preferred_intents: list[str] = field(default_factory=list)
    learned_adjustments: dict[str, float] = field(default_factory=dict)
    features: dict[str, Any] = field(default_factory=dict)
    rules: list[AdaptationRule] = field(default_factory=list)


@dataclass
class _CompiledIntentRule:
    rule: IntentRule
    order: int
    regexes: list[re.Pattern]
    phrases: list[str]


class IntentClassifier:
    """Rule-based intent classifier with fuzzy fallback."""

    def __init__(
        self,
        locale_rules: Mapping[str, LocaleRules],
        similarity_floor: float = 0.6,
        fuzzy_factor: float = 0.6,
    ):
        self.similarity_floor = similarity_floor
        self.fuzzy_factor = fuzzy_factor
        self._rules: dict[str, list[_CompiledIntentRule]] = {
            locale: [
                _CompiledIntentRule(
                    rule=rule,
                    order=index,
                    regexes=[re.compile(p, re.IGNORECASE) for p in rule.patterns],
                    phrases=[ph for p in rule.patterns for ph in pattern_phrases(p) if ph],
                )
                for index, rule in enumerate(rules.intents)
            ]
            for locale, rules in locale_rules.items()
        }

    def classify(
        self,
        text: str,
        locale: str,
        context: Optional[ClassificationContext] = None,
    ) -> list[Intent]:
        """Return intents ranked by confidence; `[unknown]` if nothing scores."""
        context = context or ClassificationContext()
        if not text:
            return [UNKNOWN_INTENT]

        scored: list[tuple[float, int, IntentRule]] = []
        for compiled in self._rules.get(locale, []):
            rule = compiled.rule
            if any(regex.search(text) for regex in compiled.regexes):
                score = rule.confidence
            else:
                score = self._fuzzy_score(text, compiled)
                if score <= 0:
                    continue

            score += self._intent_boosts(rule.intent, context)
            score += self._learned_adjustments(rule.intent, context)
            score += self._context_weights(rule.intent, context)
            scored.append((clamp(score), compiled.order, rule))

        if not scored:
            return [UNKNOWN_INTENT]

        scored.sort(key=lambda item: (-item[0], item[1]))
        return [
            Intent(name=rule.intent, confidence=round(score, 4), category=rule.category)
            for score, _, rule in scored
        ]

    # =========================================================================
    # SCORING
    # =========================================================================

    def _fuzzy_score(self, text: str, compiled: _CompiledIntentRule) -> float:
        words = text.split()
        best = 0.0
        for phrase in compiled.phrases:
            size = len(phrase.split())
            windows = [" ".join(words[i:i + size]) for i in range(max(len(words) - size + 1, 1))]
            for window in windows:
                best = max(best, Levenshtein.normalized_similarity(window, phrase))

        if best > self.similarity_floor:
            return compiled.rule.confidence * self.fuzzy_factor * best
        return 0.0

    @staticmethod
    def _intent_boosts(intent: str, context: ClassificationContext) -> float:
        boost = 0.0
        if intent == "order" and context.current_page and "menu" in context.current_page:
            boost += 0.1
        if intent == "checkout" and context.cart_size > 0:
            boost += 0.15
        if intent == "order" and context.hour is not None and context.hour < 11:
            boost += 0.05
        if intent in context.preferred_intents:
            boost += 0.08
        return boost

    @staticmethod
    def _learned_adjustments(intent: str, context: ClassificationContext) -> float:
        adjustment = sum(
            rule.confidence_delta
            for rule in context.rules
            if rule.applies_to(intent) and rule.matches(context.features)
        )
        return adjustment + context.learned_adjustments.get(intent, 0.0)

    @staticmethod
    def _context_weights(intent: str, context: ClassificationContext) -> float:
        weight = 0.0
        if context.current_page:
            page_boosts = locale_data.PAGE_INTENT_BOOSTS.get(context.current_page, {})
            weight += page_boosts.get(intent, 0.0) * locale_data.PAGE_WEIGHT
        if context.cart_size > 0:
            weight += (
                locale_data.CART_INTENT_BOOSTS.get(intent, 0.0)
                * locale_data.CART_WEIGHT
                * min(context.cart_size / 5, 1)
            )
        if context.hour is not None:
            period_boosts = locale_data.TIME_INTENT_BOOSTS[time_period(context.hour)]
            weight += period_boosts.get(intent, 0.0) * locale_data.TIME_WEIGHT
        return weight

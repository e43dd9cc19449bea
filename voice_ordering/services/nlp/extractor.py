"""
Entity Extractor

Matches the locale's entity rules on word boundaries, resolves overlapping
candidates (highest confidence first, ties by extraction order), filters by
intent compatibility and adds inferred entities.
"""

import re
from dataclasses import dataclass
from typing import Mapping, Optional

from voice_ordering.schemas import Entity, Span
from voice_ordering.services.nlp.locale_data import (
    INTENT_ENTITY_TYPES,
    EntityRule,
    LocaleRules,
)
from voice_ordering.services.nlp.normalizer import word_table_pattern

_NUMERAL = re.compile(r"\b\d{1,2}\b")


@dataclass
class _CompiledEntityRule:
    rule: EntityRule
    regex: re.Pattern


def resolve_conflicts(candidates: list[Entity]) -> list[Entity]:
    """Drop candidates whose span overlaps a higher-confidence one."""
    # sorted() is stable, so equal confidences keep extraction order
    ranked = sorted(candidates, key=lambda e: -e.confidence)
    accepted: list[Entity] = []
    for candidate in ranked:
        if not any(candidate.overlaps(existing) for existing in accepted):
            accepted.append(candidate)
    return sorted(accepted, key=lambda e: e.span.start if e.span else 0)


class EntityExtractor:

    def __init__(self, locale_rules: Mapping[str, LocaleRules]):
        self._canonical = {locale: rules.canonical for locale, rules in locale_rules.items()}
        self._rules: dict[str, list[_CompiledEntityRule]] = {}
        for locale, rules in locale_rules.items():
            compiled = []
            for rule in rules.entities:
                regex = word_table_pattern(rule.values)
                if regex is not None:
                    compiled.append(_CompiledEntityRule(rule=rule, regex=regex))
            self._rules[locale] = compiled

    def extract(
        self,
        text: str,
        locale: str,
        intent: Optional[str] = None,
        current_page: Optional[str] = None,
    ) -> list[Entity]:
        """
        Extract entities from normalized text.

        Without an intent the raw resolved set is returned; with one, the set
        is filtered to compatible types and enriched with inferred entities.
        """
        entities = resolve_conflicts(self._candidates(text, locale))
        if intent is None:
            return entities

        allowed = INTENT_ENTITY_TYPES.get(intent)
        if allowed:
            entities = [e for e in entities if e.type in allowed]
        return entities + self._inferred(intent, entities, current_page)

    def _candidates(self, text: str, locale: str) -> list[Entity]:
        canonical = self._canonical.get(locale, {})
        candidates: list[Entity] = []

        for compiled in self._rules.get(locale, []):
            rule = compiled.rule
            for match in compiled.regex.finditer(text):
                surface = match.group(0)
                candidates.append(Entity(
                    type=rule.type,
                    category=rule.category,
                    raw_value=surface,
                    normalized_value=canonical.get(surface, surface),
                    span=Span(start=match.start(), end=match.end()),
                    confidence=rule.confidence,
                ))

        for match in _NUMERAL.finditer(text):
            candidates.append(Entity(
                type="quantity",
                category="numeric",
                raw_value=match.group(0),
                normalized_value=str(int(match.group(0))),
                span=Span(start=match.start(), end=match.end()),
                confidence=0.9,
            ))

        return candidates

    @staticmethod
    def _inferred(intent: str, entities: list[Entity], current_page: Optional[str]) -> list[Entity]:
        inferred: list[Entity] = []

        if intent == "order" and not any(e.type == "quantity" for e in entities):
            inferred.append(Entity(
                type="quantity",
                category="default",
                raw_value="1",
                normalized_value="1",
                confidence=0.8,
                inferred=True,
            ))

        if current_page and "product/" in current_page:
            product_id = current_page.rstrip("/").split("/")[-1]
            if product_id and not any(e.type == "product" for e in entities):
                inferred.append(Entity(
                    type="product",
                    category="contextual",
                    raw_value=product_id,
                    normalized_value=product_id,
                    confidence=0.7,
                    inferred=True,
                ))

        return inferred

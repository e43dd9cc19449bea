"""
Text normalization applied before any rule matching.

Steps: case-fold, strip punctuation, collapse whitespace, replace dialect
vocabulary of the locale, apply the spelling-correction table.
"""

import re
from typing import Mapping, Optional

from voice_ordering.services.nlp.locale_data import SPELLING_FIXES, LocaleRules

_PUNCTUATION = re.compile(r"[.,!?;:\"'()\[\]{}«»„“”]")
_WHITESPACE = re.compile(r"\s+")


def word_table_pattern(words) -> Optional[re.Pattern]:
    """Compile a word-boundary alternation, longest words first."""
    words = sorted({w for w in words if w}, key=len, reverse=True)
    if not words:
        return None
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b")


def _substitute(text: str, pattern: Optional[re.Pattern], table: Mapping[str, str]) -> str:
    if pattern is None:
        return text
    return pattern.sub(lambda m: table[m.group(0)], text)


class TextNormalizer:
    """
    Locale-aware normalizer.

    Example:
        >>> normalizer = TextNormalizer(LOCALE_RULES)
        >>> normalizer.normalize("Zwöi Piza, bitte!", "de-CH")
        '2 pizza bitte'
    """

    def __init__(
        self,
        locale_rules: Mapping[str, LocaleRules],
        spelling_fixes: Mapping[str, str] = SPELLING_FIXES,
    ):
        self._dialects = {
            locale: (word_table_pattern(rules.dialect), dict(rules.dialect))
            for locale, rules in locale_rules.items()
        }
        self._spelling = (word_table_pattern(spelling_fixes), dict(spelling_fixes))

    def normalize(self, text: str, locale: str) -> str:
        if not text:
            return ""

        normalized = text.lower()
        normalized = _PUNCTUATION.sub(" ", normalized)
        normalized = _WHITESPACE.sub(" ", normalized).strip()

        pattern, table = self._dialects.get(locale, (None, {}))
        normalized = _substitute(normalized, pattern, table)
        normalized = _substitute(normalized, *self._spelling)
        return normalized

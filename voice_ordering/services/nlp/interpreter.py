"""
Voice Interpreter

Turns a transcribed utterance into an Interpretation:

    text → normalize → classify (with context + learned rules)
         → extract entities for the top intent → overall confidence
         → suggestions

Locale rule data for every supported locale is validated at construction;
missing data raises InitializationError so the service never starts with a
silently degraded classifier.

Version: 1.0.0
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from voice_ordering.core.config import Settings
from voice_ordering.core.errors import InitializationError
from voice_ordering.schemas import (
    AdaptationRule,
    DomainContext,
    Entity,
    Intent,
    Interpretation,
    Suggestion,
    SuggestionType,
    UserProfile,
)
from voice_ordering.services.nlp.classifier import (
    ClassificationContext,
    IntentClassifier,
    clamp,
)
from voice_ordering.services.nlp.extractor import EntityExtractor
from voice_ordering.services.nlp.locale_data import (
    ENTITY_REQUIRED_INTENTS,
    LOCALE_RULES,
    LocaleRules,
)
from voice_ordering.services.nlp.normalizer import TextNormalizer

logger = logging.getLogger(__name__)


def resolve_locale(language: Optional[str], supported: list[str], default: str) -> str:
    """Exact match, then same language prefix, then the default locale."""
    if language:
        if language in supported:
            return language
        prefix = language.split("-")[0].lower()
        for locale in supported:
            if locale.lower().startswith(prefix):
                return locale
    return default


def page_kind(page: Optional[str]) -> str:
    if not page:
        return "none"
    segments = [s for s in page.split("/") if s]
    return segments[0].lower() if segments else "home"


def context_features(
    context: DomainContext,
    snapshot: Optional[Mapping[str, Any]] = None,
    locale: Optional[str] = None,
) -> dict[str, Any]:
    """
    Flat attributes that adaptation rules condition on.

    The same features are recorded with feedback, so mined rules fire on
    exactly the attributes they were learned from.
    """
    snapshot = snapshot or {}
    page = context.current_page or snapshot.get("page")
    return {
        "language": locale or context.language or snapshot.get("language"),
        "page": page,
        "page_kind": page_kind(page),
        "cart_state": "empty" if context.cart.is_empty else "filled",
        "meal_time": snapshot.get("meal_time", "other"),
    }


class VoiceInterpreter:
    """
    Rule-based interpreter over the declarative locale tables.

    Example:
        >>> interpreter = VoiceInterpreter(get_settings())
        >>> result = interpreter.interpret(
        ...     "Ich möchte zwei Pizza bestellen",
        ...     DomainContext(language="de-CH"),
        ... )
        >>> result.intent.name, [e.normalized_value for e in result.entities]
        ('order', ['2', 'pizza'])
    """

    def __init__(
        self,
        settings: Settings,
        locale_rules: Mapping[str, LocaleRules] = LOCALE_RULES,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.supported_locales = settings.supported_locales_list
        self.default_locale = settings.default_locale
        self._now = now

        self._validate_locale_rules(locale_rules)
        self.locale_rules = {loc: locale_rules[loc] for loc in self.supported_locales}

        self.normalizer = TextNormalizer(self.locale_rules)
        self.classifier = IntentClassifier(
            self.locale_rules,
            similarity_floor=settings.fuzzy_similarity_floor,
            fuzzy_factor=settings.fuzzy_confidence_factor,
        )
        self.extractor = EntityExtractor(self.locale_rules)

        logger.info(f"VoiceInterpreter initialized (locales={', '.join(self.supported_locales)})")

    def _validate_locale_rules(self, locale_rules: Mapping[str, LocaleRules]) -> None:
        if self.default_locale not in self.supported_locales:
            raise InitializationError(
                f"Default locale '{self.default_locale}' is not a supported locale",
                component="nlp",
            )
        for locale in self.supported_locales:
            rules = locale_rules.get(locale)
            if rules is None or not rules.intents or not rules.entities:
                raise InitializationError(
                    f"Missing intent or entity rule data for locale '{locale}'",
                    component="nlp",
                )

    # =========================================================================
    # INTERPRETATION
    # =========================================================================

    def interpret(
        self,
        text: str,
        context: Optional[DomainContext] = None,
        snapshot: Optional[Mapping[str, Any]] = None,
        profile: Optional[UserProfile] = None,
        rules: Iterable[AdaptationRule] = (),
    ) -> Interpretation:
        started = time.perf_counter()
        context = context or DomainContext()
        snapshot = snapshot or {}

        locale = resolve_locale(
            context.language or snapshot.get("language"),
            self.supported_locales,
            self.default_locale,
        )
        normalized = self.normalizer.normalize(text, locale)
        features = context_features(context, snapshot, locale)
        now = self._now()

        classification = ClassificationContext(
            current_page=features["page"],
            cart_size=len(context.cart.items),
            hour=now.hour,
            preferred_intents=list(profile.behavior_stats.preferred_intents) if profile else [],
            learned_adjustments=dict(profile.learned_adjustments) if profile else {},
            features=features,
            rules=list(rules),
        )
        ranked = self.classifier.classify(normalized, locale, classification)
        top = ranked[0]

        entities = self.extractor.extract(
            normalized,
            locale,
            intent=top.name,
            current_page=features["page"],
        )
        confidence = self.overall_confidence(top, entities)

        interpretation = Interpretation(
            intent=top,
            ranked_intents=ranked,
            entities=entities,
            confidence=confidence,
            normalized_text=normalized,
            metadata={
                "original_text": text,
                "language": locale,
                "session_id": context.session_id,
                "processing_time": round((time.perf_counter() - started) * 1000, 3),
                "context_factors": {
                    "page": features["page"],
                    "cart_size": classification.cart_size,
                    "hour": now.hour,
                    "language": locale,
                    "returning_user": profile is not None and profile.behavior_stats.total_commands > 0,
                },
                "features": features,
            },
        )
        interpretation.suggestions = self.suggestions(interpretation, locale)

        logger.debug(
            f"Interpreted '{normalized}' → {top.name} "
            f"({top.confidence:.2f}, overall {confidence:.2f}, {len(entities)} entities)"
        )
        return interpretation

    @staticmethod
    def overall_confidence(intent: Intent, entities: list[Entity]) -> float:
        confidence = intent.confidence
        if intent.name in ENTITY_REQUIRED_INTENTS and not entities:
            confidence *= 0.6

        strong = [e for e in entities if e.confidence > 0.8]
        if strong:
            confidence += 0.1 * min(len(strong) / 3, 1)
        return round(clamp(confidence), 4)

    def suggestions(self, interpretation: Interpretation, locale: str) -> list[Suggestion]:
        messages = self.locale_rules[locale].messages
        intent = interpretation.intent
        has_product = any(e.type == "product" for e in interpretation.entities)
        suggestions: list[Suggestion] = []

        if intent.name == "order" and not has_product:
            suggestions.append(Suggestion(
                type=SuggestionType.CLARIFICATION,
                message=messages["order_product"],
                actions=["show_menu", "list_popular"],
            ))
        elif intent.name == "inquiry" and not has_product:
            suggestions.append(Suggestion(
                type=SuggestionType.CLARIFICATION,
                message=messages["inquiry_product"],
                actions=["show_menu", "search_products"],
            ))
        elif intent.name == "unknown":
            suggestions.append(Suggestion(
                type=SuggestionType.HELP,
                message=messages["unknown"],
                actions=["show_examples", "show_help"],
            ))

        if intent.name != "unknown" and interpretation.confidence < self.settings.min_confidence:
            alternatives = [i.name for i in interpretation.ranked_intents[:3]]
            suggestions.append(Suggestion(
                type=SuggestionType.ALTERNATIVE,
                message=messages["low_confidence"],
                actions=alternatives,
            ))

        return suggestions

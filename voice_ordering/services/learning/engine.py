"""
Learning Engine

Feedback log, adaptation-rule mining and user profiles. Adaptation rules
adjust classifier confidence when their conditions match the utterance's
context features; profiles carry the per-user behaviour statistics the
classifier consults for preferred intents.

Rule Mining:
    Incorrect predictions are grouped by the intent the user expected. A
    group of at least `learning_min_group_size` entries whose context
    features agree on some attributes in at least `learning_common_share`
    of the group yields one rule boosting the expected intent whenever those
    attributes match again.

Persistence:
    - profile:<user_id>: UserProfile as JSON
    - learning:rules: learned AdaptationRules as a JSON list

Version: 1.0.0
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

from voice_ordering.core.config import Settings
from voice_ordering.schemas import (
    AdaptationRule,
    PredictionFeedback,
    Result,
    UserProfile,
)
from voice_ordering.services.learning.metrics import ExecutionMetrics
from voice_ordering.services.storage.base import BaseKeyValueStore

logger = logging.getLogger(__name__)

RULES_KEY = "learning:rules"
PROFILE_KEY = "profile:{user_id}"

PREFERRED_INTENT_MIN_USES = 3
PREFERRED_INTENT_LIMIT = 5


def seed_rules(now: datetime) -> list[AdaptationRule]:
    """Built-in rules present before any feedback was recorded."""
    return [
        AdaptationRule(
            id="swiss_german_boost",
            intent=None,
            conditions={"language": "de-CH"},
            confidence_delta=0.1,
            description="Boost for Swiss German speakers",
            created_at=now,
        ),
        AdaptationRule(
            id="food_context_boost",
            intent="order",
            conditions={"page_kind": "menu"},
            confidence_delta=0.15,
            description="Boost ordering while browsing the menu",
            created_at=now,
        ),
    ]


def common_conditions(
    features: list[dict[str, Any]],
    share: float,
) -> dict[str, Any]:
    """
    Attributes whose most common value covers at least `share` of the list.

    None values never become conditions.
    """
    values: dict[str, Counter] = defaultdict(Counter)
    for entry in features:
        for key, value in entry.items():
            if value is not None:
                values[key][value] += 1

    required = share * len(features)
    common = {}
    for key, counter in values.items():
        value, count = counter.most_common(1)[0]
        if count >= required:
            common[key] = value
    return common


class LearningEngine:
    """
    Feedback-driven adaptation of interpretation confidence.

    Example:
        >>> engine = LearningEngine(InMemoryKeyValueStore(), get_settings())
        >>> await engine.load()
        >>> await engine.record_feedback("zwei pizza", "navigation", "order", {"page_kind": "menu"})
        >>> created = await engine.mine_rules()
    """

    def __init__(
        self,
        store: BaseKeyValueStore,
        settings: Settings,
        metrics: Optional[ExecutionMetrics] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.min_group_size = settings.learning_min_group_size
        self.common_share = settings.learning_common_share
        self.rule_delta = settings.learning_rule_delta
        self.metrics = metrics or ExecutionMetrics()
        self._now = now

        self.correct_predictions: list[PredictionFeedback] = []
        self.incorrect_predictions: list[PredictionFeedback] = []
        self._rules: dict[str, AdaptationRule] = {r.id: r for r in seed_rules(now())}
        self._profiles: dict[str, UserProfile] = {}

    # =========================================================================
    # RULES
    # =========================================================================

    @property
    def rules(self) -> list[AdaptationRule]:
        return list(self._rules.values())

    @property
    def learned_rules(self) -> list[AdaptationRule]:
        return [r for r in self._rules.values() if r.id.startswith("learned_")]

    async def load(self) -> int:
        """Load persisted learned rules. Returns the number loaded."""
        stored = await self.store.get(RULES_KEY) or []
        for data in stored:
            rule = AdaptationRule.model_validate(data)
            self._rules[rule.id] = rule
        if stored:
            logger.info(f"Loaded {len(stored)} learned adaptation rules")
        return len(stored)

    async def save_rules(self) -> None:
        await self.store.set(RULES_KEY, [r.model_dump(mode="json") for r in self.learned_rules])

    async def record_feedback(
        self,
        text: str,
        predicted_intent: str,
        expected_intent: str,
        features: Optional[dict[str, Any]] = None,
    ) -> PredictionFeedback:
        feedback = PredictionFeedback(
            text=text,
            predicted_intent=predicted_intent,
            expected_intent=expected_intent,
            features=dict(features or {}),
            recorded_at=self._now(),
        )
        if feedback.correct:
            self.correct_predictions.append(feedback)
        else:
            self.incorrect_predictions.append(feedback)

        self.metrics.record_feedback(predicted_intent, feedback.correct)
        logger.debug(
            f"Feedback recorded: predicted={predicted_intent} expected={expected_intent} "
            f"({'correct' if feedback.correct else 'incorrect'})"
        )
        return feedback

    async def train(
        self,
        correct: Iterable[PredictionFeedback] = (),
        incorrect: Iterable[PredictionFeedback] = (),
    ) -> list[AdaptationRule]:
        """Append a batch of labelled predictions and mine rules from the log."""
        self.correct_predictions.extend(correct)
        self.incorrect_predictions.extend(incorrect)
        return await self.mine_rules()

    async def mine_rules(self) -> list[AdaptationRule]:
        """Create rules from the incorrect-prediction log. Returns the new rules."""
        groups: dict[str, list[PredictionFeedback]] = defaultdict(list)
        for feedback in self.incorrect_predictions:
            groups[feedback.expected_intent].append(feedback)

        created = []
        for intent, entries in groups.items():
            if len(entries) < self.min_group_size:
                continue

            conditions = common_conditions([e.features for e in entries], self.common_share)
            if not conditions or self._has_rule(intent, conditions):
                continue

            rule = AdaptationRule(
                id=f"learned_{intent}_{len(self.learned_rules) + 1}",
                intent=intent,
                conditions=conditions,
                confidence_delta=self.rule_delta,
                description=f"Learned boost for {intent} in specific context",
                created_at=self._now(),
            )
            self._rules[rule.id] = rule
            created.append(rule)
            logger.info(f"Adaptation rule created: {rule.id} {conditions}")

        if created:
            await self.save_rules()
        return created

    def _has_rule(self, intent: str, conditions: dict[str, Any]) -> bool:
        return any(r.intent == intent and r.conditions == conditions for r in self._rules.values())

    async def reset(self) -> None:
        """Drop learned rules and the feedback log; seed rules remain."""
        self.correct_predictions.clear()
        self.incorrect_predictions.clear()
        self._rules = {r.id: r for r in seed_rules(self._now())}
        await self.store.remove(RULES_KEY)
        logger.info("Learning state reset")

    # =========================================================================
    # PROFILES
    # =========================================================================

    async def get_profile(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is not None:
            return profile

        stored = await self.store.get(PROFILE_KEY.format(user_id=user_id))
        if stored is not None:
            profile = UserProfile.model_validate(stored)
        else:
            profile = UserProfile(id=user_id, created_at=self._now(), updated_at=self._now())
        self._profiles[user_id] = profile
        return profile

    async def save_profile(self, profile: UserProfile) -> None:
        await self.store.set(PROFILE_KEY.format(user_id=profile.id), profile.model_dump(mode="json"))

    async def update_profile(
        self,
        user_id: str,
        intent: str,
        result: Result,
        order_value: Optional[float] = None,
    ) -> UserProfile:
        """Fold one command outcome into the user's behaviour stats and persist them."""
        profile = await self.get_profile(user_id)
        stats = profile.behavior_stats

        stats.total_commands += 1
        if result.success:
            stats.successful_commands += 1
        stats.intent_counts[intent] = stats.intent_counts.get(intent, 0) + 1
        stats.preferred_intents = [
            name for name, count in Counter(stats.intent_counts).most_common(PREFERRED_INTENT_LIMIT)
            if count >= PREFERRED_INTENT_MIN_USES
        ]

        if result.success and result.action == "order_completed" and order_value is not None:
            stats.completed_orders += 1
            stats.average_order_value = round(
                stats.average_order_value
                + (order_value - stats.average_order_value) / stats.completed_orders,
                2,
            )

        profile.updated_at = self._now()
        await self.save_profile(profile)
        return profile

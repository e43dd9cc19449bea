"""
Priority policies: queue priority, timeout and retry budget per category.
"""

from dataclasses import dataclass
from typing import Iterable

from voice_ordering.schemas import Entity, PriorityCategory


@dataclass(frozen=True)
class PriorityPolicy:
    category: PriorityCategory
    priority: int
    timeout: float
    retries: int
    intents: frozenset[str]


PRIORITY_POLICIES: dict[PriorityCategory, PriorityPolicy] = {
    PriorityCategory.CRITICAL: PriorityPolicy(
        category=PriorityCategory.CRITICAL,
        priority=1,
        timeout=5.0,
        retries=3,
        intents=frozenset({"emergency_stop", "payment_cancel", "order_cancel", "cancel", "stop"}),
    ),
    PriorityCategory.HIGH: PriorityPolicy(
        category=PriorityCategory.HIGH,
        priority=2,
        timeout=3.0,
        retries=2,
        intents=frozenset({"checkout", "payment", "order_complete"}),
    ),
    PriorityCategory.NORMAL: PriorityPolicy(
        category=PriorityCategory.NORMAL,
        priority=3,
        timeout=2.0,
        retries=1,
        intents=frozenset({
            "add_product", "remove_product", "update_quantity",
            "navigate", "navigation", "inquiry",
        }),
    ),
    PriorityCategory.LOW: PriorityPolicy(
        category=PriorityCategory.LOW,
        priority=4,
        timeout=1.0,
        retries=0,
        intents=frozenset({"help", "repeat", "settings"}),
    ),
}


def policy_for(intent: str) -> PriorityPolicy:
    """Policy of the category listing the intent; NORMAL for unlisted intents."""
    for policy in PRIORITY_POLICIES.values():
        if intent in policy.intents:
            return policy
    return PRIORITY_POLICIES[PriorityCategory.NORMAL]


# control_type → intent whose policy a spoken control command runs under
CONTROL_INTENTS: dict[str, str] = {
    "stop": "cancel",
    "help": "help",
    "repeat": "repeat",
}


def effective_intent(intent: str, entities: Iterable[Entity] = ()) -> str:
    """
    Intent name that decides priority, timeout and retries.

    The classifier reports stop, help and repeat utterances as `control`; the
    `control_type` entity says which of them was meant.
    """
    if intent != "control":
        return intent
    for entity in entities:
        if entity.type == "control_type":
            return CONTROL_INTENTS.get(str(entity.normalized_value), intent)
    return intent

"""
Dispatch Services Package

Command dispatcher, handler registry, Swiss business rules and the
deferred-execution containers.
"""

from voice_ordering.services.dispatch.business_rules import SwissBusinessRules
from voice_ordering.services.dispatch.cache import CacheKey, ResultCache
from voice_ordering.services.dispatch.dispatcher import CommandDispatcher
from voice_ordering.services.dispatch.handlers import CommandHandlers
from voice_ordering.services.dispatch.priorities import (
    PRIORITY_POLICIES,
    PriorityPolicy,
    effective_intent,
    policy_for,
)
from voice_ordering.services.dispatch.queue import BatchBuffer, CommandQueue, ScheduledCommands
from voice_ordering.services.dispatch.transactions import TransactionTable

__all__ = [
    "SwissBusinessRules",
    "CacheKey",
    "ResultCache",
    "CommandDispatcher",
    "CommandHandlers",
    "PRIORITY_POLICIES",
    "PriorityPolicy",
    "effective_intent",
    "policy_for",
    "BatchBuffer",
    "CommandQueue",
    "ScheduledCommands",
    "TransactionTable",
]

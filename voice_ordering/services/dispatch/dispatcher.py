"""
Command Dispatcher

Turns an interpreted intent into an executed command. Selects the execution
strategy, serves read-only intents from the result cache, resolves and runs
the handler under the category timeout, and records history, metrics and
observer notifications for every outcome.

Strategies:
    - IMMEDIATE: Run now and return the handler result
    - QUEUED: Push onto the priority heap, drained one item per tick
    - BATCH: Buffer until `batch_size` commands, then run them all
    - SCHEDULED: Hold until `scheduled_for`, run by the drain tick

Usage:
    dispatcher = CommandDispatcher(settings, callbacks)
    result = await dispatcher.execute(intent, entities, context)

Version: 1.0.0
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable, Optional

from voice_ordering.core.config import Settings
from voice_ordering.core.errors import (
    ErrorCode,
    InitializationError,
    VoiceCommandError,
    is_retryable,
)
from voice_ordering.core.observers import ObserverRegistry
from voice_ordering.schemas import (
    Command,
    CommandResult,
    DomainContext,
    Entity,
    ErrorResult,
    ExecutionStrategy,
    Intent,
    PriorityCategory,
    Result,
    Transaction,
)
from voice_ordering.services.dispatch.business_rules import SwissBusinessRules
from voice_ordering.services.dispatch.cache import CacheKey, ResultCache
from voice_ordering.services.dispatch.handlers import CATEGORY_HANDLERS, CommandHandlers
from voice_ordering.services.dispatch.priorities import effective_intent, policy_for
from voice_ordering.services.dispatch.queue import BatchBuffer, CommandQueue, ScheduledCommands
from voice_ordering.services.dispatch.transactions import TransactionTable
from voice_ordering.services.learning.metrics import ExecutionMetrics
from voice_ordering.services.ordering.base import BaseOrderingCallbacks

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """
    Strategy selection, execution and bookkeeping for voice commands.

    Attributes:
        cache: Result cache for read-only intents
        transactions: Pending checkouts
        queue / batch / scheduled: Deferred command containers
        metrics: Execution counters shared with the learning engine
        observers: Side-event listeners
    """

    def __init__(
        self,
        settings: Settings,
        callbacks: BaseOrderingCallbacks,
        rules: Optional[SwissBusinessRules] = None,
        metrics: Optional[ExecutionMetrics] = None,
        observers: Optional[ObserverRegistry] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.settings = settings
        self.callbacks = callbacks
        self.rules = rules or SwissBusinessRules(settings, now=now)
        self.metrics = metrics or ExecutionMetrics()
        self.observers = observers or ObserverRegistry()
        self._now = now

        self.cache = ResultCache(settings.cache_ttl_seconds, now=now)
        self.transactions = TransactionTable(settings.transaction_ttl_seconds, now=now)
        self.queue = CommandQueue()
        self.batch = BatchBuffer(settings.batch_size)
        self.scheduled = ScheduledCommands()
        self._history: deque[Command] = deque(maxlen=settings.command_history_size)

        self.handlers = CommandHandlers(
            dispatcher=self,
            settings=settings,
            callbacks=callbacks,
            rules=self.rules,
            transactions=self.transactions,
        )
        self._validate_handlers()

        logger.info(f"Command dispatcher initialized with {callbacks.provider_name} callbacks")

    def _validate_handlers(self) -> None:
        registry = self.handlers.registry
        if not registry:
            raise InitializationError("No command handlers registered", component="dispatcher")
        missing = [name for name in CATEGORY_HANDLERS if name not in registry]
        if missing:
            raise InitializationError(
                f"Missing category handlers: {', '.join(missing)}",
                component="dispatcher",
            )

    # =========================================================================
    # COMMAND CREATION
    # =========================================================================

    def select_strategy(
        self,
        intent_name: str,
        context: DomainContext,
        requested: Optional[ExecutionStrategy] = None,
    ) -> ExecutionStrategy:
        if requested is not None:
            return requested

        category = policy_for(intent_name).category
        if category in (PriorityCategory.CRITICAL, PriorityCategory.HIGH):
            return ExecutionStrategy.IMMEDIATE
        if intent_name in self.settings.batch_intents_set:
            return ExecutionStrategy.BATCH
        if context.schedule_at is not None or intent_name in self.settings.scheduled_intents_set:
            return ExecutionStrategy.SCHEDULED
        return ExecutionStrategy.IMMEDIATE

    def create_command(
        self,
        intent: Intent,
        entities: list[Entity],
        context: DomainContext,
        strategy: Optional[ExecutionStrategy] = None,
        context_snapshot: Optional[dict[str, Any]] = None,
    ) -> Command:
        chosen = self.select_strategy(effective_intent(intent.name, entities), context, strategy)

        scheduled_for = None
        if chosen == ExecutionStrategy.SCHEDULED:
            scheduled_for = context.schedule_at or self._now()
            if scheduled_for.tzinfo is not None:
                scheduled_for = scheduled_for.astimezone().replace(tzinfo=None)

        return Command(
            id=f"cmd_{uuid.uuid4().hex[:16]}",
            intent=intent,
            entities=list(entities),
            context=context,
            context_snapshot=dict(context_snapshot or {}),
            priority_category=policy_for(effective_intent(intent.name, entities)).category,
            strategy=chosen,
            created_at=self._now(),
            scheduled_for=scheduled_for,
        )

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(
        self,
        intent: Intent,
        entities: list[Entity],
        context: DomainContext,
        strategy: Optional[ExecutionStrategy] = None,
        context_snapshot: Optional[dict[str, Any]] = None,
    ) -> Result:
        """
        Create a command and run it according to its strategy.

        Deferred strategies return an acknowledgement; the command itself
        runs later through `drain_queue_once` or when the batch fills up.
        """
        command = self.create_command(intent, entities, context, strategy, context_snapshot)
        logger.debug(f"Executing {command.id}: {intent.name} ({command.strategy.value})")

        if command.strategy == ExecutionStrategy.QUEUED:
            position = self.queue.push(command)
            return CommandResult(
                action="queued",
                message="Befehl wurde in die Warteschlange gestellt",
                data={"position": position, "queue_size": len(self.queue)},
                command_id=command.id,
                timestamp=self._now(),
            )

        if command.strategy == ExecutionStrategy.BATCH:
            position = self.batch.add(command)
            if not self.batch.is_full:
                return CommandResult(
                    action="batch_queued",
                    message="Befehl wird gesammelt ausgeführt",
                    data={"position": position, "batch_size": self.batch.size},
                    command_id=command.id,
                    timestamp=self._now(),
                )
            results = [await self.run_command(c) for c in self.batch.drain()]
            return CommandResult(
                action="batch_executed",
                message=f"{len(results)} Befehle ausgeführt",
                data={
                    "results": [r.model_dump(mode="json") for r in results],
                    "count": len(results),
                },
                command_id=command.id,
                timestamp=self._now(),
            )

        if command.strategy == ExecutionStrategy.SCHEDULED:
            self.scheduled.add(command)
            return CommandResult(
                action="scheduled",
                message=f"Befehl geplant für {command.scheduled_for:%H:%M}",
                data={"scheduled_for": command.scheduled_for.isoformat()},
                command_id=command.id,
                timestamp=self._now(),
            )

        return await self.run_command(command)

    async def run_command(self, command: Command, use_cache: bool = True) -> Result:
        """Run one command now: cache, handler, history, metrics, observers."""
        started = time.perf_counter()
        intent_name = command.intent.name
        cacheable = use_cache and self.cache.is_cacheable(intent_name)
        cache_key = CacheKey.for_command(intent_name, command.entities) if cacheable else None

        result: Optional[Result] = self.cache.get(cache_key) if cache_key else None
        if result is None:
            result = await self._run_handler(command)

        result = result.model_copy(update={
            "execution_time": round(time.perf_counter() - started, 4),
            "command_id": command.id,
            "timestamp": self._now(),
        })

        if cache_key and result.success and not result.from_cache:
            self.cache.put(cache_key, result)

        if not self._is_repeat(command):
            self._history.append(command)

        self.metrics.record_execution(intent_name, result, command.intent.confidence)

        event = "command_executed" if result.success else "command_failed"
        await self.observers.notify(event, {
            "command_id": command.id,
            "intent": intent_name,
            "session_id": command.session_id,
            "result": result.model_dump(mode="json"),
        })
        return result

    async def _run_handler(self, command: Command) -> Result:
        if self._is_repeat(command):
            previous = self.last_command(command.session_id)
            if previous is not None:
                logger.info(f"Repeating command {previous.id} ({previous.intent.name})")
                command = previous

        intent = command.intent
        policy = policy_for(effective_intent(intent.name, command.entities))

        handler = self.handlers.resolve(intent.name, intent.category)
        if handler is None:
            logger.warning(f"No handler for intent '{intent.name}'")
            return ErrorResult(
                action=intent.name,
                error=f"Kein Handler für '{intent.name}'",
                code=ErrorCode.EXECUTION_ERROR.value,
            )

        try:
            return await asyncio.wait_for(handler(command), timeout=policy.timeout)
        except VoiceCommandError as e:
            error, code = e.message, ErrorCode(e.code).value
            logger.info(f"Command {command.id} rejected: {code} ({error})")
        except asyncio.TimeoutError:
            logger.warning(f"Command {command.id} timed out after {policy.timeout}s")
            error, code = f"Zeitüberschreitung nach {policy.timeout:g}s", ErrorCode.TIMEOUT.value
        except Exception as e:
            logger.exception(f"Command {command.id} failed: {e}")
            error, code = str(e) or type(e).__name__, ErrorCode.EXECUTION_ERROR.value

        return ErrorResult(
            action=intent.name,
            error=error,
            code=code,
            retryable=is_retryable(code) and policy.retries > 0,
        )

    @staticmethod
    def _is_repeat(command: Command) -> bool:
        return effective_intent(command.intent.name, command.entities) == "repeat"

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def commit_transaction(self, transaction_id: str) -> Transaction:
        """Commit a pending transaction and hand it to the host."""
        transaction = self.transactions.commit(transaction_id)
        await self.callbacks.on_order_complete(transaction)
        await self.observers.notify("transaction_committed", {
            "transaction_id": transaction.id,
            "session_id": transaction.session_id,
        })
        return transaction

    def cancel_session(self, session_id: Optional[str]) -> dict[str, int]:
        """Drop the session's deferred commands and expire its pending transactions."""
        summary = {
            "queued": self.queue.remove_session(session_id),
            "batched": self.batch.remove_session(session_id),
            "scheduled": self.scheduled.remove_session(session_id),
            "transactions": len(self.transactions.expire_session(session_id)),
        }
        logger.info(f"Cancelled session {session_id}: {summary}")
        return summary

    # =========================================================================
    # HISTORY
    # =========================================================================

    @property
    def history(self) -> list[Command]:
        return list(self._history)

    def last_command(self, session_id: Optional[str] = None) -> Optional[Command]:
        for command in reversed(self._history):
            if command.session_id == session_id:
                return command
        return None

    # =========================================================================
    # BACKGROUND TICKS
    # =========================================================================

    async def drain_queue_once(self) -> list[Result]:
        """Run every due scheduled command and one queued command."""
        results = []
        for command in self.scheduled.pop_due(self._now()):
            results.append(await self.run_command(command))

        command = self.queue.pop()
        if command is not None:
            results.append(await self.run_command(command))
        return results

    async def sweep_expired(self) -> dict[str, int]:
        purged = self.cache.sweep()
        expired = self.transactions.sweep()
        for transaction in expired:
            await self.observers.notify("transaction_expired", {
                "transaction_id": transaction.id,
                "session_id": transaction.session_id,
            })
        return {"cache_entries": purged, "transactions": len(expired)}

    async def check_queue_size(self) -> bool:
        """Return True (and notify) when the queue exceeds `max_queue_size`."""
        size = len(self.queue)
        if size <= self.settings.max_queue_size:
            return False
        logger.warning(f"Command queue size {size} exceeds limit {self.settings.max_queue_size}")
        await self.observers.notify("queue_overflow", {
            "size": size,
            "limit": self.settings.max_queue_size,
        })
        return True

"""
Voice Command Service

Wires the interpreter, context engine, dispatcher and learning engine into
the per-utterance pipeline and owns the background ticks.

Pipeline:
    text + context → session → snapshot → interpret → (clarification | execute)
        → context update → profile update → result

Background Ticks:
    - sweep: Expired context records, cache entries and transactions
    - monitor: Queue size, `queue_overflow` above the limit
    - drain: Due scheduled commands and one queued command

Usage:
    service = create_voice_service()
    await service.start()
    response = await service.process("Ich möchte zwei Pizza", DomainContext(language="de-CH"))
    await service.stop()

Version: 1.0.0
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from voice_ordering.core.config import Settings, get_settings
from voice_ordering.core.errors import VoiceCommandError
from voice_ordering.core.observers import ObserverRegistry
from voice_ordering.schemas import (
    CommandResult,
    ContextLayer,
    ContextType,
    DomainContext,
    Entity,
    ErrorResult,
    ExecutionStrategy,
    FeedbackResponse,
    HealthResponse,
    Intent,
    Interpretation,
    ProcessResponse,
    Result,
    Session,
)
from voice_ordering.services.context import ContextEngine
from voice_ordering.services.dispatch import CommandDispatcher, SwissBusinessRules
from voice_ordering.services.learning import ExecutionMetrics, LearningEngine
from voice_ordering.services.nlp import VoiceInterpreter, context_features, resolve_locale
from voice_ordering.services.ordering import BaseOrderingCallbacks, RecordingOrderingCallbacks
from voice_ordering.services.storage import BaseKeyValueStore, get_store_for_settings

logger = logging.getLogger(__name__)

ANONYMOUS_CLIENT = "anonymous"


class VoiceCommandService:
    """
    The voice pipeline, built once at start-up and handed to callers.

    Attributes:
        interpreter: Normalizer, classifier and extractor
        context: Layered context store
        dispatcher: Command execution
        learning: Feedback, adaptation rules, user profiles
        store: Key-value persistence for the learning engine
    """

    def __init__(
        self,
        settings: Settings,
        interpreter: VoiceInterpreter,
        context: ContextEngine,
        dispatcher: CommandDispatcher,
        learning: LearningEngine,
        store: BaseKeyValueStore,
    ):
        self.settings = settings
        self.interpreter = interpreter
        self.context = context
        self.dispatcher = dispatcher
        self.learning = learning
        self.store = store
        self._tasks: list[asyncio.Task] = []

    @property
    def metrics(self) -> ExecutionMetrics:
        return self.dispatcher.metrics

    @property
    def observers(self) -> ObserverRegistry:
        return self.dispatcher.observers

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def start(self) -> None:
        """Load persisted learning state and start the background ticks."""
        await self.learning.load()
        if self._tasks:
            return

        self._tasks = [
            asyncio.create_task(self._tick("sweep", self.settings.sweep_interval_seconds, self.sweep)),
            asyncio.create_task(self._tick("monitor", self.settings.monitor_interval_seconds, self.dispatcher.check_queue_size)),
            asyncio.create_task(self._tick("drain", self.settings.drain_interval_seconds, self.dispatcher.drain_queue_once)),
        ]
        logger.info("Voice command service started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        self.context.shutdown()
        await self.store.close()
        logger.info("Voice command service stopped")

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def _tick(self, name: str, interval: float, step: Callable[[], Awaitable[Any]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await step()
            except Exception as e:
                logger.exception(f"Background tick '{name}' failed: {e}")

    async def sweep(self) -> dict[str, int]:
        summary = await self.dispatcher.sweep_expired()
        summary["context_records"] = self.context.sweep_expired()
        return summary

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def _session_for(self, context: DomainContext) -> Session:
        return self.context.start_session(context.session_id or ANONYMOUS_CLIENT)

    def end_session(self, client_id: str) -> Optional[Session]:
        return self.context.end_session(client_id)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def interpret(self, text: str, context: Optional[DomainContext] = None) -> Interpretation:
        """Classify the utterance against the session's merged context."""
        context = context or DomainContext()
        session = self._session_for(context)

        if context.current_page:
            self.context.add_context(
                ContextType.SYSTEM,
                {"page": context.current_page},
                layer=ContextLayer.PAGE,
                session_id=session.id,
            )
        snapshot = self.context.snapshot(session.id)

        profile = await self.learning.get_profile(context.user_id) if context.user_id else None
        interpretation = self.interpreter.interpret(
            text,
            context,
            snapshot=snapshot,
            profile=profile,
            rules=self.learning.rules,
        )

        self.context.add_context(
            ContextType.INTERACTION,
            {
                "text": interpretation.normalized_text,
                "intent": interpretation.intent.name,
                "language": interpretation.metadata["language"],
            },
            layer=ContextLayer.IMMEDIATE,
            session_id=session.id,
            confidence=interpretation.confidence,
        )
        return interpretation

    async def execute(
        self,
        intent: Intent,
        entities: list[Entity],
        context: Optional[DomainContext] = None,
        strategy: Optional[ExecutionStrategy] = None,
    ) -> Result:
        context = context or DomainContext()
        session = self._session_for(context)

        result = await self.dispatcher.execute(
            intent,
            entities,
            context,
            strategy=strategy,
            context_snapshot=self.context.snapshot(session.id),
        )

        self.context.add_context(
            ContextType.BUSINESS,
            {"action": result.action, "intent": intent.name, "cart_size": len(context.cart.items)},
            layer=ContextLayer.TASK,
            session_id=session.id,
        )

        if context.user_id:
            await self.learning.update_profile(
                context.user_id,
                intent.name,
                result,
                order_value=self._order_value(result),
            )
        return result

    async def process(
        self,
        text: str,
        context: Optional[DomainContext] = None,
        strategy: Optional[ExecutionStrategy] = None,
    ) -> ProcessResponse:
        """Interpret and execute, or ask for clarification when unsure."""
        context = context or DomainContext()
        interpretation = await self.interpret(text, context)

        if self.needs_clarification(interpretation):
            result: Result = self.clarification(interpretation)
            self.metrics.record_execution(interpretation.intent.name, result, interpretation.confidence)
        else:
            result = await self.execute(
                interpretation.intent,
                interpretation.entities,
                context,
                strategy=strategy,
            )
        return ProcessResponse(interpretation=interpretation, result=result)

    def needs_clarification(self, interpretation: Interpretation) -> bool:
        return (
            interpretation.intent.name == "unknown"
            or interpretation.confidence < self.settings.min_confidence
        )

    def clarification(self, interpretation: Interpretation) -> CommandResult:
        locale = interpretation.metadata.get("language", self.settings.default_locale)
        messages = self.interpreter.locale_rules[locale].messages
        if interpretation.suggestions:
            message = interpretation.suggestions[0].message
        else:
            message = messages["low_confidence"]

        return CommandResult(
            action="clarification",
            message=message,
            suggestions=interpretation.suggestions,
            data={
                "intent": interpretation.intent.name,
                "confidence": interpretation.confidence,
                "alternatives": [i.name for i in interpretation.ranked_intents[:3]],
            },
        )

    async def feedback(
        self,
        text: str,
        predicted_intent: str,
        expected_intent: str,
        context: Optional[DomainContext] = None,
    ) -> FeedbackResponse:
        """Log whether a prediction was right and mine rules from the mistakes."""
        context = context or DomainContext()
        session = self._session_for(context)
        snapshot = self.context.snapshot(session.id)
        locale = resolve_locale(
            context.language or snapshot.get("language"),
            self.interpreter.supported_locales,
            self.interpreter.default_locale,
        )

        entry = await self.learning.record_feedback(
            text,
            predicted_intent,
            expected_intent,
            context_features(context, snapshot, locale),
        )
        created = [] if entry.correct else await self.learning.mine_rules()
        return FeedbackResponse(success=True, correct=entry.correct, rules_created=len(created))

    async def commit_transaction(self, transaction_id: str) -> Result:
        try:
            transaction = await self.dispatcher.commit_transaction(transaction_id)
        except VoiceCommandError as e:
            return ErrorResult(action="order_complete", error=e.message, code=e.code.value)
        return CommandResult(
            action="order_completed",
            message="Vielen Dank für Ihre Bestellung!",
            data={
                "transaction_id": transaction.id,
                "totals": transaction.totals.model_dump() if transaction.totals else None,
            },
        )

    @staticmethod
    def _order_value(result: Result) -> Optional[float]:
        if not result.success or result.action != "order_completed":
            return None
        totals = result.data.get("totals") or {}
        return totals.get("total")

    # =========================================================================
    # STATUS
    # =========================================================================

    def metrics_snapshot(self) -> dict[str, Any]:
        snapshot = self.metrics.snapshot()
        snapshot.update({
            "queue_size": len(self.dispatcher.queue),
            "batch_size": len(self.dispatcher.batch),
            "scheduled": len(self.dispatcher.scheduled),
            "cache_entries": len(self.dispatcher.cache),
            "active_transactions": self.dispatcher.transactions.pending_count,
            "active_sessions": len(self.context.active_sessions),
            "adaptation_rules": len(self.learning.rules),
        })
        return snapshot

    async def health(self) -> HealthResponse:
        store_ok = await self.store.health_check()
        return HealthResponse(
            status="operational" if store_ok else "degraded",
            store=f"{self.store.provider_name}: {'healthy' if store_ok else 'unhealthy'}",
            queue_size=len(self.dispatcher.queue),
            active_transactions=self.dispatcher.transactions.pending_count,
            timestamp=datetime.now(),
        )


# =============================================================================
# FACTORY
# =============================================================================

def create_voice_service(
    settings: Optional[Settings] = None,
    store: Optional[BaseKeyValueStore] = None,
    callbacks: Optional[BaseOrderingCallbacks] = None,
    now: Optional[Callable[[], datetime]] = None,
) -> VoiceCommandService:
    """
    Build the voice command service.

    Args:
        settings: Configuration (defaults to get_settings())
        store: Key-value store (defaults to the configured one)
        callbacks: Host ordering callbacks (defaults to the recording mock)
        now: Clock for every time-dependent component

    Raises:
        InitializationError: Locale rule data or handlers are missing
    """
    settings = settings or get_settings()
    now = now or datetime.now
    store = store or get_store_for_settings(settings)
    callbacks = callbacks or RecordingOrderingCallbacks()

    metrics = ExecutionMetrics()
    interpreter = VoiceInterpreter(settings, now=now)
    context = ContextEngine(
        ttl_seconds=settings.context_ttl_seconds,
        history_size=settings.context_history_size,
        prediction_threshold=settings.prediction_threshold,
        now=now,
    )
    dispatcher = CommandDispatcher(
        settings,
        callbacks,
        rules=SwissBusinessRules(settings, now=now),
        metrics=metrics,
        now=now,
    )
    learning = LearningEngine(store, settings, metrics=metrics, now=now)

    logger.info(
        f"Voice service created (store={store.provider_name}, callbacks={callbacks.provider_name})"
    )
    return VoiceCommandService(
        settings=settings,
        interpreter=interpreter,
        context=context,
        dispatcher=dispatcher,
        learning=learning,
        store=store,
    )

"""Tests for the command dispatcher and its handlers."""

from datetime import datetime, timedelta

import pytest

from voice_ordering.core.config import Settings
from voice_ordering.core.errors import ErrorCode, InitializationError
from voice_ordering.schemas import (
    Cart,
    CartItem,
    DomainContext,
    Entity,
    ExecutionStrategy,
    Intent,
    PriorityCategory,
)
from voice_ordering.services.dispatch import CommandDispatcher, PriorityPolicy
from voice_ordering.services.dispatch import dispatcher as dispatcher_module
from voice_ordering.services.ordering import RecordingOrderingCallbacks


def ent(type: str, value: str, category: str = "") -> Entity:
    return Entity(type=type, category=category, raw_value=value, normalized_value=value)


@pytest.fixture
def dispatcher(settings, callbacks, clock):
    return CommandDispatcher(settings, callbacks, now=clock)


@pytest.fixture
def cart_context(context, filled_cart):
    return context.model_copy(update={"cart": filled_cart})


class TestCartHandlers:
    async def test_add_product(self, dispatcher, callbacks, context):
        result = await dispatcher.execute(
            Intent(name="order", confidence=0.9),
            [ent("quantity", "2"), ent("product", "pizza"), ent("modifier", "extra käse", "extras")],
            context,
        )

        assert result.success
        assert result.action == "product_added"
        assert result.command_id is not None
        item = callbacks.calls_to("on_product_add")[0].args[0]
        assert item.product.id == "pizza_margherita"
        assert item.quantity == 2
        assert item.price == 41.00
        assert result.data["unit_price"] == 20.50

    async def test_missing_product(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="order"), [ent("quantity", "2")], context)
        assert not result.success
        assert result.code == ErrorCode.MISSING_PRODUCT
        assert result.retryable is False

    async def test_unknown_product(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="add_product"), [ent("product", "sushi")], context)
        assert result.code == ErrorCode.PRODUCT_NOT_FOUND

    async def test_unavailable_product(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="order"), [ent("product", "cola")], context)
        assert result.code == ErrorCode.PRODUCT_UNAVAILABLE

    async def test_insufficient_stock(self, dispatcher, context):
        result = await dispatcher.execute(
            Intent(name="order"), [ent("product", "cheeseburger"), ent("quantity", "5")], context
        )
        assert result.code == ErrorCode.PRODUCT_UNAVAILABLE

    async def test_remove_product(self, dispatcher, callbacks, cart_context):
        result = await dispatcher.execute(Intent(name="remove"), [ent("product", "pizza")], cart_context)
        assert result.action == "product_removed"
        assert result.data["remaining"] == 1
        item, quantity = callbacks.calls_to("on_product_remove")[0].args
        assert (item.product.id, quantity) == ("pizza_margherita", 1)

    async def test_remove_product_not_in_cart(self, dispatcher, cart_context):
        result = await dispatcher.execute(Intent(name="remove_product"), [ent("product", "rösti")], cart_context)
        assert result.code == ErrorCode.PRODUCT_NOT_IN_CART

    async def test_update_quantity_adds_difference(self, dispatcher, callbacks, cart_context):
        result = await dispatcher.execute(
            Intent(name="update_quantity"), [ent("product", "pizza"), ent("quantity", "3")], cart_context
        )
        assert result.action == "quantity_updated"
        added = callbacks.calls_to("on_product_add")[0].args[0]
        assert (added.quantity, added.price) == (1, 18.50)

    async def test_update_quantity_removes_difference(self, dispatcher, callbacks, cart_context):
        await dispatcher.execute(
            Intent(name="update_quantity"), [ent("product", "pizza"), ent("quantity", "1")], cart_context
        )
        assert callbacks.calls_to("on_product_remove")[0].args[1] == 1


class TestNavigationAndInfo:
    async def test_navigation(self, dispatcher, callbacks, context):
        result = await dispatcher.execute(Intent(name="navigation"), [ent("target", "cart")], context)
        assert result.action == "navigated"
        assert callbacks.calls_to("on_navigate")[0].args == ("cart",)

    @pytest.mark.parametrize("entities", [[], [ent("target", "kitchen")]])
    async def test_invalid_target(self, dispatcher, context, entities):
        result = await dispatcher.execute(Intent(name="navigate"), entities, context)
        assert result.code == ErrorCode.INVALID_TARGET

    async def test_show_cart(self, dispatcher, callbacks, cart_context):
        result = await dispatcher.execute(Intent(name="show_cart"), [], cart_context)
        assert result.action == "cart_shown"
        assert result.data["totals"]["total"] == 39.85
        assert callbacks.calls_to("on_navigate")[0].args == ("cart",)

    async def test_show_menu_lists_available_products(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="show_menu"), [], context)
        names = [p["name"] for products in result.data["categories"].values() for p in products]
        assert "Cola" not in names
        assert "Pizza Margherita" in names

    async def test_price_inquiry(self, dispatcher, context):
        result = await dispatcher.execute(
            Intent(name="inquiry"), [ent("inquiry_type", "price"), ent("product", "pizza")], context
        )
        assert result.action == "price_info"
        assert result.data["price"] == 18.50
        assert "CHF 18.50" in result.message

    async def test_allergen_inquiry(self, dispatcher, context):
        result = await dispatcher.execute(
            Intent(name="inquiry"), [ent("inquiry_type", "allergens"), ent("product", "pizza")], context
        )
        assert result.action == "allergen_info"
        assert result.data["allergens"] == ["gluten", "milk"]

    async def test_category_fallback(self, dispatcher, context):
        result = await dispatcher.execute(
            Intent(name="order_pizza", category="ORDER"), [ent("product", "pizza")], context
        )
        assert result.action == "product_added"

    async def test_unknown_intent(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="dance"), [], context)
        assert result.code == ErrorCode.EXECUTION_ERROR
        assert result.action == "dance"


class TestCheckout:
    async def test_empty_cart(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="checkout"), [], context)
        assert result.code == ErrorCode.CART_EMPTY

    async def test_outside_business_hours(self, dispatcher, cart_context, clock):
        clock.set(datetime(2026, 10, 14, 23, 0))
        result = await dispatcher.execute(Intent(name="checkout"), [], cart_context)
        assert result.code == ErrorCode.BUSINESS_HOURS

    async def test_minimum_order(self, dispatcher, context, products):
        cart = Cart(items=[CartItem(product=products[2], quantity=1, price=5.00)])
        result = await dispatcher.execute(Intent(name="checkout"), [], context.model_copy(update={"cart": cart}))
        assert result.code == ErrorCode.MINIMUM_ORDER

    async def test_invalid_payment_method(self, dispatcher, cart_context):
        result = await dispatcher.execute(Intent(name="checkout"), [ent("payment_method", "bitcoin")], cart_context)
        assert result.code == ErrorCode.INVALID_PAYMENT_METHOD

    async def test_checkout_and_complete(self, dispatcher, callbacks, cart_context):
        started = await dispatcher.execute(Intent(name="checkout"), [ent("payment_method", "twint")], cart_context)
        assert started.action == "checkout_started"
        assert started.data["totals"]["total"] == 39.85
        assert started.data["expires_in"] == 300
        transaction_id = started.data["transaction_id"]

        completed = await dispatcher.execute(Intent(name="order_complete"), [], cart_context)
        assert completed.action == "order_completed"
        assert completed.data["transaction_id"] == transaction_id
        assert callbacks.calls_to("on_order_complete")[0].args[0].id == transaction_id

        again = await dispatcher.execute(Intent(name="order_complete"), [], cart_context)
        assert again.code == ErrorCode.NO_PENDING_TRANSACTION

    async def test_complete_by_transaction_id(self, dispatcher, cart_context):
        started = await dispatcher.execute(Intent(name="checkout"), [], cart_context)
        context = cart_context.model_copy(update={"session_id": "another-client"})
        context = DomainContext(**context.model_dump(), transaction_id=started.data["transaction_id"])

        completed = await dispatcher.execute(Intent(name="order_complete"), [], context)
        assert completed.action == "order_completed"

    async def test_payment_selection(self, dispatcher, cart_context):
        await dispatcher.execute(Intent(name="checkout"), [], cart_context)
        result = await dispatcher.execute(Intent(name="payment"), [ent("payment_method", "kreditkarte")], cart_context)
        assert result.action == "payment_selected"
        assert dispatcher.transactions.latest_pending("client-1").payment_method == "kreditkarte"

    async def test_payment_without_checkout(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="payment"), [ent("payment_method", "twint")], context)
        assert result.code == ErrorCode.NO_PENDING_TRANSACTION


class TestControl:
    async def test_repeat_without_history(self, dispatcher, context):
        result = await dispatcher.execute(Intent(name="repeat"), [], context)
        assert result.code == ErrorCode.NO_PREVIOUS_COMMAND

    async def test_repeat_runs_last_command(self, dispatcher, callbacks, context):
        await dispatcher.execute(Intent(name="navigation"), [ent("target", "menu")], context)
        result = await dispatcher.execute(Intent(name="repeat"), [], context)

        assert result.action == "navigated"
        assert len(callbacks.calls_to("on_navigate")) == 2
        assert [c.intent.name for c in dispatcher.history] == ["navigation"]

    async def test_repeat_is_recorded_once(self, dispatcher, context):
        events = []
        dispatcher.observers.register("command_executed", lambda event, payload: events.append(payload["intent"]))

        await dispatcher.execute(Intent(name="navigation"), [ent("target", "menu")], context)
        await dispatcher.execute(Intent(name="control"), [ent("control_type", "repeat")], context)

        assert dispatcher.metrics.total_commands == 2
        assert events == ["navigation", "control"]

    async def test_repeat_runs_under_previous_policy(self, settings, clock, context):
        # 1.2 s is over the LOW timeout of repeat but within the NORMAL timeout of navigation
        dispatcher = CommandDispatcher(settings, RecordingOrderingCallbacks(latency=1.2), now=clock)
        first = await dispatcher.execute(Intent(name="navigation"), [ent("target", "menu")], context)
        repeated = await dispatcher.execute(Intent(name="repeat"), [], context)

        assert first.action == "navigated"
        assert repeated.action == "navigated"
        assert repeated.success is True

    async def test_repeat_is_per_session(self, dispatcher, context):
        await dispatcher.execute(Intent(name="help"), [], context)
        other = context.model_copy(update={"session_id": "client-2"})
        result = await dispatcher.execute(Intent(name="repeat"), [], other)
        assert result.code == ErrorCode.NO_PREVIOUS_COMMAND

    async def test_control_routes_by_type(self, dispatcher, context):
        volume = await dispatcher.execute(Intent(name="control"), [ent("control_type", "volume")], context)
        assert volume.action == "volume_adjusted"
        help_result = await dispatcher.execute(Intent(name="control"), [], context)
        assert help_result.action == "help"

    async def test_cancel_drops_session_work(self, dispatcher, cart_context):
        await dispatcher.execute(Intent(name="help"), [], cart_context, strategy=ExecutionStrategy.QUEUED)
        await dispatcher.execute(Intent(name="show_menu"), [], cart_context, strategy=ExecutionStrategy.QUEUED)
        await dispatcher.execute(Intent(name="checkout"), [], cart_context)

        result = await dispatcher.execute(Intent(name="stop"), [], cart_context)

        assert result.action == "cancelled"
        assert result.data == {"queued": 2, "batched": 0, "scheduled": 0, "transactions": 1}
        assert len(dispatcher.queue) == 0
        assert dispatcher.transactions.pending_count == 0


class TestStrategies:
    async def test_queued(self, dispatcher, callbacks, context):
        ack = await dispatcher.execute(
            Intent(name="navigation"), [ent("target", "cart")], context, strategy=ExecutionStrategy.QUEUED
        )
        assert ack.action == "queued"
        assert ack.data == {"position": 1, "queue_size": 1}
        assert callbacks.calls == []

        results = await dispatcher.drain_queue_once()
        assert [r.action for r in results] == ["navigated"]
        assert await dispatcher.drain_queue_once() == []

    async def test_drain_serves_highest_priority_first(self, dispatcher, context):
        # the cancel runs in its own session so it leaves the other commands queued
        other = context.model_copy(update={"session_id": "client-2"})
        queued = [("help", context), ("checkout", context), ("cancel", other), ("show_menu", context)]
        for name, ctx in queued:
            await dispatcher.execute(Intent(name=name), [], ctx, strategy=ExecutionStrategy.QUEUED)

        actions = []
        for _ in range(4):
            actions.extend(r.action for r in await dispatcher.drain_queue_once())
        assert actions == ["cancelled", "checkout", "menu_shown", "help"]

    @pytest.mark.parametrize("control_type,category", [
        ("stop", PriorityCategory.CRITICAL),
        ("help", PriorityCategory.LOW),
        ("repeat", PriorityCategory.LOW),
        ("volume", PriorityCategory.NORMAL),
    ])
    def test_control_takes_policy_of_its_type(self, dispatcher, context, control_type, category):
        command = dispatcher.create_command(Intent(name="control"), [ent("control_type", control_type)], context)
        assert command.priority_category == category

    async def test_spoken_stop_runs_immediately(self, dispatcher, callbacks, context):
        await dispatcher.execute(Intent(name="help"), [], context, strategy=ExecutionStrategy.QUEUED)
        result = await dispatcher.execute(Intent(name="control"), [ent("control_type", "stop")], context)

        assert result.action == "cancelled"
        assert result.data["queued"] == 1

    async def test_batch(self, callbacks, clock, context):
        dispatcher = CommandDispatcher(Settings(_env_file=None, batch_size=2), callbacks, now=clock)
        entities = [ent("product", "pizza")]

        first = await dispatcher.execute(Intent(name="price_check"), entities, context)
        assert first.action == "batch_queued"
        assert first.data["position"] == 1

        second = await dispatcher.execute(Intent(name="allergen_info"), entities, context)
        assert second.action == "batch_executed"
        assert second.data["count"] == 2
        assert [r["action"] for r in second.data["results"]] == ["price_info", "allergen_info"]

    async def test_high_priority_ignores_batch_list(self, callbacks, clock, cart_context):
        dispatcher = CommandDispatcher(Settings(_env_file=None, batch_intents="checkout"), callbacks, now=clock)
        result = await dispatcher.execute(Intent(name="checkout"), [], cart_context)
        assert result.action == "checkout_started"

    async def test_scheduled(self, dispatcher, clock, context):
        due = clock() + timedelta(minutes=10)
        scheduled_context = context.model_copy(update={"schedule_at": due})

        ack = await dispatcher.execute(Intent(name="show_menu"), [], scheduled_context)
        assert ack.action == "scheduled"
        assert ack.data["scheduled_for"] == due.isoformat()

        assert await dispatcher.drain_queue_once() == []
        clock.advance(600)
        assert [r.action for r in await dispatcher.drain_queue_once()] == ["menu_shown"]


class TestExecutionBoundary:
    async def test_inquiry_is_cached(self, dispatcher, context):
        entities = [ent("inquiry_type", "price"), ent("product", "pizza")]
        first = await dispatcher.execute(Intent(name="inquiry"), entities, context)
        second = await dispatcher.execute(Intent(name="inquiry"), entities, context)

        assert first.from_cache is False
        assert second.from_cache is True
        assert (second.action, second.message, second.data) == (first.action, first.message, first.data)
        assert dispatcher.metrics.cache_hits == 1

    async def test_mutations_are_not_cached(self, dispatcher, callbacks, context):
        for _ in range(2):
            result = await dispatcher.execute(Intent(name="order"), [ent("product", "pizza")], context)
            assert result.from_cache is False
        assert len(callbacks.calls_to("on_product_add")) == 2

    async def test_transient_callback_failure_is_retryable(self, settings, clock, context):
        callbacks = RecordingOrderingCallbacks(failures={"on_navigate": ErrorCode.NETWORK_ERROR})
        dispatcher = CommandDispatcher(settings, callbacks, now=clock)
        result = await dispatcher.execute(Intent(name="navigation"), [ent("target", "cart")], context)
        assert result.code == ErrorCode.NETWORK_ERROR
        assert result.retryable is True

    async def test_unexpected_exception(self, settings, clock, context):
        class BrokenCallbacks(RecordingOrderingCallbacks):
            async def on_navigate(self, target):
                raise RuntimeError("host crashed")

        dispatcher = CommandDispatcher(settings, BrokenCallbacks(), now=clock)
        result = await dispatcher.execute(Intent(name="navigation"), [ent("target", "cart")], context)
        assert result.code == ErrorCode.EXECUTION_ERROR
        assert result.error == "host crashed"
        assert dispatcher.metrics.error_counts["EXECUTION_ERROR"] == 1

    @pytest.mark.parametrize("retries,retryable", [(1, True), (0, False)])
    async def test_timeout(self, monkeypatch, settings, clock, context, retries, retryable):
        policy = PriorityPolicy(PriorityCategory.NORMAL, 3, 0.01, retries, frozenset())
        monkeypatch.setattr(dispatcher_module, "policy_for", lambda intent: policy)
        dispatcher = CommandDispatcher(settings, RecordingOrderingCallbacks(latency=1.0), now=clock)

        result = await dispatcher.execute(Intent(name="navigation"), [ent("target", "cart")], context)
        assert result.code == ErrorCode.TIMEOUT
        assert result.retryable is retryable

    async def test_observers_and_metrics(self, dispatcher, context):
        events = []
        dispatcher.observers.register("command_executed", lambda event, payload: events.append(event))
        dispatcher.observers.register("command_failed", lambda event, payload: events.append(event))

        await dispatcher.execute(Intent(name="help"), [], context)
        await dispatcher.execute(Intent(name="checkout"), [], context)

        assert events == ["command_executed", "command_failed"]
        snapshot = dispatcher.metrics.snapshot()
        assert snapshot["total_commands"] == 2
        assert snapshot["successful_commands"] == 1
        assert snapshot["error_counts"] == {"CART_EMPTY": 1}
        assert snapshot["action_counts"] == {"help": 1, "checkout": 1}

    async def test_history_is_bounded(self, callbacks, clock, context):
        dispatcher = CommandDispatcher(Settings(_env_file=None, command_history_size=3), callbacks, now=clock)
        for _ in range(5):
            await dispatcher.execute(Intent(name="show_menu"), [], context)
        assert len(dispatcher.history) == 3


class TestBackgroundWork:
    async def test_queue_overflow(self, callbacks, clock, context):
        dispatcher = CommandDispatcher(Settings(_env_file=None, max_queue_size=1), callbacks, now=clock)
        overflows = []
        dispatcher.observers.register("queue_overflow", lambda event, payload: overflows.append(payload))

        await dispatcher.execute(Intent(name="help"), [], context, strategy=ExecutionStrategy.QUEUED)
        assert await dispatcher.check_queue_size() is False

        await dispatcher.execute(Intent(name="help"), [], context, strategy=ExecutionStrategy.QUEUED)
        assert await dispatcher.check_queue_size() is True
        assert overflows == [{"size": 2, "limit": 1}]

    async def test_sweep_expires_transactions(self, dispatcher, clock, cart_context):
        expired = []
        dispatcher.observers.register("transaction_expired", lambda event, payload: expired.append(payload))
        await dispatcher.execute(Intent(name="checkout"), [], cart_context)

        clock.advance(301)
        summary = await dispatcher.sweep_expired()

        assert summary["transactions"] == 1
        assert expired[0]["session_id"] == "client-1"

    def test_missing_category_handler_fails_fast(self, monkeypatch, settings, callbacks):
        monkeypatch.setattr(dispatcher_module, "CATEGORY_HANDLERS", ("order", "kitchen"))
        with pytest.raises(InitializationError) as exc:
            CommandDispatcher(settings, callbacks)
        assert exc.value.component == "dispatcher"

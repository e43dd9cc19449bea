"""Tests for the result cache, priority queue, batch buffer, schedule and transaction table."""

from datetime import datetime, timedelta

import pytest

from voice_ordering.core.errors import ErrorCode, VoiceCommandError
from voice_ordering.schemas import (
    Command,
    CommandResult,
    DomainContext,
    Entity,
    Intent,
    OrderTotals,
    PriorityCategory,
    TransactionStatus,
)
from voice_ordering.services.dispatch import (
    BatchBuffer,
    CacheKey,
    CommandQueue,
    ResultCache,
    ScheduledCommands,
    TransactionTable,
    effective_intent,
    policy_for,
)


def command(intent: str, session_id: str = "s1", scheduled_for: datetime = None, entities=()) -> Command:
    return Command(
        id=f"cmd_{intent}",
        intent=Intent(name=intent),
        entities=list(entities),
        context=DomainContext(session_id=session_id),
        created_at=datetime(2026, 10, 14, 12, 0),
        scheduled_for=scheduled_for,
    )


TOTALS = OrderTotals(subtotal=20.0, tax=1.54, delivery_fee=3.5, total=25.04)


class TestPriorities:
    @pytest.mark.parametrize("intent,category,timeout,retries", [
        ("cancel", PriorityCategory.CRITICAL, 5.0, 3),
        ("checkout", PriorityCategory.HIGH, 3.0, 2),
        ("add_product", PriorityCategory.NORMAL, 2.0, 1),
        ("help", PriorityCategory.LOW, 1.0, 0),
        ("something_else", PriorityCategory.NORMAL, 2.0, 1),
    ])
    def test_policy_for(self, intent, category, timeout, retries):
        policy = policy_for(intent)
        assert (policy.category, policy.timeout, policy.retries) == (category, timeout, retries)

    @pytest.mark.parametrize("control_type,expected", [
        ("stop", "cancel"),
        ("help", "help"),
        ("repeat", "repeat"),
        ("volume", "control"),
    ])
    def test_control_resolves_through_its_type(self, control_type, expected):
        entities = [Entity(type="control_type", normalized_value=control_type)]
        assert effective_intent("control", entities) == expected

    def test_other_intents_keep_their_name(self):
        entities = [Entity(type="control_type", normalized_value="stop")]
        assert effective_intent("checkout", entities) == "checkout"
        assert effective_intent("control") == "control"


class TestCommandQueue:
    def test_priority_order(self):
        queue = CommandQueue()
        queue.push(command("help"))
        queue.push(command("cancel"))
        queue.push(command("add_product"))

        order = [queue.pop().intent.name for _ in range(3)]
        assert order == ["cancel", "add_product", "help"]
        assert queue.pop() is None

    def test_control_commands_queue_by_type(self):
        queue = CommandQueue()
        help_command = command("control", entities=[Entity(type="control_type", normalized_value="help")])
        stop_command = command("control", entities=[Entity(type="control_type", normalized_value="stop")])
        navigation = command("navigation")
        queue.push(help_command)
        queue.push(navigation)
        queue.push(stop_command)

        assert queue.pop() is stop_command
        assert queue.pop() is navigation
        assert queue.pop() is help_command

    def test_fifo_within_priority(self):
        queue = CommandQueue()
        first, second = command("add_product"), command("navigation")
        queue.push(first)
        queue.push(second)
        assert queue.pop() is first
        assert queue.pop() is second

    def test_push_returns_service_position(self):
        queue = CommandQueue()
        assert queue.push(command("help")) == 1
        assert queue.push(command("cancel")) == 1
        assert queue.push(command("add_product")) == 2
        assert len(queue) == 3
        assert queue.peek().intent.name == "cancel"

    def test_remove_session(self):
        queue = CommandQueue()
        queue.push(command("help", "s1"))
        queue.push(command("help", "s2"))
        assert queue.remove_session("s1") == 1
        assert queue.pop().session_id == "s2"


class TestBatchAndSchedule:
    def test_batch_fills_up(self):
        batch = BatchBuffer(size=2)
        assert batch.add(command("price_check")) == 1
        assert not batch.is_full
        batch.add(command("allergen_info"))
        assert batch.is_full
        assert len(batch.drain()) == 2
        assert len(batch) == 0

    def test_scheduled_commands_become_due(self):
        noon = datetime(2026, 10, 14, 12, 0)
        scheduled = ScheduledCommands()
        scheduled.add(command("order", scheduled_for=noon + timedelta(minutes=30)))
        scheduled.add(command("help", scheduled_for=noon + timedelta(minutes=5)))

        assert scheduled.pop_due(noon) == []
        assert [c.intent.name for c in scheduled.pop_due(noon + timedelta(minutes=10))] == ["help"]
        assert len(scheduled) == 1
        assert scheduled.remove_session("s1") == 1


class TestResultCache:
    def test_hit_returns_marked_copy(self, clock):
        cache = ResultCache(ttl_seconds=300, now=clock)
        key = CacheKey.for_command("inquiry", [Entity(type="product", normalized_value="pizza")])
        original = CommandResult(action="price_info", message="Pizza kostet CHF 18.50", data={"price": 18.5})
        cache.put(key, original)

        cached = cache.get(key)
        assert cached.from_cache is True
        assert cached.data == original.data
        assert original.from_cache is False

        cached.data["price"] = 0
        assert cache.get(key).data["price"] == 18.5

    def test_entity_order_does_not_matter(self):
        a = Entity(type="product", normalized_value="pizza")
        b = Entity(type="inquiry_type", normalized_value="price")
        assert CacheKey.for_command("inquiry", [a, b]) == CacheKey.for_command("inquiry", [b, a])

    def test_expiry_and_sweep(self, clock):
        cache = ResultCache(ttl_seconds=300, now=clock)
        key = CacheKey.for_command("help", [])
        cache.put(key, CommandResult(action="help", message="..."))
        clock.advance(301)

        assert cache.get(key) is None
        assert cache.sweep() == 1
        assert len(cache) == 0

    def test_mutating_intents_are_not_cached(self, clock):
        cache = ResultCache(now=clock)
        key = CacheKey.for_command("order", [])
        cache.put(key, CommandResult(action="product_added", message="..."))
        assert len(cache) == 0


class TestTransactionTable:
    def test_create_and_commit(self, clock):
        table = TransactionTable(ttl_seconds=300, now=clock)
        transaction = table.create("s1", [], TOTALS, "twint")
        assert table.latest_pending("s1") is transaction
        assert table.pending_count == 1

        committed = table.commit(transaction.id)
        assert committed.status == TransactionStatus.COMMITTED
        assert committed.committed_at == clock()
        assert table.latest_pending("s1") is None

    def test_commit_twice_fails(self, clock):
        table = TransactionTable(now=clock)
        transaction = table.create("s1", [], TOTALS)
        table.commit(transaction.id)
        with pytest.raises(VoiceCommandError) as exc:
            table.commit(transaction.id)
        assert exc.value.code == ErrorCode.NO_PENDING_TRANSACTION

    def test_expired_transaction_cannot_commit(self, clock):
        table = TransactionTable(ttl_seconds=300, now=clock)
        transaction = table.create("s1", [], TOTALS)
        clock.advance(300)
        with pytest.raises(VoiceCommandError):
            table.commit(transaction.id)
        assert transaction.status == TransactionStatus.EXPIRED

    def test_sweep_purges_stale(self, clock):
        table = TransactionTable(ttl_seconds=300, now=clock)
        pending = table.create("s1", [], TOTALS)
        committed = table.create("s1", [], TOTALS)
        table.commit(committed.id)
        clock.advance(301)

        expired = table.sweep()
        assert expired == [pending]
        assert len(table) == 0

    def test_expire_session(self, clock):
        table = TransactionTable(now=clock)
        table.create("s1", [], TOTALS)
        table.create("s2", [], TOTALS)
        assert len(table.expire_session("s1")) == 1
        assert table.pending_count == 1

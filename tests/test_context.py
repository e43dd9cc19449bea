"""Tests for the layered context engine."""

from datetime import datetime

import pytest

from voice_ordering.schemas import ContextLayer, ContextType
from voice_ordering.services.context import ContextEngine
from voice_ordering.services.context.patterns import is_context_business_hours, meal_time


@pytest.fixture
def engine(clock):
    return ContextEngine(ttl_seconds=3600, history_size=100, prediction_threshold=0.7, now=clock)


class TestRecords:
    def test_higher_layer_wins(self, engine):
        engine.add_context(ContextType.SYSTEM, {"page": "home"}, layer=ContextLayer.GLOBAL)
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE)
        engine.add_context(ContextType.SYSTEM, {"page": "profile"}, layer=ContextLayer.SESSION)

        assert engine.snapshot()["page"] == "menu"
        assert engine.resolve(ContextType.SYSTEM).payload["page"] == "menu"

    def test_newer_record_wins_within_layer(self, engine, clock):
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE)
        clock.advance(1)
        engine.add_context(ContextType.SYSTEM, {"page": "cart"}, layer=ContextLayer.PAGE)

        assert engine.snapshot()["page"] == "cart"

    def test_same_timestamp_keeps_insertion_order(self, engine):
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE)
        engine.add_context(ContextType.SYSTEM, {"page": "cart"}, layer=ContextLayer.PAGE)

        assert engine.resolve(ContextType.SYSTEM).payload["page"] == "cart"

    def test_get_context_ordering_and_filters(self, engine):
        engine.add_context(ContextType.USER, {"name": "a"}, layer=ContextLayer.SESSION)
        engine.add_context(ContextType.INTERACTION, {"text": "b"}, confidence=0.5)
        engine.add_context(ContextType.SYSTEM, {"page": "c"}, layer=ContextLayer.PAGE)

        layers = [r.layer for r in engine.get_context()]
        assert layers == [ContextLayer.IMMEDIATE, ContextLayer.PAGE, ContextLayer.SESSION]
        assert len(engine.get_context(min_confidence=0.9)) == 2
        assert [r.type for r in engine.get_context(type=ContextType.USER)] == [ContextType.USER]
        assert len(engine.get_context(layer=ContextLayer.PAGE)) == 1

    def test_current_context_is_partitioned_by_layer(self, engine):
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE)
        current = engine.get_current_context()
        assert len(current[ContextLayer.PAGE]) == 1
        assert current[ContextLayer.GLOBAL] == []

    def test_records_expire(self, clock):
        engine = ContextEngine(ttl_seconds=60, now=clock)
        engine.add_context(ContextType.SYSTEM, {"page": "menu"})
        clock.advance(61)

        assert engine.get_context() == []
        assert engine.sweep_expired() == 1

    def test_snapshot_adds_time_features(self, engine):
        snapshot = engine.snapshot()
        assert snapshot["meal_time"] == "lunch"
        assert snapshot["business_hours"] is True


class TestSessions:
    def test_start_session_is_idempotent(self, engine):
        first = engine.start_session("client-1")
        assert engine.start_session("client-1").id == first.id
        assert engine.get_session("client-1") is first

    def test_end_session_hides_its_records(self, engine):
        session = engine.start_session("client-1")
        other = engine.start_session("client-2")
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE, session_id=session.id)
        engine.add_context(ContextType.SYSTEM, {"page": "cart"}, layer=ContextLayer.PAGE, session_id=other.id)

        ended = engine.end_session("client-1")

        assert ended.ended_at is not None
        assert engine.get_context(session_id=session.id) == []
        assert engine.snapshot(other.id)["page"] == "cart"
        assert [s.client_id for s in engine.active_sessions] == ["client-2"]

    def test_new_session_after_end(self, engine):
        first = engine.start_session("client-1")
        engine.end_session("client-1")
        assert engine.start_session("client-1").id != first.id

    def test_records_are_tracked_on_session(self, engine):
        session = engine.start_session("client-1")
        record = engine.add_context(ContextType.USER, {"name": "x"}, session_id=session.id)
        assert session.context_ids == [record.id]

    def test_shutdown(self, engine):
        engine.start_session("client-1")
        engine.add_context(ContextType.USER, {"name": "x"})
        engine.shutdown()
        assert engine.active_sessions == []
        assert engine.get_context() == []


class TestPatterns:
    def test_temporal_pattern(self, engine):
        record = engine.add_context(ContextType.USER, {"name": "x"})
        temporal = [p for p in engine.get_patterns(record.id) if p.kind == "temporal"]
        assert temporal[0].vocabulary == ["lunch"]
        assert temporal[0].confidence == pytest.approx(0.8)

    def test_sequential_pattern(self, engine):
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE)
        engine.add_context(ContextType.INTERACTION, {"intent": "inquiry"})
        record = engine.add_context(ContextType.BUSINESS, {"action": "price_info"}, layer=ContextLayer.TASK)

        names = [p.name for p in engine.get_patterns(record.id)]
        assert "sequential_browse_inquire_order" in names

    def test_sequences_do_not_cross_sessions(self, engine):
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE, session_id="sess_a")
        engine.add_context(ContextType.INTERACTION, {"intent": "inquiry"}, session_id="sess_b")
        record = engine.add_context(
            ContextType.BUSINESS, {"action": "price_info"}, layer=ContextLayer.TASK, session_id="sess_a"
        )

        names = [p.name for p in engine.get_patterns(record.id)]
        assert "sequential_browse_inquire_order" not in names

    def test_sequence_within_interleaved_session(self, engine):
        engine.add_context(ContextType.SYSTEM, {"page": "menu"}, layer=ContextLayer.PAGE, session_id="sess_a")
        engine.add_context(ContextType.BUSINESS, {"action": "cart_shown"}, session_id="sess_b")
        engine.add_context(ContextType.INTERACTION, {"intent": "inquiry"}, session_id="sess_a")
        record = engine.add_context(
            ContextType.BUSINESS, {"action": "price_info"}, layer=ContextLayer.TASK, session_id="sess_a"
        )

        names = [p.name for p in engine.get_patterns(record.id)]
        assert "sequential_browse_inquire_order" in names

    def test_boost_window_excludes_new_record(self, engine):
        # three trigger hits score 0.9, which is not above the threshold
        record = engine.add_context(ContextType.INTERACTION, {"text": "ich möchte bestellen nimm menu"})
        assert "ORDERING" not in [p.name for p in engine.get_patterns(record.id)]

    def test_boost_window_uses_own_session(self, engine):
        for _ in range(5):
            engine.add_context(ContextType.INTERACTION, {"text": "menu"}, session_id="sess_b")
        record = engine.add_context(
            ContextType.INTERACTION, {"text": "ich möchte bestellen nimm"}, session_id="sess_a"
        )
        assert "ORDERING" not in [p.name for p in engine.get_patterns(record.id)]

        engine.add_context(ContextType.INTERACTION, {"text": "menu"}, session_id="sess_a")
        boosted = engine.add_context(
            ContextType.INTERACTION, {"text": "ich möchte bestellen nimm"}, session_id="sess_a"
        )
        patterns = {p.name: p for p in engine.get_patterns(boosted.id)}
        # 0.9 + (1 boosting record of 5) × 0.4
        assert patterns["ORDERING"].confidence == pytest.approx(0.98)

    def test_trigger_pattern_prediction(self, engine):
        for _ in range(4):
            engine.add_context(ContextType.INTERACTION, {"text": "menu"})
        record = engine.add_context(ContextType.INTERACTION, {"text": "ich möchte bestellen nimm menu"})

        patterns = {p.name: p for p in engine.get_patterns(record.id)}
        assert patterns["ORDERING"].confidence == pytest.approx(1.0)

        predictions = engine.get_predictions(record.id)
        assert predictions[0].pattern == "ORDERING"
        assert predictions[0].confidence == pytest.approx(0.8)
        assert predictions[0].predicted == ["business", "interaction"]

    def test_weak_patterns_are_not_predicted(self, engine):
        record = engine.add_context(ContextType.USER, {"name": "x"})
        # temporal pattern 0.8 × 0.8 stays below the threshold
        assert engine.get_predictions(record.id) == []

    def test_behavior_prediction(self, engine):
        for _ in range(3):
            engine.add_context(ContextType.BUSINESS, {"action": "product_added"}, layer=ContextLayer.TASK)
            engine.add_context(ContextType.BUSINESS, {"action": "checkout_started"}, layer=ContextLayer.TASK)
        record = engine.add_context(ContextType.BUSINESS, {"action": "product_added"}, layer=ContextLayer.TASK)

        behavior = [p for p in engine.get_predictions(record.id) if p.source == "behavior"]
        assert behavior[0].predicted == ["checkout_started"]
        assert behavior[0].confidence == pytest.approx(0.75)

    def test_history_is_bounded(self, clock):
        engine = ContextEngine(history_size=3, now=clock)
        first = engine.add_context(ContextType.USER, {"name": "a"})
        for name in "bcd":
            engine.add_context(ContextType.USER, {"name": name})
        assert engine.get_patterns(first.id) == []


class TestTimeHelpers:
    @pytest.mark.parametrize("hour,expected", [
        (7, "breakfast"),
        (12, "lunch"),
        (15, None),
        (19, "dinner"),
        (23, "late_night"),
        (1, "late_night"),
        (3, None),
    ])
    def test_meal_time(self, hour, expected):
        assert meal_time(datetime(2026, 10, 14, hour, 30)) == expected

    def test_context_business_hours(self):
        assert is_context_business_hours(datetime(2026, 10, 14, 12, 0)) is True
        assert is_context_business_hours(datetime(2026, 10, 14, 23, 30)) is False
        assert is_context_business_hours(datetime(2026, 10, 17, 10, 30)) is True

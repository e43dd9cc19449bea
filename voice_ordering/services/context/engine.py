"""
Context Engine

Owns the layered context records of every session. Records are written only
through `add_context`; they stop being visible when they expire or their
session ends. Readers pick a winner per type by layer, then recency.

Usage:
    engine = ContextEngine(ttl_seconds=3600)
    session = engine.start_session("client_42")
    engine.add_context(ContextType.SYSTEM, {"page": "/menu"},
                       layer=ContextLayer.PAGE, session_id=session.id)
    engine.snapshot(session.id)   # {"page": "/menu", "meal_time": "lunch", ...}

Version: 1.0.0
"""

import json
import logging
import uuid
from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from voice_ordering.schemas import (
    ContextLayer,
    ContextRecord,
    ContextType,
    DetectedPattern,
    Prediction,
    Session,
)
from voice_ordering.services.context import patterns as p

logger = logging.getLogger(__name__)


def _payload_text(payload: dict[str, Any]) -> str:
    return json.dumps(payload, default=str, ensure_ascii=False).lower()


class ContextEngine:
    """
    Layered context store with pattern detection and short-horizon predictions.

    Attributes:
        ttl: Lifetime of every record
        history_size: Records kept per session (and for session-less records) for pattern analysis
        prediction_threshold: Predictions at or below this are discarded
    """

    def __init__(
        self,
        ttl_seconds: int = 3600,
        history_size: int = 100,
        prediction_threshold: float = 0.7,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.history_size = history_size
        self.prediction_threshold = prediction_threshold
        self._now = now

        self._records: dict[str, ContextRecord] = {}
        self._histories: dict[Optional[str], deque[ContextRecord]] = {}
        self._sessions: dict[str, Session] = {}
        self._patterns: dict[str, list[DetectedPattern]] = {}
        self._predictions: dict[str, list[Prediction]] = {}
        self._sequence = 0

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def start_session(self, client_id: str) -> Session:
        """Return the client's active session, creating one if needed."""
        session = self._sessions.get(client_id)
        if session is not None and session.is_active:
            return session

        session = Session(
            id=f"sess_{uuid.uuid4().hex[:12]}",
            client_id=client_id,
            started_at=self._now(),
        )
        self._sessions[client_id] = session
        logger.info(f"Session started: {session.id} (client={client_id})")
        return session

    def end_session(self, client_id: str) -> Optional[Session]:
        session = self._sessions.get(client_id)
        if session is None or not session.is_active:
            return None

        session.ended_at = self._now()
        for record in self._records.values():
            if record.session_id == session.id:
                record.active = False
        logger.info(f"Session ended: {session.id} (client={client_id})")
        return session

    def get_session(self, client_id: str) -> Optional[Session]:
        return self._sessions.get(client_id)

    @property
    def active_sessions(self) -> list[Session]:
        return [s for s in self._sessions.values() if s.is_active]

    # =========================================================================
    # RECORDS
    # =========================================================================

    def add_context(
        self,
        type: ContextType,
        payload: dict[str, Any],
        layer: ContextLayer = ContextLayer.IMMEDIATE,
        session_id: Optional[str] = None,
        confidence: float = 1.0,
    ) -> ContextRecord:
        """
        Store a new record, analyse it for patterns and sweep expired ones.

        Returns:
            The stored record
        """
        now = self._now()
        self._sequence += 1
        record = ContextRecord(
            id=f"ctx_{uuid.uuid4().hex[:12]}",
            type=type,
            layer=layer,
            payload=dict(payload),
            created_at=now,
            expires_at=now + self.ttl,
            confidence=confidence,
            session_id=session_id,
            sequence=self._sequence,
        )

        self._records[record.id] = record
        history = self._histories.setdefault(session_id, deque(maxlen=self.history_size))
        previous = list(history)
        if len(history) == history.maxlen:
            dropped = history[0]
            self._patterns.pop(dropped.id, None)
            self._predictions.pop(dropped.id, None)
        history.append(record)

        session = self._session_by_id(session_id)
        if session is not None:
            session.context_ids.append(record.id)

        detected = self.detect_patterns(record, previous)
        self._patterns[record.id] = detected
        self._predictions[record.id] = self._predict(record, detected, previous)

        self.sweep_expired()
        logger.debug(f"Context added: {record.type.value}@{record.layer.name} ({len(detected)} patterns)")
        return record

    def get_context(
        self,
        type: Optional[ContextType] = None,
        layer: Optional[ContextLayer] = None,
        min_confidence: Optional[float] = None,
        session_id: Optional[str] = None,
    ) -> list[ContextRecord]:
        """Visible records, most specific layer first, then most recent."""
        now = self._now()
        records = [
            r for r in self._records.values()
            if r.is_visible(now)
            and (type is None or r.type == type)
            and (layer is None or r.layer == layer)
            and (min_confidence is None or r.confidence >= min_confidence)
            and (session_id is None or r.session_id in (None, session_id))
        ]
        records.sort(key=lambda r: (r.layer, r.created_at, r.sequence), reverse=True)
        return records

    def get_current_context(self, session_id: Optional[str] = None) -> dict[ContextLayer, list[ContextRecord]]:
        records = self.get_context(session_id=session_id)
        return {
            layer: [r for r in records if r.layer == layer]
            for layer in sorted(ContextLayer, reverse=True)
        }

    def resolve(self, type: ContextType, session_id: Optional[str] = None) -> Optional[ContextRecord]:
        """The record of this type the classifier consults."""
        records = self.get_context(type=type, session_id=session_id)
        return records[0] if records else None

    def snapshot(self, session_id: Optional[str] = None) -> dict[str, Any]:
        """
        Flat merged view of all visible records.

        Lower layers are applied first so that higher layers (and, within a
        layer, newer records) override them.
        """
        now = self._now()
        merged: dict[str, Any] = {}
        for record in reversed(self.get_context(session_id=session_id)):
            merged.update(record.payload)

        merged["meal_time"] = p.meal_time(now) or "other"
        merged["business_hours"] = p.is_context_business_hours(now)
        return merged

    def sweep_expired(self) -> int:
        """Drop expired records. Returns the number removed."""
        now = self._now()
        expired = [rid for rid, r in self._records.items() if now >= r.expires_at]
        for rid in expired:
            del self._records[rid]
        if expired:
            logger.debug(f"Swept {len(expired)} expired context records")
        return len(expired)

    def get_predictions(self, context_id: Optional[str] = None) -> list[Prediction]:
        if context_id is not None:
            return list(self._predictions.get(context_id, []))
        merged = [pred for preds in self._predictions.values() for pred in preds]
        return sorted(merged, key=lambda pred: -pred.confidence)

    def get_patterns(self, context_id: str) -> list[DetectedPattern]:
        return list(self._patterns.get(context_id, []))

    def shutdown(self) -> None:
        """Close every session and drop all records."""
        for client_id in list(self._sessions):
            self.end_session(client_id)
        self._records.clear()
        self._histories.clear()
        self._patterns.clear()
        self._predictions.clear()
        logger.info("Context engine shut down")

    # =========================================================================
    # PATTERN DETECTION
    # =========================================================================

    def detect_patterns(
        self,
        record: ContextRecord,
        previous: Optional[list[ContextRecord]] = None,
    ) -> list[DetectedPattern]:
        """
        Patterns for `record` given the records its session added before it.

        `previous` defaults to the session history up to, not including, `record`.
        """
        if previous is None:
            previous = self._previous_records(record)
        detected: list[DetectedPattern] = []

        for pattern in p.TRIGGER_PATTERNS:
            confidence = self._match_trigger_pattern(record, pattern, previous)
            if confidence > pattern.threshold:
                detected.append(DetectedPattern(
                    name=pattern.name,
                    kind="trigger",
                    confidence=confidence,
                    vocabulary=list(pattern.context_boost),
                    data={"predicted": list(pattern.predicted)},
                ))

        meal = p.meal_time(record.created_at)
        if meal is not None:
            detected.append(DetectedPattern(
                name="temporal_meal",
                kind="temporal",
                confidence=p.TEMPORAL_CONFIDENCE,
                vocabulary=[meal],
                data={
                    "meal_time": meal,
                    "hour": record.created_at.hour,
                    "is_weekend": record.created_at.weekday() >= 5,
                    "predicted": ["business"],
                },
            ))

        sequential = self._match_sequential_pattern(record, previous)
        if sequential is not None:
            detected.append(sequential)

        return detected

    def _match_trigger_pattern(
        self,
        record: ContextRecord,
        pattern: p.TriggerPattern,
        previous: list[ContextRecord],
    ) -> float:
        text = _payload_text(record.payload)
        confidence = sum(p.TRIGGER_HIT_SCORE for trigger in pattern.triggers if trigger in text)

        recent = previous[-p.BOOST_WINDOW:]
        boosted = sum(
            1 for r in recent
            if any(word in _payload_text(r.payload) for word in pattern.context_boost)
        )
        confidence += (boosted / p.BOOST_WINDOW) * p.BOOST_SCORE

        if self._is_swiss(record.payload):
            confidence = self._adjust_for_swiss(confidence, record)
        return min(confidence, 1.0)

    def _match_sequential_pattern(
        self, record: ContextRecord, previous: list[ContextRecord]
    ) -> Optional[DetectedPattern]:
        if len(previous) < 2:
            return None

        labels = tuple(self._step_label(r) for r in [*previous[-2:], record])
        for pattern in p.SEQUENTIAL_PATTERNS:
            if labels == pattern.steps:
                return DetectedPattern(
                    name=f"sequential_{pattern.name}",
                    kind="sequential",
                    confidence=pattern.confidence,
                    vocabulary=[pattern.name],
                    data={"sequence": list(labels), "predicted": list(pattern.predicted)},
                )
        return None

    @staticmethod
    def _step_label(record: ContextRecord) -> str:
        return "page" if record.layer == ContextLayer.PAGE else record.type.value

    @staticmethod
    def _is_swiss(payload: dict[str, Any]) -> bool:
        language = str(payload.get("language") or "")
        location = payload.get("location") or {}
        country = location.get("country") if isinstance(location, dict) else None
        return language.startswith(p.SWISS_LOCALES) or country == "CH"

    def _adjust_for_swiss(self, confidence: float, record: ContextRecord) -> float:
        adjusted = confidence
        if record.payload.get("dialect"):
            adjusted += p.DIALECT_BONUS

        text = str(record.payload.get("text") or "").lower()
        if text:
            markers = sum(1 for marker in p.DIALECT_MARKERS if marker in text)
            adjusted += (markers / len(p.DIALECT_MARKERS)) * p.DIALECT_MARKER_WEIGHT

        if not p.is_context_business_hours(record.created_at):
            adjusted *= p.OFF_HOURS_FACTOR
        return min(adjusted, 1.0)

    # =========================================================================
    # PREDICTION
    # =========================================================================

    def _predict(
        self,
        record: ContextRecord,
        detected: list[DetectedPattern],
        previous: list[ContextRecord],
    ) -> list[Prediction]:
        predictions: list[Prediction] = []

        for pattern in detected:
            confidence = pattern.confidence * p.PATTERN_PREDICTION_FACTOR
            predicted = pattern.data.get("predicted", [])
            if predicted and confidence > self.prediction_threshold:
                predictions.append(Prediction(
                    source="pattern",
                    pattern=pattern.name,
                    confidence=round(confidence, 4),
                    predicted=predicted,
                    reasoning=f"Based on pattern: {pattern.name}",
                ))

        behavior = self._predict_from_behavior(record, previous)
        if behavior is not None:
            predictions.append(behavior)

        return sorted(predictions, key=lambda pred: -pred.confidence)

    def _predict_from_behavior(
        self, record: ContextRecord, history: list[ContextRecord]
    ) -> Optional[Prediction]:
        """Most common action that followed earlier records with the same action."""
        action = record.payload.get("action")
        if action is None:
            return None

        followers = [
            history[i + 1].payload.get("action")
            for i in range(len(history) - 1)
            if history[i].type == record.type and history[i].payload.get("action") == action
        ]
        followers = [f for f in followers if f is not None]
        if len(followers) < p.BEHAVIOR_MIN_SIMILAR:
            return None

        common = [name for name, _ in Counter(followers).most_common(3)]
        return Prediction(
            source="behavior",
            pattern=f"after_{action}",
            confidence=p.BEHAVIOR_PREDICTION_CONFIDENCE,
            predicted=common,
            reasoning=f"Based on {len(followers)} similar past interactions",
            time_frame="short",
        )

    def _previous_records(self, record: ContextRecord) -> list[ContextRecord]:
        history = list(self._histories.get(record.session_id, ()))
        ids = [r.id for r in history]
        if record.id in ids:
            return history[:ids.index(record.id)]
        return history

    def _session_by_id(self, session_id: Optional[str]) -> Optional[Session]:
        if session_id is None:
            return None
        for session in self._sessions.values():
            if session.id == session_id:
                return session
        return None

"""
Execution metrics: running totals, latency, per-action and per-error counts
and per-intent accuracy. Feeds the learning engine and the metrics endpoint.
"""

from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional

from voice_ordering.schemas import Result


@dataclass
class IntentAccuracy:
    count: int = 0
    total_confidence: float = 0.0
    correct: int = 0
    incorrect: int = 0

    @property
    def mean_confidence(self) -> float:
        return self.total_confidence / self.count if self.count else 0.0

    @property
    def accuracy(self) -> Optional[float]:
        confirmed = self.correct + self.incorrect
        return self.correct / confirmed if confirmed else None


class ExecutionMetrics:

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.total_commands = 0
        self.successful_commands = 0
        self.failed_commands = 0
        self.cache_hits = 0
        self.average_execution_time = 0.0
        self.action_counts: Counter[str] = Counter()
        self.error_counts: Counter[str] = Counter()
        self.intent_accuracy: dict[str, IntentAccuracy] = {}

    def record_execution(self, intent: str, result: Result, confidence: Optional[float] = None) -> None:
        self.total_commands += 1
        self.average_execution_time += (
            (result.execution_time - self.average_execution_time) / self.total_commands
        )
        self.action_counts[result.action] += 1

        if result.success:
            self.successful_commands += 1
            if result.from_cache:
                self.cache_hits += 1
        else:
            self.failed_commands += 1
            self.error_counts[result.code] += 1

        stats = self.intent_accuracy.setdefault(intent, IntentAccuracy())
        stats.count += 1
        stats.total_confidence += confidence if confidence is not None else 1.0

    def record_feedback(self, intent: str, correct: bool) -> None:
        stats = self.intent_accuracy.setdefault(intent, IntentAccuracy())
        if correct:
            stats.correct += 1
        else:
            stats.incorrect += 1

    @property
    def success_rate(self) -> float:
        return self.successful_commands / self.total_commands if self.total_commands else 0.0

    def snapshot(self) -> dict[str, Any]:
        return {
            "total_commands": self.total_commands,
            "successful_commands": self.successful_commands,
            "failed_commands": self.failed_commands,
            "success_rate": round(self.success_rate, 4),
            "cache_hits": self.cache_hits,
            "average_execution_time": round(self.average_execution_time, 3),
            "action_counts": dict(self.action_counts),
            "error_counts": dict(self.error_counts),
            "intent_accuracy": {
                name: {
                    "count": stats.count,
                    "mean_confidence": round(stats.mean_confidence, 4),
                    "correct": stats.correct,
                    "incorrect": stats.incorrect,
                    "accuracy": stats.accuracy,
                }
                for name, stats in self.intent_accuracy.items()
            },
        }

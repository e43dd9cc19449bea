"""
Deferred execution containers: the priority queue, the batch buffer and the
scheduled-command list.
"""

import heapq
import itertools
from datetime import datetime
from typing import Optional

from voice_ordering.schemas import Command
from voice_ordering.services.dispatch.priorities import effective_intent, policy_for


class CommandQueue:
    """
    Min-heap ordered by (priority, insertion sequence).

    Lower priority numbers are served first; equal priorities keep FIFO order.
    """

    def __init__(self):
        self._heap: list[tuple[int, int, Command]] = []
        self._counter = itertools.count()

    def push(self, command: Command) -> int:
        """Enqueue a command. Returns its 1-based position in service order."""
        priority = policy_for(effective_intent(command.intent.name, command.entities)).priority
        entry = (priority, next(self._counter), command)
        heapq.heappush(self._heap, entry)
        return sorted(self._heap).index(entry) + 1

    def pop(self) -> Optional[Command]:
        if not self._heap:
            return None
        return heapq.heappop(self._heap)[2]

    def peek(self) -> Optional[Command]:
        return self._heap[0][2] if self._heap else None

    def remove_session(self, session_id: Optional[str]) -> int:
        before = len(self._heap)
        self._heap = [entry for entry in self._heap if entry[2].session_id != session_id]
        heapq.heapify(self._heap)
        return before - len(self._heap)

    def __len__(self) -> int:
        return len(self._heap)


class BatchBuffer:
    """Accumulates commands until `size` of them can run together."""

    def __init__(self, size: int = 10):
        self.size = size
        self._items: list[Command] = []

    def add(self, command: Command) -> int:
        self._items.append(command)
        return len(self._items)

    @property
    def is_full(self) -> bool:
        return len(self._items) >= self.size

    def drain(self) -> list[Command]:
        items, self._items = self._items, []
        return items

    def remove_session(self, session_id: Optional[str]) -> int:
        before = len(self._items)
        self._items = [c for c in self._items if c.session_id != session_id]
        return before - len(self._items)

    def __len__(self) -> int:
        return len(self._items)


class ScheduledCommands:
    """Commands held until their `scheduled_for` time."""

    def __init__(self):
        self._items: list[tuple[datetime, int, Command]] = []
        self._counter = itertools.count()

    def add(self, command: Command) -> None:
        heapq.heappush(self._items, (command.scheduled_for, next(self._counter), command))

    def pop_due(self, now: datetime) -> list[Command]:
        due = []
        while self._items and self._items[0][0] <= now:
            due.append(heapq.heappop(self._items)[2])
        return due

    def remove_session(self, session_id: Optional[str]) -> int:
        before = len(self._items)
        self._items = [entry for entry in self._items if entry[2].session_id != session_id]
        heapq.heapify(self._items)
        return before - len(self._items)

    def __len__(self) -> int:
        return len(self._items)

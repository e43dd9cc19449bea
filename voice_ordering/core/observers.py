"""
Observer registry for decoupled notifications.

Components return explicit results; listeners that want to react to
side events (queue overflow, expired transactions, executed commands)
register here instead of subscribing to a global event bus.
"""

import inspect
import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

Observer = Callable[[str, dict[str, Any]], Any]


class ObserverRegistry:
    """Register/notify list keyed by event name."""

    def __init__(self):
        self._observers: dict[str, list[Observer]] = defaultdict(list)

    def register(self, event: str, observer: Observer) -> None:
        self._observers[event].append(observer)

    def unregister(self, event: str, observer: Observer) -> None:
        if observer in self._observers.get(event, []):
            self._observers[event].remove(observer)

    def clear(self) -> None:
        self._observers.clear()

    async def notify(self, event: str, payload: dict[str, Any]) -> None:
        """
        Call every observer registered for the event.

        A failing observer is logged and skipped so that notification never
        changes the outcome of the operation that emitted it.
        """
        for observer in list(self._observers.get(event, [])):
            try:
                outcome = observer(event, payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.exception(f"Observer for '{event}' failed: {e}")

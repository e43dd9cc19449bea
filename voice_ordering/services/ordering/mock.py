"""
Recording Ordering Callbacks

Stands in for the host application in development mode (ENV_MODE=development)
and in tests:
    - Records every callback invocation in order
    - Optionally simulates callback latency
    - Optionally fails a named callback with a given error code

Version: 1.0.0
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from voice_ordering.core.errors import ErrorCode, VoiceCommandError
from voice_ordering.schemas import CartItem, Transaction
from voice_ordering.services.ordering.base import BaseOrderingCallbacks

logger = logging.getLogger(__name__)


@dataclass
class CallbackCall:
    """One recorded callback invocation."""
    name: str
    args: tuple
    at: datetime = field(default_factory=datetime.now)


class RecordingOrderingCallbacks(BaseOrderingCallbacks):
    """
    Callback implementation that remembers what the dispatcher asked for.

    Attributes:
        latency: Seconds to sleep inside every callback
        failures: callback name → error code raised instead of succeeding

    Example:
        >>> callbacks = RecordingOrderingCallbacks()
        >>> await callbacks.on_navigate("cart")
        >>> callbacks.calls_to("on_navigate")[0].args
        ('cart',)
    """

    def __init__(
        self,
        latency: float = 0.0,
        failures: Optional[dict[str, ErrorCode]] = None,
    ):
        self.latency = latency
        self.failures = dict(failures or {})
        self.calls: list[CallbackCall] = []

        logger.info(f"RecordingOrderingCallbacks initialized (latency={latency}s)")

    @property
    def provider_name(self) -> str:
        return "recording"

    async def _record(self, name: str, *args: Any) -> dict[str, Any]:
        if self.latency:
            await asyncio.sleep(self.latency)

        code = self.failures.get(name)
        if code is not None:
            logger.warning(f"[RECORDING] simulated {code.value} in {name}")
            raise VoiceCommandError(f"Simulated failure in {name}", code)

        self.calls.append(CallbackCall(name=name, args=args))
        logger.debug(f"[RECORDING] {name}")
        return {"acknowledged": True, "callback": name}

    async def on_product_add(self, cart_item: CartItem) -> dict[str, Any]:
        return await self._record("on_product_add", cart_item)

    async def on_product_remove(self, cart_item: CartItem, quantity: int) -> dict[str, Any]:
        return await self._record("on_product_remove", cart_item, quantity)

    async def on_navigate(self, target: str) -> dict[str, Any]:
        return await self._record("on_navigate", target)

    async def on_order_complete(self, transaction: Transaction) -> dict[str, Any]:
        return await self._record("on_order_complete", transaction)

    def calls_to(self, name: str) -> list[CallbackCall]:
        return [call for call in self.calls if call.name == name]

    def reset(self) -> None:
        self.calls.clear()

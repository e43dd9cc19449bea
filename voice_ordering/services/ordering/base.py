"""
Ordering Callbacks Abstract Base Class

Defines the domain callbacks the dispatcher invokes on the host application
(cart mutation, navigation, order completion). The host supplies the
concrete implementation; these awaits are the only suspension points of a
command's execution.

Design Pattern: Strategy Pattern
    - The dispatcher never knows how the host stores its cart
    - Facilitates testing with the recording implementation

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from typing import Any

from voice_ordering.schemas import CartItem, Transaction


class BaseOrderingCallbacks(ABC):
    """
    Abstract base class for host-side ordering callbacks.

    Implementations:
        - RecordingOrderingCallbacks: Stores every call (development, tests)
        - Host applications subclass this to mutate their own cart state
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the callback provider."""
        pass

    @abstractmethod
    async def on_product_add(self, cart_item: CartItem) -> Any:
        """Add a resolved item to the host's cart."""
        pass

    @abstractmethod
    async def on_product_remove(self, cart_item: CartItem, quantity: int) -> Any:
        """Remove `quantity` units of an item from the host's cart."""
        pass

    @abstractmethod
    async def on_navigate(self, target: str) -> Any:
        """Move the host UI to a named target (menu, cart, checkout...)."""
        pass

    @abstractmethod
    async def on_order_complete(self, transaction: Transaction) -> Any:
        """Hand a committed transaction over to order fulfilment."""
        pass

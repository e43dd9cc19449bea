"""
Command Handlers

One coroutine per supported intent. Handlers validate their inputs against
the read-only domain context, apply the Swiss business rules, call the host's
ordering callbacks and return a CommandResult. Validation failures are raised
as VoiceCommandError; the dispatcher turns them into ErrorResults.

Supported Intents:
    - order / add_product: Resolve a product and add it to the cart
    - remove_product (remove): Remove units of a cart item
    - update_quantity: Change the quantity of a cart item
    - navigation (navigate), show_menu, show_cart, go_back
    - inquiry, product_info, price_check, allergen_info
    - checkout, payment, order_complete
    - control, help, repeat, cancel (stop, order_cancel, ...)

Version: 1.0.0
"""

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

from voice_ordering.core.config import Settings
from voice_ordering.core.errors import ErrorCode, VoiceCommandError
from voice_ordering.schemas import CartItem, Command, CommandResult, Product, Result
from voice_ordering.services.dispatch.business_rules import SwissBusinessRules
from voice_ordering.services.dispatch.catalog import (
    find_entity,
    find_product,
    parse_modifiers,
    parse_quantity,
)
from voice_ordering.services.dispatch.transactions import TransactionTable
from voice_ordering.services.ordering.base import BaseOrderingCallbacks

if TYPE_CHECKING:
    from voice_ordering.services.dispatch.dispatcher import CommandDispatcher

logger = logging.getLogger(__name__)

Handler = Callable[[Command], Awaitable[Result]]

VALID_TARGETS = ("menu", "cart", "checkout", "profile", "orders", "settings")

# Handlers reachable through a category when no exact handler exists
CATEGORY_HANDLERS = ("order", "navigation", "inquiry", "checkout", "control")

HELP_EXAMPLES = [
    "Ich möchte zwei Pizza Margherita",
    "Was kostet der Burger?",
    "Zeig mir den Warenkorb",
    "Ich möchte bezahlen",
    "Nochmal",
]


class CommandHandlers:
    """
    Handler registry for the dispatcher.

    Attributes:
        registry: intent name → handler coroutine (aliases included)
    """

    def __init__(
        self,
        dispatcher: "CommandDispatcher",
        settings: Settings,
        callbacks: BaseOrderingCallbacks,
        rules: SwissBusinessRules,
        transactions: TransactionTable,
    ):
        self.dispatcher = dispatcher
        self.settings = settings
        self.callbacks = callbacks
        self.rules = rules
        self.transactions = transactions

        self.registry: dict[str, Handler] = {
            # Cart
            "order": self._handle_add_product,
            "add_product": self._handle_add_product,
            "remove_product": self._handle_remove_product,
            "remove": self._handle_remove_product,
            "update_quantity": self._handle_update_quantity,

            # Navigation
            "navigation": self._handle_navigation,
            "navigate": self._handle_navigation,
            "show_menu": self._handle_show_menu,
            "show_cart": self._handle_show_cart,
            "go_back": self._handle_go_back,

            # Information
            "inquiry": self._handle_inquiry,
            "product_info": self._handle_product_info,
            "price_check": self._handle_price_check,
            "allergen_info": self._handle_allergen_info,

            # Checkout
            "checkout": self._handle_checkout,
            "payment": self._handle_payment,
            "order_complete": self._handle_order_complete,

            # Control
            "control": self._handle_control,
            "help": self._handle_help,
            "repeat": self._handle_repeat,
            "cancel": self._handle_cancel,
            "stop": self._handle_cancel,
            "emergency_stop": self._handle_cancel,
            "order_cancel": self._handle_cancel,
            "payment_cancel": self._handle_cancel,
        }

    def resolve(self, intent_name: str, category: str = "") -> Optional[Handler]:
        """Exact name (aliases included), then the intent's category handler."""
        handler = self.registry.get(intent_name)
        if handler is not None:
            return handler

        for candidate in (category.lower(), intent_name.split("_")[0]):
            if candidate in CATEGORY_HANDLERS:
                return self.registry.get(candidate)
        return None

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _product_from(self, command: Command) -> Product:
        entity = find_entity(command.entities, "product")
        if entity is None:
            raise VoiceCommandError("Welches Produkt meinen Sie?", ErrorCode.MISSING_PRODUCT)

        product = find_product(
            command.context.products,
            entity.normalized_value,
            self.settings.product_similarity_floor,
        )
        if product is None:
            raise VoiceCommandError(
                f"Produkt '{entity.normalized_value}' nicht gefunden",
                ErrorCode.PRODUCT_NOT_FOUND,
            )
        return product

    def _cart_item_from(self, command: Command) -> CartItem:
        entity = find_entity(command.entities, "product")
        if entity is None:
            raise VoiceCommandError("Welches Produkt meinen Sie?", ErrorCode.MISSING_PRODUCT)

        items = [item for item in command.context.cart.items if item.product is not None]
        product = find_product(
            [item.product for item in items],
            entity.normalized_value,
            self.settings.product_similarity_floor,
        )
        if product is None:
            raise VoiceCommandError(
                f"'{entity.normalized_value}' ist nicht im Warenkorb",
                ErrorCode.PRODUCT_NOT_IN_CART,
            )
        return next(item for item in items if item.product is product)

    @staticmethod
    def _ensure_available(product: Product, quantity: int) -> None:
        if not product.available or (product.stock is not None and product.stock < quantity):
            raise VoiceCommandError(
                f"{product.name} ist leider nicht verfügbar",
                ErrorCode.PRODUCT_UNAVAILABLE,
            )

    # =========================================================================
    # CART
    # =========================================================================

    async def _handle_add_product(self, command: Command) -> CommandResult:
        """Add a product to the cart."""
        product = self._product_from(command)
        quantity = parse_quantity(command.entities, self.settings.max_item_quantity)
        self._ensure_available(product, quantity)

        modifiers = parse_modifiers(command.entities)
        unit_price = max(0.0, round(product.price + self.rules.modifier_adjustment(modifiers), 2))
        cart_item = CartItem(
            product=product,
            quantity=quantity,
            modifiers=modifiers,
            price=round(unit_price * quantity, 2),
        )

        ack = await self.callbacks.on_product_add(cart_item)

        return CommandResult(
            action="product_added",
            message=f"{quantity}x {product.name} zum Warenkorb hinzugefügt",
            data={
                "item": cart_item.model_dump(mode="json"),
                "unit_price": unit_price,
                "callback": ack,
            },
        )

    async def _handle_remove_product(self, command: Command) -> CommandResult:
        """Remove units of a cart item."""
        item = self._cart_item_from(command)
        requested = parse_quantity(command.entities, self.settings.max_item_quantity)
        quantity = min(requested, item.quantity)

        ack = await self.callbacks.on_product_remove(item, quantity)

        return CommandResult(
            action="product_removed",
            message=f"{quantity}x {item.name} aus dem Warenkorb entfernt",
            data={
                "product_id": item.product.id,
                "quantity": quantity,
                "remaining": item.quantity - quantity,
                "callback": ack,
            },
        )

    async def _handle_update_quantity(self, command: Command) -> CommandResult:
        """Set a cart item to the spoken quantity."""
        item = self._cart_item_from(command)
        target = parse_quantity(command.entities, self.settings.max_item_quantity)
        delta = target - item.quantity

        if delta > 0:
            self._ensure_available(item.product, delta)
            unit_price = item.price / item.quantity if item.quantity else item.product.price
            await self.callbacks.on_product_add(CartItem(
                product=item.product,
                quantity=delta,
                modifiers=item.modifiers,
                price=round(unit_price * delta, 2),
            ))
        elif delta < 0:
            await self.callbacks.on_product_remove(item, -delta)

        return CommandResult(
            action="quantity_updated",
            message=f"{item.name}: Menge auf {target} gesetzt",
            data={"product_id": item.product.id, "previous": item.quantity, "quantity": target},
        )

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    async def _navigate(self, target: str) -> Any:
        logger.debug(f"Navigating to {target}")
        return await self.callbacks.on_navigate(target)

    async def _handle_navigation(self, command: Command) -> CommandResult:
        entity = find_entity(command.entities, "target")
        target = entity.normalized_value if entity else None
        if target not in VALID_TARGETS:
            raise VoiceCommandError(
                f"Unbekanntes Ziel '{target or ''}'",
                ErrorCode.INVALID_TARGET,
            )

        ack = await self._navigate(target)
        return CommandResult(
            action="navigated",
            message=f"Navigiere zu {target}",
            data={"target": target, "callback": ack},
        )

    async def _handle_show_menu(self, command: Command) -> CommandResult:
        ack = await self._navigate("menu")
        categories: dict[str, list[dict[str, Any]]] = {}
        for product in command.context.products:
            if product.available:
                categories.setdefault(product.category or "other", []).append(
                    {"id": product.id, "name": product.name, "price": product.price}
                )
        return CommandResult(
            action="menu_shown",
            message="Hier ist unser Menü",
            data={"categories": categories, "callback": ack},
        )

    async def _handle_show_cart(self, command: Command) -> CommandResult:
        ack = await self._navigate("cart")
        cart = command.context.cart
        totals = self.rules.calculate_totals(cart, command.context.location.city)
        return CommandResult(
            action="cart_shown",
            message=f"Ihr Warenkorb enthält {len(cart.items)} Artikel",
            data={
                "items": [item.model_dump(mode="json") for item in cart.items],
                "totals": totals.model_dump(),
                "callback": ack,
            },
        )

    async def _handle_go_back(self, command: Command) -> CommandResult:
        ack = await self._navigate("back")
        return CommandResult(action="navigated_back", message="Zurück", data={"callback": ack})

    # =========================================================================
    # INFORMATION
    # =========================================================================

    async def _handle_inquiry(self, command: Command) -> CommandResult:
        """Route to price, allergen or general product information."""
        entity = find_entity(command.entities, "inquiry_type")
        kind = entity.normalized_value if entity else "info"
        if kind == "price":
            return await self._handle_price_check(command)
        if kind == "allergens":
            return await self._handle_allergen_info(command)
        return await self._handle_product_info(command)

    async def _handle_product_info(self, command: Command) -> CommandResult:
        product = self._product_from(command)
        return CommandResult(
            action="product_info",
            message=product.description or f"{product.name} ({product.category or 'Produkt'})",
            data=product.model_dump(mode="json"),
        )

    async def _handle_price_check(self, command: Command) -> CommandResult:
        product = self._product_from(command)
        return CommandResult(
            action="price_info",
            message=f"{product.name} kostet {self.settings.currency} {product.price:.2f}",
            data={"product_id": product.id, "price": product.price, "currency": self.settings.currency},
        )

    async def _handle_allergen_info(self, command: Command) -> CommandResult:
        product = self._product_from(command)
        if product.allergens:
            message = f"{product.name} enthält: {', '.join(product.allergens)}"
        else:
            message = f"{product.name} enthält keine deklarierten Allergene"
        return CommandResult(
            action="allergen_info",
            message=message,
            data={"product_id": product.id, "allergens": list(product.allergens)},
        )

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    async def _handle_checkout(self, command: Command) -> CommandResult:
        """Validate the cart and open a pending transaction."""
        cart = command.context.cart
        self.rules.validate_checkout(cart)

        entity = find_entity(command.entities, "payment_method")
        method = self.rules.validate_payment_method(entity.normalized_value if entity else None)

        totals = self.rules.calculate_totals(cart, command.context.location.city)
        transaction = self.transactions.create(
            session_id=command.session_id,
            items=cart.items,
            totals=totals,
            payment_method=method,
        )

        return CommandResult(
            action="checkout_started",
            message=f"Total {totals.currency} {totals.total:.2f}. Bitte bestätigen Sie die Bestellung.",
            data={
                "transaction_id": transaction.id,
                "totals": totals.model_dump(),
                "payment_method": method,
                "expires_in": int(self.transactions.ttl.total_seconds()),
            },
        )

    async def _handle_payment(self, command: Command) -> CommandResult:
        entity = find_entity(command.entities, "payment_method")
        if entity is None:
            raise VoiceCommandError("Wie möchten Sie bezahlen?", ErrorCode.INVALID_PAYMENT_METHOD)
        method = self.rules.validate_payment_method(entity.normalized_value)

        transaction = self.transactions.latest_pending(command.session_id)
        if transaction is None:
            raise VoiceCommandError("Keine offene Bestellung", ErrorCode.NO_PENDING_TRANSACTION)

        transaction.payment_method = method
        return CommandResult(
            action="payment_selected",
            message=f"Zahlung mit {method}",
            data={"transaction_id": transaction.id, "payment_method": method},
        )

    async def _handle_order_complete(self, command: Command) -> CommandResult:
        extra = command.context.model_extra or {}
        transaction_id = extra.get("transaction_id")
        if transaction_id is None:
            pending = self.transactions.latest_pending(command.session_id)
            if pending is None:
                raise VoiceCommandError("Keine offene Bestellung", ErrorCode.NO_PENDING_TRANSACTION)
            transaction_id = pending.id

        transaction = await self.dispatcher.commit_transaction(transaction_id)
        return CommandResult(
            action="order_completed",
            message="Vielen Dank für Ihre Bestellung!",
            data={
                "transaction_id": transaction.id,
                "totals": transaction.totals.model_dump() if transaction.totals else None,
            },
        )

    # =========================================================================
    # CONTROL
    # =========================================================================

    async def _handle_control(self, command: Command) -> Result:
        entity = find_entity(command.entities, "control_type")
        kind = entity.normalized_value if entity else "help"

        if kind == "stop":
            return await self._handle_cancel(command)
        if kind == "repeat":
            return await self._handle_repeat(command)
        if kind == "volume":
            return CommandResult(
                action="volume_adjusted",
                message="Lautstärke angepasst",
                data={"direction": entity.raw_value},
            )
        return await self._handle_help(command)

    async def _handle_help(self, command: Command) -> CommandResult:
        return CommandResult(
            action="help",
            message="Sie können zum Beispiel sagen: " + "; ".join(f'"{e}"' for e in HELP_EXAMPLES),
            data={"examples": HELP_EXAMPLES},
        )

    async def _handle_repeat(self, command: Command) -> Result:
        # the dispatcher replays the previous command itself; landing here means there is none
        raise VoiceCommandError("Kein vorheriger Befehl vorhanden", ErrorCode.NO_PREVIOUS_COMMAND)

    async def _handle_cancel(self, command: Command) -> CommandResult:
        summary = self.dispatcher.cancel_session(command.session_id)
        return CommandResult(
            action="cancelled",
            message="Vorgang abgebrochen",
            data=summary,
        )

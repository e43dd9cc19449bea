"""
Swiss Business Rules

Order totals (VAT, delivery zones), opening hours and checkout validation.
Checkout is validated in a fixed order: empty cart, opening hours, minimum
order value. The first failing rule decides the error code.

Version: 1.0.0
"""

import logging
from datetime import datetime, time
from typing import Callable, Optional

from voice_ordering.core.config import Settings
from voice_ordering.core.errors import ErrorCode, VoiceCommandError
from voice_ordering.schemas import Cart, Modifier, OrderTotals
from voice_ordering.services.nlp.locale_data import MODIFIER_PRICES

logger = logging.getLogger(__name__)


def parse_hours(value: str) -> tuple[time, time]:
    """'10:00-22:00' → (time(10, 0), time(22, 0))."""
    opens, closes = (part.strip() for part in value.split("-"))
    open_h, open_m = (int(x) for x in opens.split(":"))
    close_h, close_m = (int(x) for x in closes.split(":"))
    return time(open_h, open_m), time(close_h, close_m)


class SwissBusinessRules:
    """
    Business rules for Swiss restaurants.

    Attributes:
        vat_rate: VAT applied to the subtotal (7.7%)
        minimum_order_value: Smallest subtotal accepted at checkout (CHF)
        zones: zone → {base_fee, free_threshold}
    """

    def __init__(self, settings: Settings, now: Callable[[], datetime] = datetime.now):
        self.currency = settings.currency
        self.vat_rate = settings.vat_rate
        self.minimum_order_value = settings.minimum_order_value
        self.zones = settings.delivery_zones
        self.default_zone = settings.default_delivery_zone.lower()
        self.weekday_hours = parse_hours(settings.weekday_hours)
        self.weekend_hours = parse_hours(settings.weekend_hours)
        self.payment_methods = {m.lower() for m in settings.payment_methods_list}
        self._now = now

        if self.default_zone not in self.zones:
            raise ValueError(f"Default delivery zone '{self.default_zone}' is not configured")

    # =========================================================================
    # TOTALS
    # =========================================================================

    def zone_for(self, city: Optional[str]) -> str:
        if city and city.strip().lower() in self.zones:
            return city.strip().lower()
        return self.default_zone

    def delivery_fee(self, subtotal: float, city: Optional[str]) -> float:
        zone = self.zones[self.zone_for(city)]
        if subtotal >= zone["free_threshold"]:
            return 0.0
        return zone["base_fee"]

    def calculate_totals(self, cart: Cart, city: Optional[str] = None) -> OrderTotals:
        subtotal = cart.subtotal
        tax = round(subtotal * self.vat_rate, 2)
        fee = self.delivery_fee(subtotal, city)
        return OrderTotals(
            subtotal=subtotal,
            tax=tax,
            delivery_fee=fee,
            total=round(subtotal + tax + fee, 2),
            currency=self.currency,
        )

    @staticmethod
    def modifier_adjustment(modifiers: list[Modifier]) -> float:
        return round(sum(MODIFIER_PRICES.get(m.value, 0.0) for m in modifiers), 2)

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def is_business_hours(self, moment: Optional[datetime] = None) -> bool:
        moment = moment or self._now()
        opens, closes = self.weekend_hours if moment.weekday() >= 5 else self.weekday_hours
        return opens <= moment.time() < closes

    def validate_checkout(self, cart: Cart) -> None:
        """Raise VoiceCommandError for the first failing checkout rule."""
        if cart.is_empty:
            raise VoiceCommandError("Ihr Warenkorb ist leer", ErrorCode.CART_EMPTY)

        if not self.is_business_hours():
            opens, closes = self.weekend_hours if self._now().weekday() >= 5 else self.weekday_hours
            raise VoiceCommandError(
                f"Bestellungen sind nur zwischen {opens:%H:%M} und {closes:%H:%M} möglich",
                ErrorCode.BUSINESS_HOURS,
            )

        if cart.subtotal < self.minimum_order_value:
            raise VoiceCommandError(
                f"Mindestbestellwert ist {self.currency} {self.minimum_order_value:.2f}",
                ErrorCode.MINIMUM_ORDER,
            )

    def validate_payment_method(self, method: Optional[str]) -> Optional[str]:
        if method is None:
            return None
        if method.lower() not in self.payment_methods:
            raise VoiceCommandError(
                f"Zahlungsart '{method}' wird nicht akzeptiert",
                ErrorCode.INVALID_PAYMENT_METHOD,
            )
        return method.lower()

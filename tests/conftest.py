"""Shared fixtures: a controllable clock, settings and a fully wired service."""

from datetime import datetime, timedelta

import pytest

from voice_ordering.core.config import Settings
from voice_ordering.pipeline import create_voice_service
from voice_ordering.schemas import Cart, CartItem, DomainContext, Product
from voice_ordering.services.ordering import RecordingOrderingCallbacks
from voice_ordering.services.storage import InMemoryKeyValueStore

# Wednesday lunchtime, inside business hours
WEDNESDAY_NOON = datetime(2026, 10, 14, 12, 0)


class FakeClock:
    def __init__(self, start: datetime = WEDNESDAY_NOON):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)

    def set(self, moment: datetime) -> None:
        self.current = moment


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def callbacks():
    return RecordingOrderingCallbacks()


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def service(settings, store, callbacks, clock):
    return create_voice_service(settings=settings, store=store, callbacks=callbacks, now=clock)


@pytest.fixture
def products():
    return [
        Product(
            id="pizza_margherita",
            name="Pizza Margherita",
            price=18.50,
            category="pizza",
            description="Tomaten, Mozzarella, Basilikum",
            allergens=["gluten", "milk"],
        ),
        Product(id="cheeseburger", name="Cheeseburger", price=16.00, category="burger", stock=3),
        Product(id="rosti", name="Rösti", price=14.00, category="schweizer"),
        Product(id="cola", name="Cola", price=4.50, category="getränk", available=False),
    ]


@pytest.fixture
def filled_cart(products):
    pizza = products[0]
    return Cart(items=[CartItem(product=pizza, quantity=2, price=37.00)])


@pytest.fixture
def context(products):
    return DomainContext(session_id="client-1", language="de-CH", products=products)

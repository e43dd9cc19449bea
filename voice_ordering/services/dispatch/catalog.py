"""
Catalog lookup and entity parsing helpers used by the command handlers.
"""

from typing import Optional

from rapidfuzz.distance import Levenshtein

from voice_ordering.schemas import Entity, Modifier, Product
from voice_ordering.services.nlp.locale_data import MODIFIER_CODES, MODIFIER_PRICES, QUANTITY_WORDS


def find_entity(entities: list[Entity], type: str) -> Optional[Entity]:
    return next((e for e in entities if e.type == type), None)


def find_product(products: list[Product], query: str, similarity_floor: float = 0.6) -> Optional[Product]:
    """
    Resolve a spoken product reference against the catalog.

    Exact name (or id) first, then substring in either direction, then the
    most similar name above the floor.
    """
    needle = query.strip().lower()
    if not needle:
        return None

    for product in products:
        if product.name.lower() == needle or product.id.lower() == needle:
            return product

    for product in products:
        name = product.name.lower()
        if needle in name or name in needle:
            return product

    best: Optional[Product] = None
    best_score = similarity_floor
    for product in products:
        score = Levenshtein.normalized_similarity(needle, product.name.lower())
        if score > best_score:
            best, best_score = product, score
    return best


def parse_quantity(entities: list[Entity], max_quantity: int = 99) -> int:
    """Quantity from a numeral or number word; 1 when absent."""
    entity = find_entity(entities, "quantity")
    if entity is None:
        return 1

    value = entity.normalized_value.strip().lower()
    if value.isdigit():
        quantity = int(value)
    else:
        quantity = QUANTITY_WORDS.get(value, 1)
    return max(1, min(quantity, max_quantity))


def parse_modifiers(entities: list[Entity]) -> list[Modifier]:
    modifiers = []
    for entity in entities:
        if entity.type != "modifier":
            continue
        code = MODIFIER_CODES.get(entity.normalized_value, entity.normalized_value)
        modifiers.append(Modifier(
            type=entity.category or "modifier",
            value=code,
            price_adjustment=MODIFIER_PRICES.get(code, 0.0),
        ))
    return modifiers

"""
Domain: purchasable catalog items.

Two kinds of item can be bought: tutorials ("tutes") and recorded lessons.
Item ids are only unique within their item type. Prices are whole cents, so
every sum of prices is exact.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

CENTS = Decimal("0.01")


class ItemType(str, Enum):
    TUTORIAL = "TUTORIAL"
    RECORDED_LESSON = "RECORDED_LESSON"


@dataclass(frozen=True, slots=True)
class CatalogItem:
    """A tutorial or recorded lesson with its current list price."""

    item_id: str
    item_type: ItemType
    title: str
    price: Decimal

    def __post_init__(self) -> None:
        if not self.item_id:
            raise ValueError("item_id must be a non-empty string")
        if not isinstance(self.price, Decimal):
            raise TypeError("price must be a Decimal")
        if not is_whole_cents(self.price):
            raise ValueError(f"price must be a whole number of cents, got {self.price}")


def is_whole_cents(amount: Decimal) -> bool:
    return amount == amount.quantize(CENTS)

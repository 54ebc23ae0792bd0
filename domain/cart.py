"""
Domain: cart lines.

A cart line is one prospective purchase held before checkout.

Invariants:
- Within one buyer's cart, at most one line per (item_id, item_type, beneficiary_id).
- unit_price is a snapshot of the catalog price taken when the line was added,
  in whole cents.
- added_at is a UTC timestamp and never changes for a given line.

This module contains only pure value objects: no I/O, no storage.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Tuple

from .catalog import CENTS, CatalogItem, ItemType, is_whole_cents
from .time import require_utc_timestamp

CartKey = Tuple[str, ItemType, str]


@dataclass(frozen=True, slots=True)
class CartLine:
    """Immutable prospective purchase of one item for one beneficiary."""

    item_id: str
    item_type: ItemType
    title: str
    buyer_id: str
    beneficiary_id: str
    unit_price: Decimal
    added_at: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("added_at", self.added_at)
        if self.unit_price <= 0:
            raise ValueError("unit_price must be greater than zero")
        if not is_whole_cents(self.unit_price):
            raise ValueError(f"unit_price must be a whole number of cents, got {self.unit_price}")
        if not self.beneficiary_id:
            raise ValueError("beneficiary_id is required")

    @property
    def key(self) -> CartKey:
        return (self.item_id, self.item_type, self.beneficiary_id)

    @staticmethod
    def from_item(
        item: CatalogItem,
        *,
        buyer_id: str,
        beneficiary_id: str,
        added_at: datetime,
    ) -> "CartLine":
        """Snapshot `item`'s current price into a new line."""

        return CartLine(
            item_id=item.item_id,
            item_type=item.item_type,
            title=item.title,
            buyer_id=buyer_id,
            beneficiary_id=beneficiary_id,
            unit_price=item.price,
            added_at=added_at,
        )


def cart_total(lines: Iterable[CartLine]) -> Decimal:
    """
    Sum of unit prices.

    Unit prices are whole cents, so quantizing only fixes the exponent for
    display ("5" becomes "5.00"); it never changes the value.
    """

    total = sum((line.unit_price for line in lines), Decimal("0.00"))
    return total.quantize(CENTS)


__all__ = [
    "CartKey",
    "CartLine",
    "cart_total",
]

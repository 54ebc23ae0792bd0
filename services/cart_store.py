"""
Cart store: per-buyer collection of prospective purchases.

Handles:
- Price snapshot at add time
- Idempotent add, keyed by (item_id, item_type, beneficiary_id)
- Rejection of items the beneficiary already owns
- Cart-changed notifications to registered listeners

Carts live in memory for the lifetime of the process and are never persisted.
Every mutating call broadcasts a CartChangedEvent after the change is applied,
so listeners re-read a cart that already reflects it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from domain.cart import CartKey, CartLine, cart_total
from domain.catalog import CatalogItem, ItemType
from domain.errors import AlreadyOwnedError, BeneficiaryRequiredError, ValidationError
from domain.time import utc_now
from services.buyer_context import BuyerContext
from services.entitlement_service import EntitlementResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CartChangedEvent:
    """Snapshot of a buyer's cart right after a mutation."""
    buyer_id: str
    lines: Tuple[CartLine, ...]
    total: Decimal


CartListener = Callable[[CartChangedEvent], None]


class CartSubscription:
    """Handle returned by CartStore.subscribe(); unsubscribe() is idempotent."""

    def __init__(self, store: "CartStore", listener: CartListener) -> None:
        self._store = store
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._store._remove_listener(self._listener)
            self._active = False


class CartStore:
    """
    In-memory carts, one per buyer.

    Usage:
        store = CartStore(entitlements)
        subscription = store.subscribe(on_cart_changed)
        store.add_to_cart(buyer, item, beneficiary_id="child-1")
        store.get_cart_total(buyer)
        subscription.unsubscribe()
    """

    def __init__(
        self,
        entitlements: EntitlementResolver,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._entitlements = entitlements
        self._clock = clock
        self._carts: Dict[str, Dict[CartKey, CartLine]] = {}
        self._listeners: List[CartListener] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: CartListener) -> CartSubscription:
        """Register `listener` for every cart-changed event, for any buyer."""

        with self._lock:
            self._listeners.append(listener)
        return CartSubscription(self, listener)

    def _remove_listener(self, listener: CartListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, buyer_id: str) -> None:
        with self._lock:
            lines = tuple(self._carts.get(buyer_id, {}).values())
            listeners = list(self._listeners)

        event = CartChangedEvent(buyer_id=buyer_id, lines=lines, total=cart_total(lines))
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                # One broken view must not stop the others from refreshing.
                logger.exception("Cart listener %r failed for buyer %s", listener, buyer_id)

    # ------------------------------------------------------------------
    # Cart operations
    # ------------------------------------------------------------------

    def add_to_cart(
        self,
        buyer: BuyerContext,
        item: CatalogItem,
        beneficiary_id: Optional[str] = None,
    ) -> CartLine:
        """
        Add `item` for a beneficiary, snapshotting its current price.

        Adding a line that is already in the cart returns the existing line
        unchanged and emits no notification.

        Args:
            buyer: Acting buyer
            item: Catalog item; its price must be > 0
            beneficiary_id: Child being bought for (parents); defaults to the buyer for students

        Returns:
            The CartLine now in the cart

        Raises:
            ValidationError: If the item price is not positive
            BeneficiaryRequiredError / NotPermittedError: From beneficiary resolution
            AlreadyOwnedError: If the beneficiary already owns the item
        """
        if item.price <= 0:
            raise ValidationError({"price": "Item price must be greater than zero"})

        beneficiary = buyer.beneficiary_for(beneficiary_id)
        key: CartKey = (item.item_id, item.item_type, beneficiary)

        with self._lock:
            existing = self._carts.get(buyer.buyer_id, {}).get(key)
        if existing is not None:
            return existing

        if self._entitlements.is_owned(beneficiary, item.item_id, item.item_type):
            logger.warning(
                "Rejected add to cart: %s %s already owned by %s (buyer %s)",
                item.item_type.value, item.item_id, beneficiary, buyer.buyer_id,
            )
            raise AlreadyOwnedError(item.item_id, beneficiary)

        line = CartLine.from_item(
            item,
            buyer_id=buyer.buyer_id,
            beneficiary_id=beneficiary,
            added_at=self._clock(),
        )

        with self._lock:
            cart = self._carts.setdefault(buyer.buyer_id, {})
            existing = cart.get(key)
            if existing is not None:
                return existing
            cart[key] = line

        self._notify(buyer.buyer_id)
        return line

    def remove_from_cart(
        self,
        buyer: BuyerContext,
        item_id: str,
        beneficiary_id: Optional[str] = None,
        item_type: Optional[ItemType] = None,
    ) -> bool:
        """
        Remove the line for (item_id, beneficiary_id); no-op if absent.

        item_type narrows the match when tutorial and lesson ids collide.

        Returns:
            True if a line was removed
        """
        beneficiary = beneficiary_id or buyer.default_beneficiary_id
        if beneficiary is None:
            raise BeneficiaryRequiredError("beneficiary_id is required to remove a cart line")

        with self._lock:
            cart = self._carts.get(buyer.buyer_id, {})
            matches = [
                key for key in cart
                if key[0] == str(item_id)
                and key[2] == beneficiary
                and (item_type is None or key[1] is item_type)
            ]
            for key in matches:
                del cart[key]

        if matches:
            self._notify(buyer.buyer_id)
        return bool(matches)

    def get_cart_items(self, buyer: BuyerContext) -> Tuple[CartLine, ...]:
        """Current lines in insertion order (read-only snapshot)."""

        with self._lock:
            return tuple(self._carts.get(buyer.buyer_id, {}).values())

    def get_cart_total(self, buyer: BuyerContext) -> Decimal:
        """Sum of unit prices over the current lines, recomputed on every call."""

        return cart_total(self.get_cart_items(buyer))

    def clear_cart(self, buyer: BuyerContext) -> None:
        """Empty the buyer's cart."""

        with self._lock:
            self._carts.pop(buyer.buyer_id, None)
        self._notify(buyer.buyer_id)

    def remove_lines(self, buyer: BuyerContext, keys: Iterable[CartKey]) -> None:
        """
        Drop specific lines (used by checkout to keep only unsettled lines).
        """

        with self._lock:
            cart = self._carts.get(buyer.buyer_id, {})
            for key in keys:
                cart.pop(key, None)
            if not cart:
                self._carts.pop(buyer.buyer_id, None)
        self._notify(buyer.buyer_id)


__all__ = [
    "CartChangedEvent",
    "CartListener",
    "CartSubscription",
    "CartStore",
]

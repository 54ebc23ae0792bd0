"""
Entitlement resolver: which items does a beneficiary already own?

Entitlement is derived, never stored: a beneficiary owns an item iff the
ledger holds a COMPLETED purchase for that (beneficiary, item) pair. PENDING,
FAILED and CANCELLED records never grant access.

The UI gates "Buy" vs "Open" on these answers, so lookups are cached for a
few seconds per beneficiary. The cache is advisory: checkout invalidates
every beneficiary it writes for, and callers that need a fresh answer can
call invalidate() first.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from domain.catalog import ItemType
from domain.purchase import PurchaseRecord, owned_item_ids
from repositories.purchase_repository import PurchaseLedger

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_SECONDS: float = 5.0

_PurchasesByType = Dict[ItemType, List[PurchaseRecord]]


class EntitlementResolver:
    """
    Read-side projection over the purchase ledgers.

    Args:
        ledgers: One ledger per item type
        ttl_seconds: How long a beneficiary's purchases are reused (0 disables caching)
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        ledgers: Mapping[ItemType, PurchaseLedger],
        *,
        ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must be >= 0")
        self._ledgers: Dict[ItemType, PurchaseLedger] = dict(ledgers)
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[float, _PurchasesByType]] = {}
        # Bumped by invalidate(); a fetch that started before a bump is not cached.
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    def _generation(self, key: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    def _purchases_for(self, beneficiary_id: str) -> _PurchasesByType:
        key = str(beneficiary_id)

        if self._ttl > 0:
            with self._lock:
                cached = self._cache.get(key)
                generation = self._generation(key)
            if cached is not None and self._clock() - cached[0] < self._ttl:
                return cached[1]

        purchases: _PurchasesByType = {
            item_type: ledger.list_by_beneficiary(key)
            for item_type, ledger in self._ledgers.items()
        }

        if self._ttl > 0:
            with self._lock:
                if self._generation(key) == generation:
                    self._cache[key] = (self._clock(), purchases)
                else:
                    logger.debug("Discarding entitlement read for %s invalidated mid-fetch", key)

        return purchases

    def get_owned_items(self, beneficiary_id: str) -> FrozenSet[Tuple[ItemType, str]]:
        """Every (item_type, item_id) the beneficiary owns."""

        purchases = self._purchases_for(beneficiary_id)
        return frozenset(
            (item_type, item_id)
            for item_type, records in purchases.items()
            for item_id in owned_item_ids(records)
        )

    def get_owned_item_ids(self, beneficiary_id: str, item_type: Optional[ItemType] = None) -> FrozenSet[str]:
        """
        Ids of the items the beneficiary owns.

        Args:
            beneficiary_id: Student receiving access
            item_type: Restrict to one item type; None means every type

        Returns:
            frozenset of item ids backed by a COMPLETED purchase
        """

        purchases = self._purchases_for(beneficiary_id)
        if item_type is not None:
            return owned_item_ids(purchases.get(item_type, []))
        return frozenset().union(*(owned_item_ids(records) for records in purchases.values()))

    def is_owned(self, beneficiary_id: str, item_id: str, item_type: Optional[ItemType] = None) -> bool:
        return str(item_id) in self.get_owned_item_ids(beneficiary_id, item_type)

    def list_purchases(
        self,
        beneficiary_ids: Iterable[str],
        item_type: Optional[ItemType] = None,
    ) -> List[PurchaseRecord]:
        """
        Purchase history for one or more beneficiaries (every status), newest first.

        A parent passes all of their children's ids.
        """

        records: List[PurchaseRecord] = []
        for beneficiary_id in dict.fromkeys(str(b) for b in beneficiary_ids):
            for record_type, typed_records in self._purchases_for(beneficiary_id).items():
                if item_type is None or record_type is item_type:
                    records.extend(typed_records)

        records.sort(key=lambda record: record.purchase_date, reverse=True)
        return records

    def invalidate(self, beneficiary_id: Optional[str] = None) -> None:
        """Drop cached purchases for one beneficiary, or for everyone."""

        with self._lock:
            if beneficiary_id is None:
                self._cache.clear()
                self._epoch += 1
            else:
                key = str(beneficiary_id)
                self._cache.pop(key, None)
                self._generations[key] = self._generations.get(key, 0) + 1
        logger.debug("Entitlement cache invalidated for %s", beneficiary_id or "all beneficiaries")


__all__ = [
    "DEFAULT_CACHE_TTL_SECONDS",
    "EntitlementResolver",
]

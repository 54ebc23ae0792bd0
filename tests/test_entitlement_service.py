"""
Tests for `services/entitlement_service.py`.

Covers:
- Ownership comes only from COMPLETED purchases
- Per-type and cross-type lookups
- Caching with TTL and explicit invalidation
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from domain.catalog import ItemType
from domain.purchase import PurchaseStatus
from services.entitlement_service import EntitlementResolver


def test_only_completed_purchases_count(entitlements, tute_ledger) -> None:
    tute_ledger.seed("student-1", "T1", PurchaseStatus.COMPLETED)
    tute_ledger.seed("student-1", "T2", PurchaseStatus.PENDING)
    tute_ledger.seed("student-1", "T3", PurchaseStatus.FAILED)
    tute_ledger.seed("student-1", "T4", PurchaseStatus.CANCELLED)

    assert entitlements.get_owned_item_ids("student-1", ItemType.TUTORIAL) == frozenset({"T1"})
    assert entitlements.is_owned("student-1", "T1", ItemType.TUTORIAL)
    assert not entitlements.is_owned("student-1", "T2", ItemType.TUTORIAL)


def test_ownership_is_per_beneficiary(entitlements, tute_ledger) -> None:
    tute_ledger.seed("child-1", "T1", buyer_id="parent-1")

    assert entitlements.is_owned("child-1", "T1")
    assert not entitlements.is_owned("child-2", "T1")
    assert not entitlements.is_owned("parent-1", "T1")


def test_owned_items_across_types(entitlements, tute_ledger, lesson_ledger) -> None:
    tute_ledger.seed("student-1", "5")
    lesson_ledger.seed("student-1", "9")

    assert entitlements.get_owned_items("student-1") == frozenset(
        {(ItemType.TUTORIAL, "5"), (ItemType.RECORDED_LESSON, "9")}
    )
    assert entitlements.get_owned_item_ids("student-1") == frozenset({"5", "9"})
    assert not entitlements.is_owned("student-1", "9", ItemType.TUTORIAL)
    assert entitlements.is_owned("student-1", "9")


def test_list_purchases_newest_first_for_several_beneficiaries(entitlements, tute_ledger, lesson_ledger) -> None:
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    tute_ledger.seed("child-1", "T1", purchase_date=base)
    lesson_ledger.seed("child-2", "L1", PurchaseStatus.FAILED, purchase_date=base + timedelta(days=2))
    tute_ledger.seed("child-2", "T2", purchase_date=base + timedelta(days=1))
    tute_ledger.seed("stranger", "T3", purchase_date=base + timedelta(days=3))

    records = entitlements.list_purchases(["child-1", "child-2", "child-1"])

    assert [r.item_id for r in records] == ["L1", "T2", "T1"]
    assert [r.item_id for r in entitlements.list_purchases(["child-2"], ItemType.TUTORIAL)] == ["T2"]


def test_cache_reuses_reads_until_ttl_expires(ledgers, tute_ledger) -> None:
    """Verify repeated lookups within the TTL hit the ledger once."""

    now = [100.0]
    resolver = EntitlementResolver(ledgers, ttl_seconds=5, clock=lambda: now[0])

    resolver.is_owned("student-1", "T1")
    resolver.is_owned("student-1", "T2")
    assert tute_ledger.beneficiary_reads == 1

    tute_ledger.seed("student-1", "T1")
    assert not resolver.is_owned("student-1", "T1")

    now[0] += 5
    assert resolver.is_owned("student-1", "T1")
    assert tute_ledger.beneficiary_reads == 2


def test_invalidate_forces_fresh_read(ledgers, tute_ledger) -> None:
    resolver = EntitlementResolver(ledgers, ttl_seconds=60, clock=lambda: 0.0)

    assert not resolver.is_owned("student-1", "T1")
    tute_ledger.seed("student-1", "T1")

    resolver.invalidate("student-1")
    assert resolver.is_owned("student-1", "T1")

    tute_ledger.seed("student-2", "T1")
    resolver.is_owned("student-2", "T1")
    resolver.invalidate()
    reads_before = tute_ledger.beneficiary_reads
    resolver.is_owned("student-2", "T1")
    assert tute_ledger.beneficiary_reads == reads_before + 1


def test_zero_ttl_disables_cache(entitlements, tute_ledger) -> None:
    entitlements.is_owned("student-1", "T1")
    entitlements.is_owned("student-1", "T1")

    assert tute_ledger.beneficiary_reads == 2


def test_negative_ttl_is_rejected(ledgers) -> None:
    with pytest.raises(ValueError):
        EntitlementResolver(ledgers, ttl_seconds=-1)

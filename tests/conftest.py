"""
Pytest configuration and shared fixtures.

Adds the project root to the Python path so tests can import domain,
repositories, services and api. Provides in-memory stand-ins for the purchase
ledgers and the payment gateway so services run without Supabase.
"""

import os
import sys
from datetime import datetime, timezone
from decimal import Decimal
from itertools import count
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from unittest.mock import Mock

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test_key")

from domain.catalog import CatalogItem, ItemType  # noqa: E402
from domain.errors import LedgerWriteError, PurchaseNotFoundError  # noqa: E402
from domain.payment import PaymentDetails, PaymentResult  # noqa: E402
from domain.purchase import PurchaseDraft, PurchaseRecord, PurchaseStatus  # noqa: E402
from domain.user import CurrentUser, Role  # noqa: E402
from services.buyer_context import BuyerContext, resolve_buyer  # noqa: E402
from services.cart_store import CartStore  # noqa: E402
from services.checkout_service import CheckoutOrchestrator  # noqa: E402
from services.entitlement_service import EntitlementResolver  # noqa: E402

FIXED_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class InMemoryPurchaseLedger:
    """
    PurchaseLedger kept in a dict.

    Items listed in fail_item_ids make create() raise LedgerWriteError,
    until heal() is called.
    """

    def __init__(self, item_type: ItemType, fail_item_ids: Iterable[str] = ()) -> None:
        self.item_type = item_type
        self.fail_item_ids = set(fail_item_ids)
        self.records: Dict[str, PurchaseRecord] = {}
        self.beneficiary_reads = 0
        self._ids = count(1)

    def heal(self) -> None:
        self.fail_item_ids.clear()

    def seed(
        self,
        beneficiary_id: str,
        item_id: str,
        status: PurchaseStatus = PurchaseStatus.COMPLETED,
        *,
        buyer_id: Optional[str] = None,
        amount: Decimal = Decimal("10.00"),
        purchase_date: datetime = FIXED_NOW,
    ) -> PurchaseRecord:
        purchase_id = f"{self.item_type.value.lower()}-{next(self._ids)}"
        record = PurchaseRecord(
            purchase_id=purchase_id,
            buyer_id=buyer_id or beneficiary_id,
            beneficiary_id=beneficiary_id,
            item_id=item_id,
            item_type=self.item_type,
            amount=amount,
            purchase_date=purchase_date,
            status=status,
            transaction_id="TRANS-SEED",
        )
        self.records[purchase_id] = record
        return record

    def create(self, draft: PurchaseDraft) -> PurchaseRecord:
        if draft.item_id in self.fail_item_ids:
            raise LedgerWriteError(f"ledger rejected {draft.item_id}")
        purchase_id = f"{self.item_type.value.lower()}-{next(self._ids)}"
        record = PurchaseRecord(
            purchase_id=purchase_id,
            buyer_id=draft.buyer_id,
            beneficiary_id=draft.beneficiary_id,
            item_id=draft.item_id,
            item_type=draft.item_type,
            amount=draft.amount,
            purchase_date=draft.purchase_date,
            status=draft.status,
            transaction_id=draft.transaction_id,
        )
        self.records[purchase_id] = record
        return record

    def list_all(self) -> List[PurchaseRecord]:
        return list(self.records.values())

    def list_by_beneficiary(self, beneficiary_id: str) -> List[PurchaseRecord]:
        self.beneficiary_reads += 1
        return [r for r in self.records.values() if r.beneficiary_id == beneficiary_id]

    def get(self, purchase_id: str) -> Optional[PurchaseRecord]:
        return self.records.get(purchase_id)

    def delete(self, purchase_id: str) -> None:
        if self.records.pop(purchase_id, None) is None:
            raise PurchaseNotFoundError(purchase_id)


class StubPaymentGateway:
    """Approves everything unless `decline` is set; records every call."""

    def __init__(self, decline_reason: Optional[str] = None) -> None:
        self.decline_reason = decline_reason
        self.calls: List[Tuple[str, PaymentDetails, Decimal]] = []
        self._ids = count(1)

    def process_payment(self, buyer_id: str, details: PaymentDetails, amount: Decimal) -> PaymentResult:
        self.calls.append((buyer_id, details, amount))
        if self.decline_reason is not None:
            return PaymentResult(success=False, decline_reason=self.decline_reason)
        return PaymentResult(success=True, transaction_id=f"TRANS-TEST-{next(self._ids)}")


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client with chainable query builders."""
    client = Mock()

    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock

    client.table.return_value = table_mock
    return client


@pytest.fixture
def tute_ledger() -> InMemoryPurchaseLedger:
    return InMemoryPurchaseLedger(ItemType.TUTORIAL)


@pytest.fixture
def lesson_ledger() -> InMemoryPurchaseLedger:
    return InMemoryPurchaseLedger(ItemType.RECORDED_LESSON)


@pytest.fixture
def ledgers(tute_ledger, lesson_ledger):
    return {ItemType.TUTORIAL: tute_ledger, ItemType.RECORDED_LESSON: lesson_ledger}


@pytest.fixture
def entitlements(ledgers) -> EntitlementResolver:
    return EntitlementResolver(ledgers, ttl_seconds=0)


@pytest.fixture
def cart_store(entitlements) -> CartStore:
    return CartStore(entitlements, clock=lambda: FIXED_NOW)


@pytest.fixture
def gateway() -> StubPaymentGateway:
    return StubPaymentGateway()


@pytest.fixture
def orchestrator(cart_store, gateway, ledgers, entitlements) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(cart_store, gateway, ledgers, entitlements, clock=lambda: FIXED_NOW)


@pytest.fixture
def student_user() -> CurrentUser:
    return CurrentUser(user_id="student-1", role=Role.STUDENT)


@pytest.fixture
def parent_user() -> CurrentUser:
    return CurrentUser(user_id="parent-1", role=Role.PARENT, child_ids=frozenset({"child-1", "child-2"}))


@pytest.fixture
def admin_user() -> CurrentUser:
    return CurrentUser(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def student_buyer(student_user) -> BuyerContext:
    return resolve_buyer(student_user)


@pytest.fixture
def parent_buyer(parent_user) -> BuyerContext:
    return resolve_buyer(parent_user)


@pytest.fixture
def tutorial() -> CatalogItem:
    return CatalogItem(item_id="T1", item_type=ItemType.TUTORIAL, title="Algebra Basics", price=Decimal("20.00"))


@pytest.fixture
def lesson() -> CatalogItem:
    return CatalogItem(item_id="L1", item_type=ItemType.RECORDED_LESSON, title="Cell Biology", price=Decimal("15.00"))


@pytest.fixture
def valid_card() -> PaymentDetails:
    return PaymentDetails(
        card_name="Jane Smith",
        card_number="4242 4242 4242 4242",
        expiry_date="12/29",
        cvv="123",
    )

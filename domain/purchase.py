"""
Domain: purchase records and their lifecycle.

A purchase record lives in the remote ledger and is the only source of
entitlement: a beneficiary owns an item iff a COMPLETED record exists for the
pair.

Lifecycle:
- PENDING   -> COMPLETED | FAILED | CANCELLED
- COMPLETED -> CANCELLED   (administrative only)
- FAILED    -> CANCELLED   (administrative only)
- CANCELLED is terminal.

Checkout in this service settles payment before writing, so it always creates
records directly as COMPLETED. PENDING and FAILED exist for asynchronous
payment providers and for reconciliation views.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Iterable, List, Mapping, Optional

from .cart import CartLine
from .catalog import ItemType
from .errors import InvalidStatusTransitionError
from .time import require_utc_timestamp


class PurchaseStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "PurchaseStatus") -> bool:
        return target in _TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]


_TRANSITIONS: Mapping[PurchaseStatus, FrozenSet[PurchaseStatus]] = {
    PurchaseStatus.PENDING: frozenset(
        {PurchaseStatus.COMPLETED, PurchaseStatus.FAILED, PurchaseStatus.CANCELLED}
    ),
    PurchaseStatus.COMPLETED: frozenset({PurchaseStatus.CANCELLED}),
    PurchaseStatus.FAILED: frozenset({PurchaseStatus.CANCELLED}),
    PurchaseStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class PurchaseDraft:
    """
    A purchase about to be submitted to the ledger (no id assigned yet).
    """

    buyer_id: str
    beneficiary_id: str
    item_id: str
    item_type: ItemType
    amount: Decimal
    purchase_date: datetime
    status: PurchaseStatus
    transaction_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("purchase_date", self.purchase_date)

    @staticmethod
    def completed_from_line(
        line: CartLine,
        *,
        transaction_id: Optional[str],
        purchase_date: datetime,
    ) -> "PurchaseDraft":
        """Build the COMPLETED draft for a paid cart line (amount = price snapshot)."""

        return PurchaseDraft(
            buyer_id=line.buyer_id,
            beneficiary_id=line.beneficiary_id,
            item_id=line.item_id,
            item_type=line.item_type,
            amount=line.unit_price,
            purchase_date=purchase_date,
            status=PurchaseStatus.COMPLETED,
            transaction_id=transaction_id,
        )


@dataclass(frozen=True, slots=True)
class PurchaseRecord:
    """
    Immutable purchase record as stored in the ledger.
    """

    purchase_id: str
    buyer_id: str
    beneficiary_id: str
    item_id: str
    item_type: ItemType
    amount: Decimal
    purchase_date: datetime
    status: PurchaseStatus
    transaction_id: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("purchase_date", self.purchase_date)

    @property
    def grants_entitlement(self) -> bool:
        return self.status is PurchaseStatus.COMPLETED

    def with_status(self, status: PurchaseStatus) -> "PurchaseRecord":
        """
        Return a copy moved to `status`.

        Raises InvalidStatusTransitionError when the lifecycle forbids it.
        """

        if not self.status.can_transition_to(status):
            raise InvalidStatusTransitionError(
                f"Purchase {self.purchase_id} cannot move from {self.status.value} to {status.value}"
            )
        return replace(self, status=status)


def filter_by_beneficiary(records: Iterable[PurchaseRecord], beneficiary_id: str) -> List[PurchaseRecord]:
    """Client-side filter used when the ledger cannot filter by beneficiary."""

    wanted = str(beneficiary_id)
    return [record for record in records if str(record.beneficiary_id) == wanted]


def owned_item_ids(records: Iterable[PurchaseRecord]) -> FrozenSet[str]:
    """Item ids backed by a COMPLETED record."""

    return frozenset(record.item_id for record in records if record.grants_entitlement)


__all__ = [
    "PurchaseStatus",
    "PurchaseDraft",
    "PurchaseRecord",
    "filter_by_beneficiary",
    "owned_item_ids",
]

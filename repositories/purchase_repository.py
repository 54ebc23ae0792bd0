"""
Purchase repository (persistence).

This module provides *only* persistence operations for PurchaseRecord. It does
not enforce business rules (entitlement, duplicate protection, lifecycle); it
creates, lists and deletes purchase rows in the remote ledger.

There is one ledger table per item type:
- tutorials:        `tute_purchases`   (item column `tute_id`)
- recorded lessons: `lesson_purchases` (item column `lesson_id`)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Protocol

from postgrest.exceptions import APIError

from domain.catalog import ItemType
from domain.errors import LedgerUnavailableError, LedgerWriteError, PurchaseNotFoundError
from domain.purchase import PurchaseDraft, PurchaseRecord, PurchaseStatus, filter_by_beneficiary
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import get_supabase

logger = logging.getLogger(__name__)

# Supabase table and item-column names per item type.
# Keep this aligned with your database schema.
_LEDGER_TABLES: Mapping[ItemType, str] = {
    ItemType.TUTORIAL: "tute_purchases",
    ItemType.RECORDED_LESSON: "lesson_purchases",
}
_ITEM_COLUMNS: Mapping[ItemType, str] = {
    ItemType.TUTORIAL: "tute_id",
    ItemType.RECORDED_LESSON: "lesson_id",
}

# Beneficiary column: the student who receives access.
_BENEFICIARY_COLUMN: str = "student_id"


class PurchaseLedger(Protocol):
    """What the services require from a purchase ledger for one item type."""

    item_type: ItemType

    def create(self, draft: PurchaseDraft) -> PurchaseRecord: ...

    def list_all(self) -> List[PurchaseRecord]: ...

    def list_by_beneficiary(self, beneficiary_id: str) -> List[PurchaseRecord]: ...

    def get(self, purchase_id: str) -> Optional[PurchaseRecord]: ...

    def delete(self, purchase_id: str) -> None: ...


class SupabasePurchaseLedger:
    """
    Purchase ledger for one item type, backed by a Supabase table.

    Args:
        item_type: Which table family this ledger reads and writes
        client: Supabase client; defaults to the shared client from get_supabase()
        server_side_filter: When False, list_by_beneficiary fetches every row and
            filters client-side (for backends without an indexed beneficiary filter)
    """

    def __init__(
        self,
        item_type: ItemType,
        client: Any = None,
        *,
        server_side_filter: bool = True,
    ) -> None:
        self.item_type = item_type
        self.table_name = _LEDGER_TABLES[item_type]
        self._item_column = _ITEM_COLUMNS[item_type]
        self._client = client
        self._server_side_filter = server_side_filter

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _table(self) -> Any:
        return self.client.table(self.table_name)

    def _row_to_purchase(self, row: Mapping[str, Any]) -> PurchaseRecord:
        """Convert a Supabase row into a PurchaseRecord."""

        beneficiary_id = str(row[_BENEFICIARY_COLUMN])
        return PurchaseRecord(
            purchase_id=str(row["id"]),
            buyer_id=str(row.get("buyer_id") or beneficiary_id),
            beneficiary_id=beneficiary_id,
            item_id=str(row[self._item_column]),
            item_type=self.item_type,
            amount=Decimal(str(row["amount"])),
            purchase_date=parse_utc_datetime(row["purchase_date"]),
            status=PurchaseStatus(str(row["status"]).upper()),
            transaction_id=row.get("transaction_id"),
        )

    def _draft_to_payload(self, draft: PurchaseDraft) -> Dict[str, Any]:
        return {
            "buyer_id": draft.buyer_id,
            _BENEFICIARY_COLUMN: draft.beneficiary_id,
            self._item_column: draft.item_id,
            "amount": str(draft.amount),
            "purchase_date": to_iso_utc(draft.purchase_date, name="purchase_date"),
            "status": draft.status.value,
            "transaction_id": draft.transaction_id,
        }

    def _select(self, query: Any, *, action: str) -> List[PurchaseRecord]:
        try:
            response = query.execute()
        except Exception as e:
            logger.exception("%s failed on %s", action, self.table_name)
            raise LedgerUnavailableError(f"Failed to {action}: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise LedgerUnavailableError(f"Failed to {action}: {error}")

        rows = getattr(response, "data", None) or []
        return [self._row_to_purchase(row) for row in rows]

    def create(self, draft: PurchaseDraft) -> PurchaseRecord:
        """
        Insert one purchase and return it with the id assigned by the ledger.

        Raises:
            LedgerWriteError: If the insert fails or returns no row
        """

        if draft.item_type is not self.item_type:
            raise ValueError(
                f"{self.table_name} only accepts {self.item_type.value} purchases, got {draft.item_type.value}"
            )

        payload = self._draft_to_payload(draft)

        try:
            response = self._table().insert(payload).execute()
        except APIError as e:
            # PostgREST rejected the row, e.g. a constraint violation.
            raise LedgerWriteError(
                f"Ledger rejected purchase of {draft.item_id} for {draft.beneficiary_id}: {e.message or e}"
            ) from e
        except Exception as e:
            raise LedgerWriteError(
                f"Failed to record purchase of {draft.item_id} for {draft.beneficiary_id}: {e}"
            ) from e

        error = getattr(response, "error", None)
        if error:
            raise LedgerWriteError(f"Failed to record purchase: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            raise LedgerWriteError(
                f"Ledger returned no record for purchase of {draft.item_id} for {draft.beneficiary_id}"
            )

        return self._row_to_purchase(rows[0])

    def list_all(self) -> List[PurchaseRecord]:
        """Retrieve every purchase in this ledger (possibly empty)."""

        return self._select(self._table().select("*"), action="list purchases")

    def list_by_beneficiary(self, beneficiary_id: str) -> List[PurchaseRecord]:
        """
        Retrieve all purchases granting access to `beneficiary_id`, whatever their status.
        """

        if not self._server_side_filter:
            return filter_by_beneficiary(self.list_all(), beneficiary_id)

        query = self._table().select("*").eq(_BENEFICIARY_COLUMN, str(beneficiary_id))
        return self._select(query, action="list purchases by beneficiary")

    def get(self, purchase_id: str) -> Optional[PurchaseRecord]:
        """
        Retrieve a single purchase by its ID.

        Returns:
            PurchaseRecord or None if not found
        """

        query = self._table().select("*").eq("id", str(purchase_id)).limit(1)
        records = self._select(query, action="get purchase")
        return records[0] if records else None

    def delete(self, purchase_id: str) -> None:
        """
        Remove a purchase row (administrative use only).

        Raises:
            PurchaseNotFoundError: If no row had that id
            LedgerWriteError: If the delete call fails
        """

        try:
            response = self._table().delete().eq("id", str(purchase_id)).execute()
        except Exception as e:
            raise LedgerWriteError(f"Failed to delete purchase {purchase_id}: {e}") from e

        error = getattr(response, "error", None)
        if error:
            raise LedgerWriteError(f"Failed to delete purchase {purchase_id}: {error}")

        rows = getattr(response, "data", None) or []
        if not rows:
            raise PurchaseNotFoundError(str(purchase_id))


def build_ledgers(client: Any = None, *, server_side_filter: bool = True) -> Dict[ItemType, SupabasePurchaseLedger]:
    """One ledger per item type, sharing `client`."""

    return {
        item_type: SupabasePurchaseLedger(item_type, client, server_side_filter=server_side_filter)
        for item_type in ItemType
    }


__all__ = [
    "PurchaseLedger",
    "SupabasePurchaseLedger",
    "build_ledgers",
]

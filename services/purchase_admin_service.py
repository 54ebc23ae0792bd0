"""
Administrative purchase operations.

Deleting a purchase is how an administrator cancels an entitlement; it is
never part of checkout. Deletes are idempotent: a purchase that is already
gone counts as resolved.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from domain.catalog import ItemType
from domain.errors import NotPermittedError, PurchaseNotFoundError
from domain.purchase import PurchaseRecord
from domain.user import Capability, CurrentUser
from repositories.purchase_repository import PurchaseLedger
from services.entitlement_service import EntitlementResolver

logger = logging.getLogger(__name__)


class PurchaseAdminService:
    def __init__(
        self,
        ledgers: Mapping[ItemType, PurchaseLedger],
        entitlements: EntitlementResolver,
    ) -> None:
        self._ledgers: Dict[ItemType, PurchaseLedger] = dict(ledgers)
        self._entitlements = entitlements

    def delete_purchase(self, actor: CurrentUser, item_type: ItemType, purchase_id: str) -> bool:
        """
        Remove a purchase record.

        Returns:
            True if a record was deleted, False if it did not exist

        Raises:
            NotPermittedError: If the actor cannot manage purchases
        """
        if not actor.has(Capability.MANAGE_PURCHASES):
            raise NotPermittedError(f"Role {actor.role.value} cannot delete purchases")

        ledger = self._ledgers[item_type]
        existing = ledger.get(purchase_id)

        try:
            ledger.delete(purchase_id)
        except PurchaseNotFoundError:
            logger.info("Purchase %s (%s) already deleted", purchase_id, item_type.value)
            return False

        if existing is not None:
            self._entitlements.invalidate(existing.beneficiary_id)
        else:
            self._entitlements.invalidate()

        logger.info("Purchase %s (%s) deleted by %s", purchase_id, item_type.value, actor.user_id)
        return True

    def list_all_purchases(self, actor: CurrentUser, item_type: Optional[ItemType] = None) -> List[PurchaseRecord]:
        """
        Every purchase across ledgers (sales view), newest first.

        Raises:
            NotPermittedError: If the actor cannot view sales
        """
        if not actor.has(Capability.VIEW_SALES):
            raise NotPermittedError(f"Role {actor.role.value} cannot view sales")

        records: List[PurchaseRecord] = []
        for ledger_type, ledger in self._ledgers.items():
            if item_type is None or ledger_type is item_type:
                records.extend(ledger.list_all())

        records.sort(key=lambda record: record.purchase_date, reverse=True)
        return records


__all__ = ["PurchaseAdminService"]

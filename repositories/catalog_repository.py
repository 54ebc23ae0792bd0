"""
Catalog repository for tutorials and recorded lessons.

Read-only lookups used to snapshot an item's price when it is added to a cart.
Catalog management itself lives in another service.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Optional

from domain.catalog import CENTS, CatalogItem, ItemType
from repositories.client import get_supabase

_CATALOG_TABLES: Mapping[ItemType, str] = {
    ItemType.TUTORIAL: "tutes",
    ItemType.RECORDED_LESSON: "recorded_lessons",
}


def _row_to_item(item_type: ItemType, row: Mapping[str, Any]) -> CatalogItem:
    # Catalog prices are numeric columns that may carry more than two decimals.
    price = Decimal(str(row.get("price") or "0")).quantize(CENTS, rounding=ROUND_HALF_UP)
    return CatalogItem(
        item_id=str(row["id"]),
        item_type=item_type,
        title=str(row.get("title") or ""),
        price=price,
    )


def get_catalog_item(item_type: ItemType, item_id: str) -> Optional[CatalogItem]:
    """
    Get a tutorial or recorded lesson by its ID.

    Args:
        item_type: TUTORIAL or RECORDED_LESSON
        item_id: Catalog identifier

    Returns:
        CatalogItem or None if not found

    Example:
        item = get_catalog_item(ItemType.TUTORIAL, "42")
        if item is not None:
            print(f"{item.title}: ${item.price}")
    """
    response = (
        get_supabase()
        .table(_CATALOG_TABLES[item_type])
        .select("id,title,price")
        .eq("id", str(item_id))
        .limit(1)
        .execute()
    )

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to fetch catalog item: {error}")

    rows = getattr(response, "data", None) or []

    if not rows:
        return None

    return _row_to_item(item_type, rows[0])


__all__ = ["get_catalog_item"]

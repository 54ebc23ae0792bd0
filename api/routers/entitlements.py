"""
Entitlement API Endpoints.

Answers "does this student already own this item?" so the UI can show
Open instead of Buy.
"""

from typing import Optional

from fastapi import APIRouter, Depends

from api.dependencies import Services, get_current_user, get_services
from api.models import OwnedItem, OwnedItemsResponse, OwnershipResponse
from domain.catalog import ItemType
from domain.errors import NotPermittedError
from domain.user import Capability, CurrentUser, can_buy_for

router = APIRouter()


def _require_view(user: CurrentUser, beneficiary_id: str) -> None:
    # Students see themselves, parents their children, staff everyone.
    if can_buy_for(user, beneficiary_id) or user.has(Capability.VIEW_SALES):
        return
    raise NotPermittedError(
        f"{user.role.value} {user.user_id} cannot view entitlements of {beneficiary_id}"
    )


@router.get(
    "/entitlements/{beneficiary_id}",
    response_model=OwnedItemsResponse,
    summary="List Owned Items",
    description="Every item the student owns through a completed purchase."
)
def list_owned_items(
    beneficiary_id: str,
    item_type: Optional[ItemType] = None,
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    _require_view(current_user, beneficiary_id)

    owned = services.entitlements.get_owned_items(beneficiary_id)
    items = [
        OwnedItem(item_type=owned_type, item_id=item_id)
        for owned_type, item_id in sorted(owned, key=lambda pair: (pair[0].value, pair[1]))
        if item_type is None or owned_type is item_type
    ]
    return OwnedItemsResponse(beneficiary_id=beneficiary_id, items=items)


@router.get(
    "/entitlements/{beneficiary_id}/{item_type}/{item_id}",
    response_model=OwnershipResponse,
    summary="Check Ownership",
)
def check_ownership(
    beneficiary_id: str,
    item_type: ItemType,
    item_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    _require_view(current_user, beneficiary_id)

    return OwnershipResponse(
        beneficiary_id=beneficiary_id,
        item_type=item_type,
        item_id=item_id,
        owned=services.entitlements.is_owned(beneficiary_id, item_id, item_type),
    )

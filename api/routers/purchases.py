"""
Purchases API Endpoints.

Purchase history for buyers and staff, and administrative deletion.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends

from api.dependencies import Services, get_current_user, get_services
from api.models import DeletePurchaseResponse, PurchaseResponse
from domain.catalog import ItemType
from domain.errors import NotPermittedError
from domain.purchase import PurchaseRecord, filter_by_beneficiary
from domain.user import Capability, CurrentUser, Role, can_buy_for

router = APIRouter()


@router.get(
    "/purchases",
    response_model=List[PurchaseResponse],
    summary="List Purchases",
    description="Purchase history, newest first, in every status."
)
def list_purchases(
    beneficiary_id: Optional[str] = None,
    item_type: Optional[ItemType] = None,
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    List purchases visible to the acting user.

    **Visibility:**
    - Student: their own purchases
    - Parent: one child (`beneficiary_id`) or all linked children
    - Admin / tutor: every purchase, optionally narrowed to one student
    """
    records: List[PurchaseRecord]

    if current_user.has(Capability.VIEW_SALES):
        records = services.admin.list_all_purchases(current_user, item_type)
        if beneficiary_id:
            records = filter_by_beneficiary(records, beneficiary_id)
    elif beneficiary_id:
        if not can_buy_for(current_user, beneficiary_id):
            raise NotPermittedError(
                f"{current_user.role.value} {current_user.user_id} cannot view purchases of {beneficiary_id}"
            )
        records = services.entitlements.list_purchases([beneficiary_id], item_type)
    elif current_user.role is Role.PARENT:
        records = services.entitlements.list_purchases(sorted(current_user.child_ids), item_type)
    else:
        records = services.entitlements.list_purchases([current_user.user_id], item_type)

    return [PurchaseResponse.from_record(record) for record in records]


@router.delete(
    "/purchases/{item_type}/{purchase_id}",
    response_model=DeletePurchaseResponse,
    summary="Delete Purchase",
    description="Admin only. Removes the purchase and the entitlement it granted."
)
def delete_purchase(
    item_type: ItemType,
    purchase_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    deleted = services.admin.delete_purchase(current_user, item_type, purchase_id)
    return DeletePurchaseResponse(purchase_id=purchase_id, deleted=deleted)

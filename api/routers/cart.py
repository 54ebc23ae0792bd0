"""
Cart API Endpoints.

Endpoints for reading and changing the acting buyer's cart.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from api.dependencies import CatalogLookup, Services, get_buyer, get_catalog_lookup, get_services
from api.models import AddToCartRequest, CartLineResponse, CartResponse, RemoveFromCartResponse
from domain.catalog import ItemType
from domain.errors import CatalogItemNotFoundError
from services.buyer_context import BuyerContext

router = APIRouter()


def _cart_response(services: Services, buyer: BuyerContext) -> CartResponse:
    lines = services.cart_store.get_cart_items(buyer)
    return CartResponse(
        buyer_id=buyer.buyer_id,
        lines=[CartLineResponse.from_line(line) for line in lines],
        total=services.cart_store.get_cart_total(buyer),
        item_count=len(lines),
    )


@router.get(
    "/cart",
    response_model=CartResponse,
    summary="Get Cart",
    description="Current cart lines in the order they were added, with the recomputed total."
)
def get_cart(
    buyer: BuyerContext = Depends(get_buyer),
    services: Services = Depends(get_services),
):
    return _cart_response(services, buyer)


@router.post(
    "/cart/items",
    response_model=CartLineResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add To Cart",
    description="Add a tutorial or recorded lesson for yourself (students) or a child (parents)."
)
def add_to_cart(
    request: AddToCartRequest,
    buyer: BuyerContext = Depends(get_buyer),
    services: Services = Depends(get_services),
    lookup_item: CatalogLookup = Depends(get_catalog_lookup),
):
    """
    Add an item to the cart.

    **Rules:**
    - The price is taken from the catalog at the moment of adding
    - Adding the same item for the same student twice keeps a single line
    - Items the student already owns are rejected with 409
    """
    item = lookup_item(request.item_type, request.item_id)
    if item is None:
        raise CatalogItemNotFoundError(
            f"{request.item_type.value} not found: {request.item_id}"
        )

    line = services.cart_store.add_to_cart(buyer, item, request.beneficiary_id)
    return CartLineResponse.from_line(line)


@router.delete(
    "/cart/items/{item_type}/{item_id}",
    response_model=RemoveFromCartResponse,
    summary="Remove From Cart",
    description="Remove a line; removing a line that is not in the cart is not an error."
)
def remove_from_cart(
    item_type: ItemType,
    item_id: str,
    beneficiary_id: Optional[str] = None,
    buyer: BuyerContext = Depends(get_buyer),
    services: Services = Depends(get_services),
):
    removed = services.cart_store.remove_from_cart(buyer, item_id, beneficiary_id, item_type)
    return RemoveFromCartResponse(removed=removed)


@router.delete(
    "/cart",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Clear Cart",
)
def clear_cart(
    buyer: BuyerContext = Depends(get_buyer),
    services: Services = Depends(get_services),
):
    services.cart_store.clear_cart(buyer)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

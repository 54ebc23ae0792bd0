"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from domain.cart import CartLine
from domain.catalog import ItemType
from domain.purchase import PurchaseRecord, PurchaseStatus


# ============================================================================
# Cart Models
# ============================================================================

class AddToCartRequest(BaseModel):
    """Request to add a tutorial or recorded lesson to the cart."""
    item_type: ItemType
    item_id: str = Field(..., min_length=1, description="Catalog id of the item")
    beneficiary_id: Optional[str] = Field(
        None,
        description="Student receiving access. Required for parents, defaults to self for students."
    )

    class Config:
        json_schema_extra = {
            "example": {
                "item_type": "TUTORIAL",
                "item_id": "42",
                "beneficiary_id": "child-7"
            }
        }


class CartLineResponse(BaseModel):
    """Single cart line in API response."""
    item_id: str
    item_type: ItemType
    title: str
    beneficiary_id: str
    unit_price: Decimal
    added_at: datetime

    @classmethod
    def from_line(cls, line: CartLine) -> "CartLineResponse":
        return cls(
            item_id=line.item_id,
            item_type=line.item_type,
            title=line.title,
            beneficiary_id=line.beneficiary_id,
            unit_price=line.unit_price,
            added_at=line.added_at,
        )


class CartResponse(BaseModel):
    """The buyer's cart with its recomputed total."""
    buyer_id: str
    lines: List[CartLineResponse]
    total: Decimal
    item_count: int

    class Config:
        json_schema_extra = {
            "example": {
                "buyer_id": "student-1",
                "lines": [],
                "total": "35.00",
                "item_count": 2
            }
        }


class RemoveFromCartResponse(BaseModel):
    removed: bool


# ============================================================================
# Checkout Models
# ============================================================================

class CheckoutRequest(BaseModel):
    """
    Card details for checkout.

    Fields are accepted as free text and checked by the checkout service so
    every malformed field is reported at once.
    """
    card_name: str = ""
    card_number: str = ""
    expiry_date: str = ""
    cvv: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "card_name": "Jane Smith",
                "card_number": "4242 4242 4242 4242",
                "expiry_date": "12/29",
                "cvv": "123"
            }
        }


class PurchaseResponse(BaseModel):
    """Single purchase record."""
    purchase_id: str
    buyer_id: str
    beneficiary_id: str
    item_id: str
    item_type: ItemType
    amount: Decimal
    purchase_date: datetime
    status: PurchaseStatus
    transaction_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: PurchaseRecord) -> "PurchaseResponse":
        return cls(
            purchase_id=record.purchase_id,
            buyer_id=record.buyer_id,
            beneficiary_id=record.beneficiary_id,
            item_id=record.item_id,
            item_type=record.item_type,
            amount=record.amount,
            purchase_date=record.purchase_date,
            status=record.status,
            transaction_id=record.transaction_id,
        )


class FailedLineResponse(BaseModel):
    """A paid line whose purchase record could not be written."""
    line: CartLineResponse
    error: str


class CheckoutResponse(BaseModel):
    """Response after a checkout or retry attempt."""
    success: bool
    failure: Optional[str] = None
    payment_captured: bool
    transaction_id: Optional[str] = None
    total_charged: Decimal
    purchases: List[PurchaseResponse]
    failed_lines: List[FailedLineResponse]
    message: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "failure": None,
                "payment_captured": True,
                "transaction_id": "TRANS-3F2A9C1B7D4E5F60",
                "total_charged": "35.00",
                "purchases": [],
                "failed_lines": [],
                "message": "Payment successful! Your tutorials are now available."
            }
        }


# ============================================================================
# Entitlement Models
# ============================================================================

class OwnedItem(BaseModel):
    item_type: ItemType
    item_id: str


class OwnedItemsResponse(BaseModel):
    """Items a beneficiary is entitled to."""
    beneficiary_id: str
    items: List[OwnedItem]


class OwnershipResponse(BaseModel):
    beneficiary_id: str
    item_type: ItemType
    item_id: str
    owned: bool


class DeletePurchaseResponse(BaseModel):
    """deleted is False when the purchase was already gone."""
    purchase_id: str
    deleted: bool


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
    field_errors: Optional[Dict[str, str]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "ValidationError",
                "detail": "cvv: Please enter a valid 3-digit CVV",
                "status_code": 422,
                "field_errors": {"cvv": "Please enter a valid 3-digit CVV"}
            }
        }

"""
Domain: error taxonomy for the cart, checkout and entitlement flows.

Every error raised by the services derives from MarketplaceError so the HTTP
layer can translate the whole family in one place.

A declined payment is a checkout outcome (CheckoutFailure.PAYMENT_DECLINED),
not an exception.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional


class MarketplaceError(Exception):
    """Base class for all cart/checkout/entitlement errors."""
    pass


class UnauthenticatedError(MarketplaceError):
    """No current user is available."""
    pass


class NotPermittedError(MarketplaceError):
    """The acting user's role does not allow the requested operation."""
    pass


class BeneficiaryRequiredError(MarketplaceError):
    """A parent must name the child they are buying for."""
    pass


class ValidationError(MarketplaceError):
    """
    Malformed input, reported per field.

    field_errors maps a field name (e.g. "card_number") to a human readable
    message. Resolved locally; never retried.
    """

    def __init__(self, field_errors: Mapping[str, str], message: Optional[str] = None) -> None:
        self.field_errors: Dict[str, str] = dict(field_errors)
        if message is None:
            message = "; ".join(f"{field}: {error}" for field, error in self.field_errors.items())
        super().__init__(message)


class EmptyCartError(MarketplaceError):
    """Checkout was attempted with no cart lines."""
    pass


class AlreadyOwnedError(MarketplaceError):
    """The beneficiary is already entitled to the item being added."""

    def __init__(self, item_id: str, beneficiary_id: str) -> None:
        self.item_id = item_id
        self.beneficiary_id = beneficiary_id
        super().__init__(f"Item {item_id} is already owned by {beneficiary_id}")


class CheckoutInProgressError(MarketplaceError):
    """Another checkout for the same buyer has not finished yet."""
    pass


class UnsettledPaymentError(MarketplaceError):
    """
    A previous payment was captured but some purchase records were never
    written. The failed lines must be retried before a new checkout.
    """

    def __init__(self, buyer_id: str, transaction_id: Optional[str]) -> None:
        self.buyer_id = buyer_id
        self.transaction_id = transaction_id
        super().__init__(
            f"Buyer {buyer_id} has unrecorded purchases for transaction {transaction_id}"
        )


class NothingToRetryError(MarketplaceError):
    """retry_failed_lines was called but no payment is awaiting settlement."""
    pass


class PaymentGatewayError(MarketplaceError):
    """The payment gateway could not be reached; nothing was charged."""
    pass


class LedgerError(MarketplaceError):
    """Base class for purchase ledger failures."""
    pass


class LedgerWriteError(LedgerError):
    """
    A purchase record could not be created.

    After a successful payment this is the most serious failure: money may
    have been captured without a recorded entitlement.
    """
    pass


class LedgerUnavailableError(LedgerError):
    """The purchase ledger could not be read."""
    pass


class PurchaseNotFoundError(LedgerError):
    """No purchase record exists for the given id."""

    def __init__(self, purchase_id: str) -> None:
        self.purchase_id = purchase_id
        super().__init__(f"Purchase not found: {purchase_id}")


class CatalogItemNotFoundError(MarketplaceError):
    """The requested tutorial or recorded lesson does not exist."""
    pass


class InvalidStatusTransitionError(MarketplaceError, ValueError):
    """A purchase status change not allowed by the lifecycle."""
    pass


__all__ = [
    "MarketplaceError",
    "UnauthenticatedError",
    "NotPermittedError",
    "BeneficiaryRequiredError",
    "ValidationError",
    "EmptyCartError",
    "AlreadyOwnedError",
    "CheckoutInProgressError",
    "UnsettledPaymentError",
    "NothingToRetryError",
    "PaymentGatewayError",
    "LedgerError",
    "LedgerWriteError",
    "LedgerUnavailableError",
    "PurchaseNotFoundError",
    "CatalogItemNotFoundError",
    "InvalidStatusTransitionError",
]

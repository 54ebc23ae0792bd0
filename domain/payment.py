"""
Domain: payment details and their structural validation.

Only the shape of the card fields is checked here (no Luhn, no expiry-in-the-past
check). Real authorization is the payment gateway's job.

Rules:
- card_name: required.
- card_number: exactly 16 digits once whitespace is removed.
- expiry_date: MM/YY.
- cvv: exactly 3 digits.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Dict, Optional

from .errors import ValidationError

_WHITESPACE = re.compile(r"\s+")
_CARD_NUMBER = re.compile(r"^\d{16}$")
_EXPIRY = re.compile(r"^\d{2}/\d{2}$")
_CVV = re.compile(r"^\d{3}$")


@dataclass(frozen=True, slots=True)
class PaymentDetails:
    card_name: str
    card_number: str
    expiry_date: str
    cvv: str

    def normalized(self) -> "PaymentDetails":
        """Copy with whitespace stripped from the card number and padding trimmed elsewhere."""

        return replace(
            self,
            card_name=self.card_name.strip(),
            card_number=_WHITESPACE.sub("", self.card_number),
            expiry_date=self.expiry_date.strip(),
            cvv=self.cvv.strip(),
        )

    @property
    def last4(self) -> str:
        return _WHITESPACE.sub("", self.card_number)[-4:]


@dataclass(frozen=True, slots=True)
class PaymentResult:
    """Outcome of a single authorization attempt."""

    success: bool
    transaction_id: Optional[str] = None
    decline_reason: Optional[str] = None


def validate_payment_details(details: PaymentDetails) -> Dict[str, str]:
    """
    Check every field and return {field: message} for the ones that fail.

    An empty dict means the details are structurally valid.
    """

    errors: Dict[str, str] = {}
    normalized = details.normalized()

    if not normalized.card_name:
        errors["card_name"] = "Please enter the cardholder name"
    if not _CARD_NUMBER.match(normalized.card_number):
        errors["card_number"] = "Please enter a valid 16-digit card number"
    if not _EXPIRY.match(normalized.expiry_date):
        errors["expiry_date"] = "Please enter a valid expiry date (MM/YY)"
    if not _CVV.match(normalized.cvv):
        errors["cvv"] = "Please enter a valid 3-digit CVV"

    return errors


def require_valid_payment_details(details: PaymentDetails) -> PaymentDetails:
    """Return the normalized details, or raise ValidationError listing every bad field."""

    errors = validate_payment_details(details)
    if errors:
        raise ValidationError(errors)
    return details.normalized()


__all__ = [
    "PaymentDetails",
    "PaymentResult",
    "validate_payment_details",
    "require_valid_payment_details",
]

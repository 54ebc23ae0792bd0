"""
Payment gateway boundary.

The checkout flow only depends on the PaymentGateway protocol. The bundled
SimulatedPaymentGateway is a stand-in authorization call: it approves every
structurally valid card except a configurable set of decline card numbers,
and never talks to a real payment network.
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal
from typing import Callable, FrozenSet, Iterable, Optional, Protocol
from uuid import uuid4

from domain.payment import PaymentDetails, PaymentResult

logger = logging.getLogger(__name__)

# Standard "generic decline" test card number.
DEFAULT_DECLINE_CARDS: FrozenSet[str] = frozenset({"4000000000000002"})


class PaymentGateway(Protocol):
    def process_payment(self, buyer_id: str, details: PaymentDetails, amount: Decimal) -> PaymentResult:
        """
        Authorize `amount` against the card.

        Returns a PaymentResult; raises PaymentGatewayError only when the
        gateway could not be reached (nothing was charged).
        """
        ...


def _new_transaction_id() -> str:
    return f"TRANS-{uuid4().hex[:16].upper()}"


class SimulatedPaymentGateway:
    """
    Stand-in gateway.

    Args:
        declined_card_numbers: Card numbers (digits only) that are always declined
        transaction_id_factory: Produces transaction references for approvals
    """

    def __init__(
        self,
        declined_card_numbers: Iterable[str] = DEFAULT_DECLINE_CARDS,
        *,
        transaction_id_factory: Callable[[], str] = _new_transaction_id,
    ) -> None:
        self._declined = frozenset(declined_card_numbers)
        self._transaction_id_factory = transaction_id_factory

    def process_payment(self, buyer_id: str, details: PaymentDetails, amount: Decimal) -> PaymentResult:
        if amount <= 0:
            raise ValueError("amount must be greater than zero")

        card = details.normalized()

        if card.card_number in self._declined:
            logger.warning(
                "Payment declined for buyer %s: card ending %s, amount %s",
                buyer_id, card.last4, amount,
            )
            return PaymentResult(success=False, decline_reason="Card declined")

        transaction_id = self._transaction_id_factory()
        logger.info(
            "Payment authorized for buyer %s: card ending %s, amount %s, transaction %s",
            buyer_id, card.last4, amount, transaction_id,
        )
        return PaymentResult(success=True, transaction_id=transaction_id)


def declined_cards_from_env(default: Optional[FrozenSet[str]] = None) -> FrozenSet[str]:
    """
    Read PAYMENT_DECLINE_CARDS (comma separated card numbers).

    Falls back to `default` (or DEFAULT_DECLINE_CARDS) when unset.
    """

    raw = os.getenv("PAYMENT_DECLINE_CARDS")
    if raw is None:
        return default if default is not None else DEFAULT_DECLINE_CARDS
    return frozenset("".join(part.split()) for part in raw.split(",") if part.strip())


__all__ = [
    "DEFAULT_DECLINE_CARDS",
    "PaymentGateway",
    "SimulatedPaymentGateway",
    "declined_cards_from_env",
]

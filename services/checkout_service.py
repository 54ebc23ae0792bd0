"""
Checkout service: turns a buyer's cart into purchase records.

Handles:
- Structural payment validation before anything leaves the process
- A single payment authorization per checkout
- One COMPLETED purchase per paid cart line
- Partial ledger failures after payment (retain and report the failed lines)

Outcomes:
- Declined payment: no purchases, cart untouched.
- Accepted payment, all writes succeed: purchases returned, paid lines leave the cart.
- Accepted payment, some writes fail: succeeded lines leave the cart, failed
  lines stay in it and are remembered with the transaction id so
  retry_failed_lines() can record them without charging again.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Set, Tuple

from domain.cart import CartLine, cart_total
from domain.catalog import ItemType
from domain.errors import (
    AlreadyOwnedError,
    CheckoutInProgressError,
    EmptyCartError,
    LedgerWriteError,
    NothingToRetryError,
    UnsettledPaymentError,
)
from domain.payment import PaymentDetails, require_valid_payment_details
from domain.purchase import PurchaseDraft, PurchaseRecord
from domain.time import utc_now
from repositories.purchase_repository import PurchaseLedger
from services.buyer_context import BuyerContext
from services.cart_store import CartStore
from services.entitlement_service import EntitlementResolver
from services.payment_gateway import PaymentGateway

logger = logging.getLogger(__name__)


class CheckoutFailure(str, Enum):
    PAYMENT_DECLINED = "PAYMENT_DECLINED"
    LEDGER_WRITE_FAILED = "LEDGER_WRITE_FAILED"


@dataclass(frozen=True, slots=True)
class FailedLine:
    """A paid cart line whose purchase record could not be written."""
    line: CartLine
    error: str


@dataclass(frozen=True, slots=True)
class CheckoutResult:
    """
    Result of a checkout (or retry) attempt.

    success: True if every line now has a COMPLETED purchase
    purchases: Purchase records created by this attempt
    failed_lines: Paid lines still missing a purchase record (LEDGER_WRITE_FAILED only)
    total_charged: Amount authorized by the gateway (0.00 when declined)
    transaction_id: Gateway reference (None when declined)
    failure: Why success is False
    message: Human readable summary
    """
    success: bool
    purchases: List[PurchaseRecord] = field(default_factory=list)
    failed_lines: List[FailedLine] = field(default_factory=list)
    total_charged: Decimal = Decimal("0.00")
    transaction_id: Optional[str] = None
    failure: Optional[CheckoutFailure] = None
    message: Optional[str] = None

    @property
    def payment_captured(self) -> bool:
        """True if money changed hands, whether or not every record was written."""
        return self.success or self.failure is CheckoutFailure.LEDGER_WRITE_FAILED


@dataclass(frozen=True, slots=True)
class _UnsettledPayment:
    transaction_id: Optional[str]
    total_charged: Decimal
    lines: Tuple[CartLine, ...]


class CheckoutOrchestrator:
    """
    Drains a buyer's cart through the payment gateway into the purchase ledgers.

    Usage:
        orchestrator = CheckoutOrchestrator(cart_store, gateway, ledgers, entitlements)
        result = orchestrator.checkout(buyer, payment_details)

        if result.success:
            print(f"Bought {len(result.purchases)} items for ${result.total_charged}")
        elif result.failure is CheckoutFailure.LEDGER_WRITE_FAILED:
            result = orchestrator.retry_failed_lines(buyer)
    """

    def __init__(
        self,
        cart_store: CartStore,
        gateway: PaymentGateway,
        ledgers: Mapping[ItemType, PurchaseLedger],
        entitlements: EntitlementResolver,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cart_store = cart_store
        self._gateway = gateway
        self._ledgers: Dict[ItemType, PurchaseLedger] = dict(ledgers)
        self._entitlements = entitlements
        self._clock = clock
        self._unsettled: Dict[str, _UnsettledPayment] = {}
        self._in_flight: Set[str] = set()
        self._lock = threading.Lock()

    @contextmanager
    def _exclusive(self, buyer_id: str) -> Iterator[None]:
        with self._lock:
            if buyer_id in self._in_flight:
                raise CheckoutInProgressError(f"A checkout for buyer {buyer_id} is already in progress")
            self._in_flight.add(buyer_id)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(buyer_id)

    def has_unsettled_payment(self, buyer: BuyerContext) -> bool:
        with self._lock:
            return buyer.buyer_id in self._unsettled

    def checkout(self, buyer: BuyerContext, payment_details: PaymentDetails) -> CheckoutResult:
        """
        Pay for the buyer's cart and record one purchase per line.

        Process:
        1. Validate payment fields (ValidationError lists every bad field)
        2. Refuse an empty cart, a concurrent checkout, or an unsettled earlier payment
        3. Snapshot the cart lines; drop lines already owned and stop (AlreadyOwnedError)
        4. Authorize the total with the payment gateway
        5. If declined: return PAYMENT_DECLINED; cart and ledger untouched
        6. If accepted: submit a COMPLETED purchase for every snapshotted line
        7. Remove the recorded lines from the cart; keep and report any failed ones

        Raises:
            ValidationError: Malformed payment details
            EmptyCartError: Nothing to buy
            AlreadyOwnedError: A line was bought elsewhere since it was added (line removed, nothing charged)
            CheckoutInProgressError: Same buyer already checking out
            UnsettledPaymentError: A previous payment still has unrecorded lines
            PaymentGatewayError: Gateway unreachable (nothing charged, cart untouched)
        """
        details = require_valid_payment_details(payment_details)

        with self._exclusive(buyer.buyer_id):
            with self._lock:
                unsettled = self._unsettled.get(buyer.buyer_id)
            if unsettled is not None:
                raise UnsettledPaymentError(buyer.buyer_id, unsettled.transaction_id)

            lines = self._cart_store.get_cart_items(buyer)
            if not lines:
                raise EmptyCartError("Your cart is empty")

            self._drop_owned_lines(buyer, lines)

            total = cart_total(lines)
            payment = self._gateway.process_payment(buyer.buyer_id, details, total)

            if not payment.success:
                logger.warning(
                    "Checkout declined for buyer %s (%d lines, total %s): %s",
                    buyer.buyer_id, len(lines), total, payment.decline_reason or "no reason given",
                )
                return CheckoutResult(
                    success=False,
                    failure=CheckoutFailure.PAYMENT_DECLINED,
                    message=payment.decline_reason or "Payment failed. Please try again.",
                )

            return self._settle(buyer, lines, payment.transaction_id, total)

    def _drop_owned_lines(self, buyer: BuyerContext, lines: Tuple[CartLine, ...]) -> None:
        """
        Refuse to charge for lines whose beneficiary already owns the item.

        Ownership can change after a line was added (another buyer, another
        session). Such lines are removed from the cart and AlreadyOwnedError
        is raised so the buyer reviews the new total before paying.
        """
        for beneficiary_id in {line.beneficiary_id for line in lines}:
            self._entitlements.invalidate(beneficiary_id)

        owned = [
            line for line in lines
            if self._entitlements.is_owned(line.beneficiary_id, line.item_id, line.item_type)
        ]
        if not owned:
            return

        self._cart_store.remove_lines(buyer, [line.key for line in owned])
        logger.warning(
            "Checkout for buyer %s stopped before payment: %d lines already owned (%s)",
            buyer.buyer_id, len(owned), ", ".join(f"{line.item_id} for {line.beneficiary_id}" for line in owned),
        )
        raise AlreadyOwnedError(owned[0].item_id, owned[0].beneficiary_id)

    def retry_failed_lines(self, buyer: BuyerContext) -> CheckoutResult:
        """
        Record the lines left over from a partially failed checkout.

        Reuses the transaction id of the checkout that failed; the gateway is not called again.

        Raises:
            NothingToRetryError: If no payment is awaiting settlement
            CheckoutInProgressError: Same buyer already checking out
        """
        with self._exclusive(buyer.buyer_id):
            with self._lock:
                unsettled = self._unsettled.get(buyer.buyer_id)
            if unsettled is None:
                raise NothingToRetryError(f"Buyer {buyer.buyer_id} has no purchases awaiting retry")

            logger.info(
                "Retrying %d unrecorded purchases for buyer %s (transaction %s)",
                len(unsettled.lines), buyer.buyer_id, unsettled.transaction_id,
            )
            return self._settle(buyer, unsettled.lines, unsettled.transaction_id, unsettled.total_charged)

    def _record_purchases(
        self,
        lines: Tuple[CartLine, ...],
        transaction_id: Optional[str],
    ) -> Tuple[List[PurchaseRecord], List[FailedLine]]:
        purchase_date = self._clock()
        purchases: List[PurchaseRecord] = []
        failed: List[FailedLine] = []

        for line in lines:
            draft = PurchaseDraft.completed_from_line(
                line,
                transaction_id=transaction_id,
                purchase_date=purchase_date,
            )
            try:
                ledger = self._ledgers.get(line.item_type)
                if ledger is None:
                    raise LedgerWriteError(f"No ledger configured for {line.item_type.value}")
                purchases.append(ledger.create(draft))
            except Exception as e:
                # Payment is already captured: keep going and report the line.
                logger.error(
                    "Purchase record failed after payment: buyer %s, %s %s for %s, transaction %s: %s",
                    line.buyer_id, line.item_type.value, line.item_id, line.beneficiary_id,
                    transaction_id, e,
                )
                failed.append(FailedLine(line=line, error=str(e)))

        return purchases, failed

    def _settle(
        self,
        buyer: BuyerContext,
        lines: Tuple[CartLine, ...],
        transaction_id: Optional[str],
        total_charged: Decimal,
    ) -> CheckoutResult:
        purchases, failed = self._record_purchases(lines, transaction_id)

        failed_keys = {failed_line.line.key for failed_line in failed}
        settled_keys = [line.key for line in lines if line.key not in failed_keys]

        for beneficiary_id in {line.beneficiary_id for line in lines}:
            self._entitlements.invalidate(beneficiary_id)

        if settled_keys:
            self._cart_store.remove_lines(buyer, settled_keys)

        with self._lock:
            if failed:
                self._unsettled[buyer.buyer_id] = _UnsettledPayment(
                    transaction_id=transaction_id,
                    total_charged=total_charged,
                    lines=tuple(failed_line.line for failed_line in failed),
                )
            else:
                self._unsettled.pop(buyer.buyer_id, None)

        if failed:
            return CheckoutResult(
                success=False,
                purchases=purchases,
                failed_lines=failed,
                total_charged=total_charged,
                transaction_id=transaction_id,
                failure=CheckoutFailure.LEDGER_WRITE_FAILED,
                message=(
                    f"Payment {transaction_id} was taken but {len(failed)} of {len(lines)} "
                    "purchases could not be recorded. They remain in your cart; retry or contact support."
                ),
            )

        logger.info(
            "Checkout complete for buyer %s: %d purchases, total %s, transaction %s",
            buyer.buyer_id, len(purchases), total_charged, transaction_id,
        )
        return CheckoutResult(
            success=True,
            purchases=purchases,
            total_charged=total_charged,
            transaction_id=transaction_id,
            message="Payment successful! Your tutorials are now available.",
        )


__all__ = [
    "CheckoutFailure",
    "CheckoutOrchestrator",
    "CheckoutResult",
    "FailedLine",
]

"""
Checkout API Endpoints.

Endpoints for paying for the cart and for re-recording purchases after a
partial ledger failure.
"""

from fastapi import APIRouter, Depends, Response, status

from api.dependencies import Services, get_buyer, get_services
from api.models import (
    CartLineResponse,
    CheckoutRequest,
    CheckoutResponse,
    FailedLineResponse,
    PurchaseResponse,
)
from domain.payment import PaymentDetails
from services.buyer_context import BuyerContext
from services.checkout_service import CheckoutFailure, CheckoutResult

router = APIRouter()

_FAILURE_STATUS = {
    CheckoutFailure.PAYMENT_DECLINED: status.HTTP_402_PAYMENT_REQUIRED,
    CheckoutFailure.LEDGER_WRITE_FAILED: status.HTTP_502_BAD_GATEWAY,
}


def _checkout_response(result: CheckoutResult, response: Response) -> CheckoutResponse:
    if result.failure is not None:
        response.status_code = _FAILURE_STATUS[result.failure]

    return CheckoutResponse(
        success=result.success,
        failure=result.failure.value if result.failure else None,
        payment_captured=result.payment_captured,
        transaction_id=result.transaction_id,
        total_charged=result.total_charged,
        purchases=[PurchaseResponse.from_record(p) for p in result.purchases],
        failed_lines=[
            FailedLineResponse(line=CartLineResponse.from_line(f.line), error=f.error)
            for f in result.failed_lines
        ],
        message=result.message,
    )


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    summary="Checkout",
    description="Pay for every line in the cart and record one purchase per line."
)
def checkout(
    request: CheckoutRequest,
    response: Response,
    buyer: BuyerContext = Depends(get_buyer),
    services: Services = Depends(get_services),
):
    """
    Execute a checkout.

    **Process:**
    1. Validates card fields (422 with per-field errors)
    2. Authorizes the cart total once
    3. Records one COMPLETED purchase per cart line
    4. Removes the recorded lines from the cart

    **Outcomes:**
    - 200: every purchase recorded, cart emptied
    - 402: payment declined, nothing recorded, cart unchanged
    - 502: payment taken but some purchases could not be recorded; the failed
      lines stay in the cart and are listed in `failed_lines`. Call
      `POST /checkout/retry` to record them without paying again.
    """
    details = PaymentDetails(
        card_name=request.card_name,
        card_number=request.card_number,
        expiry_date=request.expiry_date,
        cvv=request.cvv,
    )
    result = services.checkout.checkout(buyer, details)
    return _checkout_response(result, response)


@router.post(
    "/checkout/retry",
    response_model=CheckoutResponse,
    summary="Retry Failed Purchases",
    description="Record purchases left over from a partially failed checkout without charging again."
)
def retry_checkout(
    response: Response,
    buyer: BuyerContext = Depends(get_buyer),
    services: Services = Depends(get_services),
):
    result = services.checkout.retry_failed_lines(buyer)
    return _checkout_response(result, response)

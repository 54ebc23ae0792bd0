"""
Exception handlers.

Maps domain errors onto HTTP status codes with an ErrorResponse body.
"""

import logging
from typing import Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from api.models import ErrorResponse
from domain.errors import (
    AlreadyOwnedError,
    BeneficiaryRequiredError,
    CatalogItemNotFoundError,
    CheckoutInProgressError,
    EmptyCartError,
    InvalidStatusTransitionError,
    LedgerUnavailableError,
    LedgerWriteError,
    MarketplaceError,
    NotPermittedError,
    NothingToRetryError,
    PaymentGatewayError,
    PurchaseNotFoundError,
    UnauthenticatedError,
    UnsettledPaymentError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_ERROR: Dict[Type[MarketplaceError], int] = {
    UnauthenticatedError: status.HTTP_401_UNAUTHORIZED,
    NotPermittedError: status.HTTP_403_FORBIDDEN,
    BeneficiaryRequiredError: status.HTTP_400_BAD_REQUEST,
    ValidationError: 422,
    EmptyCartError: status.HTTP_409_CONFLICT,
    AlreadyOwnedError: status.HTTP_409_CONFLICT,
    CheckoutInProgressError: status.HTTP_409_CONFLICT,
    UnsettledPaymentError: status.HTTP_409_CONFLICT,
    NothingToRetryError: status.HTTP_409_CONFLICT,
    InvalidStatusTransitionError: status.HTTP_409_CONFLICT,
    PaymentGatewayError: status.HTTP_503_SERVICE_UNAVAILABLE,
    LedgerUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    LedgerWriteError: status.HTTP_502_BAD_GATEWAY,
    PurchaseNotFoundError: status.HTTP_404_NOT_FOUND,
    CatalogItemNotFoundError: status.HTTP_404_NOT_FOUND,
}


def status_for(exc: MarketplaceError) -> int:
    """Most specific mapped status for the error; 400 when nothing matches."""

    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return status.HTTP_400_BAD_REQUEST


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        else:
            logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc)

        body = ErrorResponse(
            error=type(exc).__name__,
            detail=str(exc),
            status_code=status_code,
            field_errors=dict(exc.field_errors) if isinstance(exc, ValidationError) else None,
        )
        return JSONResponse(status_code=status_code, content=body.model_dump())

"""Domain exception to HTTP error translation"""

import logging

from fastapi import HTTPException

from rentflow.domain.exceptions import (
    AmountNotAllowedError,
    ApplicationNotFoundError,
    DomainException,
    HouseholdError,
    InvalidBucketError,
    InvalidPaymentStatusError,
    InvalidPolicyError,
    InvalidTransitionError,
    LedgerCorruptionError,
    PaymentNotFoundError,
    PaymentProcessorError,
)


def to_http_exception(e: Exception, request_id: str) -> HTTPException:
    """Map an exception raised by the orchestrator onto the API's error contract"""
    if isinstance(e, AmountNotAllowedError):
        logging.info(f"Amount not allowed: {e}", extra={"request_id": request_id})
        return HTTPException(
            status_code=422,
            detail={"message": "Amount not allowed", "allowed_exact_amounts": e.allowed},
        )

    if isinstance(e, InvalidTransitionError):
        # Guard details stay in the log
        logging.warning(f"Invalid transition: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=409, detail="Transition not allowed in current state")

    if isinstance(e, (ApplicationNotFoundError, PaymentNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))

    if isinstance(e, (InvalidBucketError, InvalidPolicyError, HouseholdError)):
        return HTTPException(status_code=400, detail=str(e))

    if isinstance(e, InvalidPaymentStatusError):
        logging.warning(f"Payment status conflict: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=409, detail=str(e))

    if isinstance(e, PaymentProcessorError):
        logging.error(f"Payment processor error: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=503, detail="Payment processor unavailable")

    if isinstance(e, LedgerCorruptionError):
        # Already logged critical and counted where it was detected
        return HTTPException(status_code=500, detail="Internal server error")

    if isinstance(e, DomainException):
        logging.error(f"Unhandled domain error: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=400, detail=str(e))

    logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")

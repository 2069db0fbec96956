"""Domain-specific exceptions"""

from typing import Any, List


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class OverpaymentError(DomainException):
    """Credit would push posted + pending above the charge amount"""

    def __init__(self, charge_key: str, amount_cents: int, attempted_cents: int):
        self.charge_key = charge_key
        self.amount_cents = amount_cents
        self.attempted_cents = attempted_cents
        super().__init__(
            f"Charge {charge_key} would be credited {attempted_cents} cents of {amount_cents}"
        )


class AmountNotAllowedError(DomainException):
    """Requested amount is not one of the policy-exact allowed values"""

    def __init__(self, bucket: str, requested_cents: int, allowed: List[int]):
        self.bucket = bucket
        self.requested_cents = requested_cents
        self.allowed = list(allowed)
        super().__init__(
            f"Amount {requested_cents} not allowed for {bucket}; allowed: {self.allowed}"
        )


class InvalidTransitionError(DomainException):
    """Workflow edge does not exist from the current state or its guard failed"""

    def __init__(self, current_state: str, event: str, reason: str = ""):
        self.current_state = current_state
        self.event = event
        self.reason = reason
        message = f"Cannot apply '{event}' in state '{current_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class DuplicatePaymentError(DomainException):
    """Payment was already applied; carries the result recorded the first time"""

    def __init__(self, payment_id: str, result: Any):
        self.payment_id = payment_id
        self.result = result
        super().__init__(f"Payment {payment_id} already processed")


class LedgerCorruptionError(DomainException):
    """Ledger invariant found broken outside a controlled credit (fatal)"""

    pass


class InvalidBucketError(DomainException):
    """Bucket or charge code outside the closed set"""

    pass


class InvalidPolicyError(DomainException):
    """Stage policy or lease terms are inconsistent"""

    pass


class ApplicationNotFoundError(DomainException):
    """No application with the given id"""

    pass


class PaymentNotFoundError(DomainException):
    """No payment with the given id on the application"""

    pass


class InvalidPaymentStatusError(DomainException):
    """Payment status change outside its lifecycle"""

    pass


class HouseholdError(DomainException):
    """Household membership operation is not allowed"""

    pass


class PaymentProcessorError(DomainException):
    """Payment processor returned an error or is unavailable"""

    pass

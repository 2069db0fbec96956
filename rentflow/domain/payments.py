"""Payment status lifecycle"""

from typing import Dict, FrozenSet

from rentflow.domain.exceptions import InvalidPaymentStatusError
from rentflow.domain.models import Payment, PaymentStatus

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.CREATED: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, PaymentStatus.CANCELED}),
    PaymentStatus.SUCCEEDED: frozenset({PaymentStatus.RETURNED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELED: frozenset(),
    PaymentStatus.RETURNED: frozenset(),
}

OPEN_STATUSES: FrozenSet[PaymentStatus] = frozenset({PaymentStatus.CREATED, PaymentStatus.PROCESSING})


def advance_payment(payment: Payment, status: PaymentStatus) -> Payment:
    """
    Move a payment to ``status``.

    Raises:
        InvalidPaymentStatusError: If the change is not in PAYMENT_TRANSITIONS
    """
    status = PaymentStatus(status)
    if status not in PAYMENT_TRANSITIONS[payment.status]:
        raise InvalidPaymentStatusError(
            f"Payment {payment.payment_id} cannot move from {payment.status.value} to {status.value}"
        )
    payment.status = status
    return payment


def settle_path(payment: Payment, outcome: PaymentStatus) -> Payment:
    """Advance a payment to ``outcome``, stepping through processing if still created"""
    outcome = PaymentStatus(outcome)
    if payment.status == PaymentStatus.CREATED and outcome in PAYMENT_TRANSITIONS[PaymentStatus.PROCESSING]:
        advance_payment(payment, PaymentStatus.PROCESSING)
    return advance_payment(payment, outcome)

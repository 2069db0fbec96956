"""Charge ledger - the authoritative set of charges for one application"""

import copy
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from rentflow.domain.exceptions import InvalidPolicyError, LedgerCorruptionError, OverpaymentError
from rentflow.domain.models import Bucket, Charge, ChargeCode, DueWindows, NextRent, StagePolicy
from rentflow.utils.date_utils import day_before, month_starts, period_of

MOVE_IN_CODES = frozenset({ChargeCode.LAST_MONTH, ChargeCode.FIRST_MONTH, ChargeCode.KEY_FEE})


class ChargeLedger:
    """
    Charges for one application, keyed by ``charge_key``.

    Charges are never removed, only credited. Not safe for concurrent
    mutation; callers serialize writes per application.
    """

    def __init__(self, charges: Iterable[Charge] = ()):
        self._charges: Dict[str, Charge] = {}
        for charge in charges:
            self.add_charge(charge)

    def add_charge(self, charge: Charge) -> None:
        if charge.charge_key in self._charges:
            raise InvalidPolicyError(f"Duplicate charge key: {charge.charge_key}")
        self._charges[charge.charge_key] = charge

    @property
    def charges(self) -> List[Charge]:
        return list(self._charges.values())

    def __len__(self) -> int:
        return len(self._charges)

    def get(self, charge_key: str) -> Charge:
        try:
            return self._charges[charge_key]
        except KeyError:
            raise KeyError(f"Unknown charge: {charge_key}") from None

    def select(self, bucket: Optional[Bucket] = None, code: Optional[ChargeCode] = None) -> List[Charge]:
        bucket = Bucket.parse(bucket) if bucket is not None else None
        code = ChargeCode.parse(code) if code is not None else None
        return [
            c
            for c in self._charges.values()
            if (bucket is None or c.bucket == bucket) and (code is None or c.code == code)
        ]

    def remaining(self, bucket: Optional[Bucket] = None, code: Optional[ChargeCode] = None) -> int:
        """Sum of remaining cents over charges matching the optional filters"""
        return sum(c.remaining_cents for c in self.select(bucket, code))

    def credited(self, bucket: Optional[Bucket] = None) -> int:
        """Posted plus pending cents over charges in ``bucket``"""
        return sum(c.credited_cents for c in self.select(bucket))

    def posted(self, bucket: Optional[Bucket] = None) -> int:
        """Settled cents over charges in ``bucket``"""
        return sum(c.posted_cents for c in self.select(bucket))

    def apply_credit(self, charge_key: str, posted_delta_cents: int, pending_delta_cents: int) -> Charge:
        """
        Adjust posted/pending cents on one charge.

        Negative deltas release earlier credits (failed or returned payments).

        Raises:
            OverpaymentError: If posted + pending would exceed the charge amount
            ValueError: If posted or pending would drop below zero
        """
        charge = self.get(charge_key)
        posted = charge.posted_cents + posted_delta_cents
        pending = charge.pending_cents + pending_delta_cents

        if posted < 0 or pending < 0:
            raise ValueError(f"Charge {charge_key} credit would become negative")
        if posted + pending > charge.amount_cents:
            raise OverpaymentError(charge_key, charge.amount_cents, posted + pending)

        charge.posted_cents = posted
        charge.pending_cents = pending
        return charge

    def due_now(self, as_of: date) -> int:
        """Remaining cents on charges already due (or with no due date)"""
        return sum(
            c.remaining_cents
            for c in self._charges.values()
            if c.due_date is None or c.due_date <= as_of
        )

    def due_windows(self, as_of: date, move_in: Optional[date], soon_days: int = 30) -> DueWindows:
        """
        Partition remaining cents by when they fall due. Each charge lands in
        exactly one window: due now, due before move-in, next ``soon_days``
        days, or later.
        """
        windows = DueWindows()
        soon = as_of + timedelta(days=soon_days)

        for c in self._charges.values():
            remaining = c.remaining_cents
            if remaining <= 0:
                continue
            if c.due_date is None or c.due_date <= as_of:
                windows.due_now_cents += remaining
            elif c.code in MOVE_IN_CODES and move_in is not None and c.due_date <= move_in:
                windows.due_before_move_in_cents += remaining
            elif c.due_date <= soon:
                windows.due_next_30_cents += remaining
            else:
                windows.later_cents += remaining

        return windows

    def next_rent(self) -> Optional[NextRent]:
        """Earliest rent charge that still has a remainder"""
        rent = sorted(self.select(Bucket.RENT), key=lambda c: (c.due_date or date.max, c.charge_key))
        for c in rent:
            if c.remaining_cents > 0:
                return NextRent(
                    period=c.period,
                    due_date=c.due_date,
                    amount_cents=c.amount_cents,
                    remaining_cents=c.remaining_cents,
                )
        return None

    def verify(self) -> None:
        """
        Check the ledger invariant on every charge.

        Raises:
            LedgerCorruptionError: If any charge has negative credits or is
                credited beyond its amount
        """
        for c in self._charges.values():
            if c.posted_cents < 0 or c.pending_cents < 0 or c.posted_cents + c.pending_cents > c.amount_cents:
                raise LedgerCorruptionError(
                    f"Charge {c.charge_key}: posted={c.posted_cents} pending={c.pending_cents} "
                    f"amount={c.amount_cents}"
                )

    def snapshot(self) -> "ChargeLedger":
        return ChargeLedger(copy.deepcopy(c) for c in self._charges.values())


def build_charges(application_id: str, policy: StagePolicy) -> List[Charge]:
    """
    Derive the ledger rows from lease terms.

    Upfront items and the deposit are due the day before move-in. Rent is
    one charge per lease month, due on the 1st; the first/last lease month
    is skipped when it is collected upfront as first_month/last_month.
    """
    move_in = policy.monthly.move_in_date
    upfront_due = day_before(move_in)
    charges: List[Charge] = []

    def push(bucket: Bucket, code: ChargeCode, amount: int, due: date, period: Optional[str] = None) -> None:
        if amount <= 0:
            return
        suffix = f"{code.value}:{period}" if period else code.value
        charges.append(
            Charge(
                charge_key=f"{application_id}:{bucket.value}:{suffix}",
                bucket=bucket,
                code=code,
                amount_cents=amount,
                due_date=due,
                period=period,
            )
        )

    push(Bucket.UPFRONT, ChargeCode.LAST_MONTH, policy.move_in.last_month_cents, upfront_due)
    push(Bucket.UPFRONT, ChargeCode.FIRST_MONTH, policy.move_in.first_month_cents, upfront_due)
    push(Bucket.UPFRONT, ChargeCode.KEY_FEE, policy.move_in.key_fee_cents, upfront_due)
    push(Bucket.DEPOSIT, ChargeCode.SECURITY_DEPOSIT, policy.move_in.security_deposit_cents, upfront_due)

    skip_first = policy.move_in.first_month_cents > 0
    skip_last = policy.move_in.last_month_cents > 0
    months = month_starts(move_in, policy.monthly.term_months)

    for i, month_start in enumerate(months):
        if i == 0 and skip_first:
            continue
        if i == len(months) - 1 and skip_last:
            continue
        push(Bucket.RENT, ChargeCode.RENT, policy.monthly.monthly_rent_cents, month_start, period_of(month_start))

    return charges

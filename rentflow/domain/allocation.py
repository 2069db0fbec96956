"""Allocation engine - distributes a payment across outstanding charges"""

from datetime import date
from typing import List

from rentflow.domain.exceptions import InvalidBucketError
from rentflow.domain.ledger import ChargeLedger
from rentflow.domain.models import AllocationPiece, AllocationResult, Bucket, Charge, ChargeCode

# Strict order for operating funds: last month, then first month, then key fee
UPFRONT_ORDER = (ChargeCode.LAST_MONTH, ChargeCode.FIRST_MONTH, ChargeCode.KEY_FEE)

ALLOCATABLE_BUCKETS = frozenset({Bucket.UPFRONT, Bucket.DEPOSIT})


def _ordered_targets(ledger: ChargeLedger, bucket: Bucket) -> List[Charge]:
    if bucket == Bucket.UPFRONT:
        return [c for code in UPFRONT_ORDER for c in ledger.select(Bucket.UPFRONT, code)]
    return sorted(ledger.select(Bucket.DEPOSIT), key=lambda c: (c.priority, c.charge_key))


def _distribute(targets: List[Charge], amount_cents: int) -> AllocationResult:
    remaining = amount_cents
    pieces = []

    for charge in targets:
        if remaining <= 0:
            break
        take = min(charge.remaining_cents, remaining)
        if take <= 0:
            continue
        pieces.append(
            AllocationPiece(
                charge_key=charge.charge_key,
                label=charge.label,
                amount_cents=take,
                fully_covered=take == charge.remaining_cents,
            )
        )
        remaining -= take

    return AllocationResult(pieces=pieces, leftover_cents=remaining)


def allocate(ledger: ChargeLedger, amount_cents: int, bucket: Bucket) -> AllocationResult:
    """
    Decide how a successful payment is credited across the ledger.

    Rules:
    - deposit: deposit charges in ascending code priority
    - upfront: last_month -> first_month -> key_fee, each up to its remainder
    - anything left over is reported as ``leftover_cents``, never applied

    The ledger is not mutated. ``sum(pieces) + leftover == amount_cents``.

    Example:
        remaining last=50, first=100, key=25; pay 120 upfront
        -> [last 50 (covered), first 70], leftover 0
    """
    bucket = Bucket.parse(bucket)
    if bucket not in ALLOCATABLE_BUCKETS:
        raise InvalidBucketError(f"Payments cannot target bucket {bucket.value}")
    if amount_cents < 0:
        raise ValueError("Payment amount must be non-negative")

    return _distribute(_ordered_targets(ledger, bucket), amount_cents)


def allocate_rollover(ledger: ChargeLedger, leftover_cents: int) -> AllocationResult:
    """Spread upfront leftover onto rent charges in due-date order"""
    if leftover_cents < 0:
        raise ValueError("Leftover must be non-negative")
    rent = sorted(ledger.select(Bucket.RENT), key=lambda c: (c.due_date or date.max, c.charge_key))
    return _distribute(rent, leftover_cents)

"""Unit tests for the charge ledger and charge derivation"""

import pytest
from datetime import date
from rentflow.domain.exceptions import (
    InvalidBucketError,
    InvalidPolicyError,
    LedgerCorruptionError,
    OverpaymentError,
)
from rentflow.domain.ledger import ChargeLedger, build_charges
from rentflow.domain.models import Bucket, Charge, ChargeCode, MonthlyTerms, MoveInTerms, SigningTerms, StagePolicy


def _ledger() -> ChargeLedger:
    return ChargeLedger(
        [
            Charge("a:upfront:last_month", Bucket.UPFRONT, ChargeCode.LAST_MONTH, 50),
            Charge("a:upfront:first_month", Bucket.UPFRONT, ChargeCode.FIRST_MONTH, 100),
            Charge("a:upfront:key_fee", Bucket.UPFRONT, ChargeCode.KEY_FEE, 25),
            Charge("a:deposit:security_deposit", Bucket.DEPOSIT, ChargeCode.SECURITY_DEPOSIT, 300),
        ]
    )


def test_remaining_filters_by_bucket_and_code():
    ledger = _ledger()

    assert ledger.remaining() == 475
    assert ledger.remaining(Bucket.UPFRONT) == 175
    assert ledger.remaining(Bucket.DEPOSIT) == 300
    assert ledger.remaining(Bucket.UPFRONT, ChargeCode.KEY_FEE) == 25
    assert ledger.remaining(Bucket.RENT) == 0


def test_apply_credit_splits_posted_and_pending():
    ledger = _ledger()

    charge = ledger.apply_credit("a:upfront:first_month", 30, 20)

    assert charge.posted_cents == 30
    assert charge.pending_cents == 20
    assert charge.remaining_cents == 50
    assert ledger.credited(Bucket.UPFRONT) == 50
    assert ledger.posted(Bucket.UPFRONT) == 30


def test_apply_credit_up_to_exact_amount():
    ledger = _ledger()

    ledger.apply_credit("a:upfront:last_month", 40, 10)

    assert ledger.get("a:upfront:last_month").remaining_cents == 0


def test_apply_credit_rejects_overpayment():
    """posted + pending may never exceed the charge amount"""
    ledger = _ledger()
    ledger.apply_credit("a:upfront:key_fee", 20, 0)

    with pytest.raises(OverpaymentError) as exc_info:
        ledger.apply_credit("a:upfront:key_fee", 0, 6)

    assert exc_info.value.attempted_cents == 26
    # Rejected credit leaves the charge untouched
    assert ledger.get("a:upfront:key_fee").posted_cents == 20
    assert ledger.get("a:upfront:key_fee").pending_cents == 0


def test_apply_credit_releases_with_negative_delta():
    ledger = _ledger()
    ledger.apply_credit("a:upfront:first_month", 0, 60)

    ledger.apply_credit("a:upfront:first_month", 60, -60)

    charge = ledger.get("a:upfront:first_month")
    assert (charge.posted_cents, charge.pending_cents) == (60, 0)

    with pytest.raises(ValueError):
        ledger.apply_credit("a:upfront:first_month", -61, 0)


def test_unknown_charge_key():
    with pytest.raises(KeyError):
        _ledger().apply_credit("a:upfront:nope", 1, 0)


def test_duplicate_charge_key_rejected():
    ledger = _ledger()
    with pytest.raises(InvalidPolicyError):
        ledger.add_charge(Charge("a:upfront:key_fee", Bucket.UPFRONT, ChargeCode.KEY_FEE, 10))


def test_charge_rejects_code_outside_bucket():
    with pytest.raises(InvalidBucketError):
        Charge("a:deposit:key_fee", Bucket.DEPOSIT, ChargeCode.KEY_FEE, 10)

    with pytest.raises(InvalidBucketError):
        Charge("a:escrow:x", "escrow", ChargeCode.SECURITY_DEPOSIT, 10)


def test_fee_charges_accepted_when_added_directly():
    ledger = _ledger()
    ledger.add_charge(Charge("a:fee:pet", Bucket.FEE, ChargeCode.FEE, 7500, label="Pet fee"))

    assert ledger.remaining(Bucket.FEE) == 7500


def test_verify_detects_corrupted_rows():
    ledger = _ledger()
    # Simulates a bad load; apply_credit would never allow this
    ledger.get("a:upfront:key_fee").posted_cents = 30

    with pytest.raises(LedgerCorruptionError):
        ledger.verify()


def test_snapshot_is_detached():
    ledger = _ledger()
    copy = ledger.snapshot()

    ledger.apply_credit("a:upfront:key_fee", 25, 0)

    assert copy.get("a:upfront:key_fee").posted_cents == 0


def test_build_charges_from_policy(policy: StagePolicy):
    charges = {c.charge_key: c for c in build_charges("app1", policy)}

    upfront_due = date(2025, 3, 14)
    assert charges["app1:upfront:last_month"].amount_cents == 200000
    assert charges["app1:upfront:first_month"].due_date == upfront_due
    assert charges["app1:upfront:key_fee"].label == "Key fee"
    assert charges["app1:deposit:security_deposit"].due_date == upfront_due

    rent = sorted((c for c in charges.values() if c.bucket == Bucket.RENT), key=lambda c: c.due_date)
    # 12 months, first and last prepaid upfront
    assert len(rent) == 10
    assert rent[0].period == "2025-04"
    assert rent[0].due_date == date(2025, 4, 1)
    assert rent[0].label == "Rent 2025-04"
    assert rent[-1].period == "2026-01"
    assert "app1:rent:rent:2025-04" in charges


def test_build_charges_skips_zero_amounts():
    policy = StagePolicy(
        signing=SigningTerms(),
        move_in=MoveInTerms(first_month_cents=150000, security_deposit_cents=0),
        monthly=MonthlyTerms(monthly_rent_cents=150000, term_months=3, move_in_date=date(2025, 1, 1)),
    )

    keys = [c.charge_key for c in build_charges("b", policy)]

    assert keys == ["b:upfront:first_month", "b:rent:rent:2025-02", "b:rent:rent:2025-03"]


def test_due_windows_partition(policy: StagePolicy):
    ledger = ChargeLedger(build_charges("app1", policy))
    as_of = date(2025, 3, 1)

    windows = ledger.due_windows(as_of, policy.monthly.move_in_date)

    assert windows.due_now_cents == 0
    # last + first + key fee; the deposit is not an upfront item
    assert windows.due_before_move_in_cents == 405000
    # deposit (Mar 14) falls inside 30 days; April rent (Apr 1) is one day past
    assert windows.due_next_30_cents == 200000
    assert windows.later_cents == 10 * 200000
    total = (
        windows.due_now_cents + windows.due_before_move_in_cents + windows.due_next_30_cents + windows.later_cents
    )
    assert total == ledger.remaining()


def test_next_rent_skips_paid_months(policy: StagePolicy):
    ledger = ChargeLedger(build_charges("app1", policy))
    ledger.apply_credit("app1:rent:rent:2025-04", 200000, 0)
    ledger.apply_credit("app1:rent:rent:2025-05", 50000, 0)

    next_rent = ledger.next_rent()

    assert next_rent.period == "2025-05"
    assert next_rent.remaining_cents == 150000

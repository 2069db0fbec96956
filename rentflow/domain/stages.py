"""Stage policy evaluator - what remains before each payment gate opens"""

import enum

from rentflow.domain.ledger import ChargeLedger
from rentflow.domain.models import Bucket, StagePolicy, StageProgress


class Stage(int, enum.Enum):
    SIGNING = 1
    MOVE_IN = 2
    MONTHLY = 3


def _progress(operating_total: int, deposit_total: int, operating_paid: int, deposit_paid: int) -> StageProgress:
    operating_remaining = max(0, operating_total - operating_paid)
    deposit_remaining = max(0, deposit_total - deposit_paid)
    remaining_total = operating_remaining + deposit_remaining
    return StageProgress(
        operating_total_cents=operating_total,
        deposit_total_cents=deposit_total,
        operating_paid_cents=operating_paid,
        deposit_paid_cents=deposit_paid,
        operating_remaining_cents=operating_remaining,
        deposit_remaining_cents=deposit_remaining,
        remaining_total_cents=remaining_total,
        met=remaining_total == 0,
    )


class StageEvaluator:
    """
    Gate figures for one ledger under one policy.

    Credited money (posted + pending) fills stage 1 up to its threshold;
    only the excess counts toward stage 2, so nothing is counted twice.
    With ``posted_only`` pending credits are ignored; state gates use that
    mode so in-flight money never opens them.
    """

    def __init__(self, ledger: ChargeLedger, policy: StagePolicy, posted_only: bool = False):
        self.ledger = ledger
        self.policy = policy
        self.posted_only = posted_only

    def _counted(self, bucket: Bucket) -> int:
        if self.posted_only:
            return self.ledger.posted(bucket)
        return self.ledger.credited(bucket)

    @property
    def operating_credited_cents(self) -> int:
        return self._counted(Bucket.UPFRONT)

    @property
    def deposit_credited_cents(self) -> int:
        return self._counted(Bucket.DEPOSIT)

    def stage1_totals(self) -> tuple[int, int]:
        return (
            self.policy.signing.upfront_threshold_cents,
            self.policy.signing.deposit_threshold_cents,
        )

    def stage2_totals(self) -> tuple[int, int]:
        # Clamped: a signing threshold at or above the plan makes stage 2 a no-op
        return (
            max(0, self.policy.move_in.total_upfront_cents - self.policy.signing.upfront_threshold_cents),
            max(0, self.policy.move_in.security_deposit_cents - self.policy.signing.deposit_threshold_cents),
        )

    def evaluate_stage1(self) -> StageProgress:
        operating_total, deposit_total = self.stage1_totals()
        return _progress(
            operating_total,
            deposit_total,
            min(operating_total, self.operating_credited_cents),
            min(deposit_total, self.deposit_credited_cents),
        )

    def evaluate_stage2(self) -> StageProgress:
        s1_operating, s1_deposit = self.stage1_totals()
        operating_total, deposit_total = self.stage2_totals()
        operating_excess = max(0, self.operating_credited_cents - s1_operating)
        deposit_excess = max(0, self.deposit_credited_cents - s1_deposit)
        return _progress(
            operating_total,
            deposit_total,
            min(operating_total, operating_excess),
            min(deposit_total, deposit_excess),
        )

    def current_stage(self) -> Stage:
        if not self.evaluate_stage1().met:
            return Stage.SIGNING
        if not self.evaluate_stage2().met:
            return Stage.MOVE_IN
        return Stage.MONTHLY

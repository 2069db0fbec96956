"""Domain models - pure Python dataclasses representing business entities"""

import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, List, Optional

from rentflow.domain.exceptions import InvalidBucketError, InvalidPolicyError
from rentflow.domain.household import Household
from rentflow.domain.states import ApplicationState


class Bucket(str, enum.Enum):
    """Destination category for money"""

    UPFRONT = "upfront"  # operating funds
    DEPOSIT = "deposit"  # escrow
    RENT = "rent"
    FEE = "fee"

    @classmethod
    def parse(cls, value: "str | Bucket") -> "Bucket":
        try:
            return cls(value)
        except ValueError:
            raise InvalidBucketError(f"Unknown bucket: {value!r}") from None


class ChargeCode(str, enum.Enum):
    """Semantic subtype of a charge; drives allocation priority"""

    LAST_MONTH = "last_month"
    FIRST_MONTH = "first_month"
    KEY_FEE = "key_fee"
    SECURITY_DEPOSIT = "security_deposit"
    RENT = "rent"
    FEE = "fee"

    @classmethod
    def parse(cls, value: "str | ChargeCode") -> "ChargeCode":
        try:
            return cls(value)
        except ValueError:
            raise InvalidBucketError(f"Unknown charge code: {value!r}") from None


# Ascending priority; the upfront order is a business rule (who gets paid first)
CODE_PRIORITY: Dict[ChargeCode, int] = {
    ChargeCode.LAST_MONTH: 0,
    ChargeCode.FIRST_MONTH: 1,
    ChargeCode.KEY_FEE: 2,
    ChargeCode.SECURITY_DEPOSIT: 3,
    ChargeCode.RENT: 4,
    ChargeCode.FEE: 5,
}

BUCKET_CODES: Dict[Bucket, FrozenSet[ChargeCode]] = {
    Bucket.UPFRONT: frozenset({ChargeCode.LAST_MONTH, ChargeCode.FIRST_MONTH, ChargeCode.KEY_FEE}),
    Bucket.DEPOSIT: frozenset({ChargeCode.SECURITY_DEPOSIT}),
    Bucket.RENT: frozenset({ChargeCode.RENT}),
    Bucket.FEE: frozenset({ChargeCode.FEE}),
}

CHARGE_LABELS: Dict[ChargeCode, str] = {
    ChargeCode.LAST_MONTH: "Last month",
    ChargeCode.FIRST_MONTH: "First month",
    ChargeCode.KEY_FEE: "Key fee",
    ChargeCode.SECURITY_DEPOSIT: "Security deposit",
}

MAX_TERM_MONTHS = 120


class PaymentStatus(str, enum.Enum):
    CREATED = "created"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    RETURNED = "returned"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Charge:
    """An obligation to pay a specific amount for a specific purpose"""

    charge_key: str
    bucket: Bucket
    code: ChargeCode
    amount_cents: int
    label: str = ""
    due_date: Optional[date] = None
    period: Optional[str] = None  # "YYYY-MM" for rent charges
    posted_cents: int = 0
    pending_cents: int = 0

    def __post_init__(self) -> None:
        self.bucket = Bucket.parse(self.bucket)
        self.code = ChargeCode.parse(self.code)
        if self.code not in BUCKET_CODES[self.bucket]:
            raise InvalidBucketError(f"Code {self.code.value} does not belong to bucket {self.bucket.value}")
        if self.amount_cents < 0:
            raise InvalidPolicyError(f"Charge {self.charge_key} has negative amount")
        if not self.label:
            if self.code == ChargeCode.RENT:
                self.label = f"Rent {self.period}"
            else:
                self.label = CHARGE_LABELS.get(self.code, self.code.value.replace("_", " ").capitalize())

    @property
    def credited_cents(self) -> int:
        return self.posted_cents + self.pending_cents

    @property
    def remaining_cents(self) -> int:
        return max(0, self.amount_cents - self.posted_cents - self.pending_cents)

    @property
    def priority(self) -> int:
        return CODE_PRIORITY[self.code]


@dataclass
class AllocationPiece:
    """Credit applied to one charge by one payment"""

    charge_key: str
    label: str
    amount_cents: int
    fully_covered: bool


@dataclass
class AllocationResult:
    """Output of the allocation engine"""

    pieces: List[AllocationPiece] = field(default_factory=list)
    leftover_cents: int = 0

    @property
    def applied_cents(self) -> int:
        return sum(p.amount_cents for p in self.pieces)


@dataclass
class Payment:
    """A single attempt to move money from a payer to the system"""

    payment_id: str
    kind: Bucket
    amount_cents: int
    status: PaymentStatus = PaymentStatus.CREATED
    created_at: datetime = field(default_factory=utcnow)
    # Credits currently held on the ledger by this payment
    pieces: List[AllocationPiece] = field(default_factory=list)
    unapplied_cents: int = 0

    def __post_init__(self) -> None:
        self.kind = Bucket.parse(self.kind)
        self.status = PaymentStatus(self.status)
        if self.amount_cents <= 0:
            raise InvalidPolicyError(f"Payment {self.payment_id} must have a positive amount")


@dataclass
class SigningTerms:
    """Minimum cents per bucket before the pre-signing gate opens"""

    upfront_threshold_cents: int = 0
    deposit_threshold_cents: int = 0


@dataclass
class MoveInTerms:
    """Upfront items due before move-in"""

    first_month_cents: int = 0
    last_month_cents: int = 0
    key_fee_cents: int = 0
    security_deposit_cents: int = 0
    total_upfront_cents: Optional[int] = None
    require_first_before_move_in: bool = True
    require_last_before_move_in: bool = False

    def __post_init__(self) -> None:
        if self.total_upfront_cents is None:
            self.total_upfront_cents = self.first_month_cents + self.last_month_cents + self.key_fee_cents


@dataclass
class MonthlyTerms:
    monthly_rent_cents: int
    term_months: int
    move_in_date: date


@dataclass
class StagePolicy:
    """Per-lease payment gate configuration"""

    signing: SigningTerms
    move_in: MoveInTerms
    monthly: MonthlyTerms

    def validate(self) -> None:
        """
        Raises:
            InvalidPolicyError: On negative amounts, missing rent terms, or a
                signing threshold above the total plan
        """
        amounts = {
            "signing.upfront_threshold_cents": self.signing.upfront_threshold_cents,
            "signing.deposit_threshold_cents": self.signing.deposit_threshold_cents,
            "move_in.first_month_cents": self.move_in.first_month_cents,
            "move_in.last_month_cents": self.move_in.last_month_cents,
            "move_in.key_fee_cents": self.move_in.key_fee_cents,
            "move_in.security_deposit_cents": self.move_in.security_deposit_cents,
            "move_in.total_upfront_cents": self.move_in.total_upfront_cents,
        }
        for name, value in amounts.items():
            if value is None or value < 0:
                raise InvalidPolicyError(f"{name} must be a non-negative integer")

        if self.signing.upfront_threshold_cents > self.move_in.total_upfront_cents:
            raise InvalidPolicyError("Signing upfront threshold exceeds total upfront plan")
        if self.signing.deposit_threshold_cents > self.move_in.security_deposit_cents:
            raise InvalidPolicyError("Signing deposit threshold exceeds security deposit")
        if self.monthly.monthly_rent_cents <= 0:
            raise InvalidPolicyError("Monthly rent must be positive")
        if self.monthly.term_months <= 0:
            raise InvalidPolicyError("Lease term must be at least one month")
        if self.monthly.term_months > MAX_TERM_MONTHS:
            raise InvalidPolicyError(f"Lease term cannot exceed {MAX_TERM_MONTHS} months")
        if self.monthly.move_in_date is None:
            raise InvalidPolicyError("Move-in date is required")


@dataclass
class StageProgress:
    """Paid/remaining figures for one payment stage"""

    operating_total_cents: int
    deposit_total_cents: int
    operating_paid_cents: int
    deposit_paid_cents: int
    operating_remaining_cents: int
    deposit_remaining_cents: int
    remaining_total_cents: int
    met: bool


@dataclass
class DueWindows:
    """Remaining cents bucketed by when they fall due (display only)"""

    due_now_cents: int = 0
    due_before_move_in_cents: int = 0
    due_next_30_cents: int = 0
    later_cents: int = 0


@dataclass
class NextRent:
    period: str
    due_date: Optional[date]
    amount_cents: int
    remaining_cents: int


@dataclass
class WorkflowApplication:
    """Workflow position and configuration for one household's application"""

    application_id: str
    state: ApplicationState = ApplicationState.DRAFT
    policy: Optional[StagePolicy] = None
    household: Optional[Household] = None
    needs_attention: bool = False
    unapplied_cents: int = 0
    closed_reason: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)

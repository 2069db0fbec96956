"""SQLAlchemy-backed workflow store"""

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from rentflow.domain.exceptions import ApplicationNotFoundError
from rentflow.domain.household import Household, Member
from rentflow.domain.ledger import ChargeLedger
from rentflow.domain.models import (
    AllocationPiece,
    AllocationResult,
    Charge,
    MonthlyTerms,
    MoveInTerms,
    Payment,
    SigningTerms,
    StagePolicy,
    WorkflowApplication,
)
from rentflow.domain.states import ApplicationState
from rentflow.infrastructure.database.models import (
    ApplicationRecord,
    ChargeRecord,
    PaymentRecord,
    ProcessedPayment,
)


def policy_to_json(policy: Optional[StagePolicy]) -> Optional[Dict[str, Any]]:
    if policy is None:
        return None
    return {
        "signing": {
            "upfront_threshold_cents": policy.signing.upfront_threshold_cents,
            "deposit_threshold_cents": policy.signing.deposit_threshold_cents,
        },
        "move_in": {
            "first_month_cents": policy.move_in.first_month_cents,
            "last_month_cents": policy.move_in.last_month_cents,
            "key_fee_cents": policy.move_in.key_fee_cents,
            "security_deposit_cents": policy.move_in.security_deposit_cents,
            "total_upfront_cents": policy.move_in.total_upfront_cents,
            "require_first_before_move_in": policy.move_in.require_first_before_move_in,
            "require_last_before_move_in": policy.move_in.require_last_before_move_in,
        },
        "monthly": {
            "monthly_rent_cents": policy.monthly.monthly_rent_cents,
            "term_months": policy.monthly.term_months,
            "move_in_date": policy.monthly.move_in_date.isoformat(),
        },
    }


def policy_from_json(data: Optional[Dict[str, Any]]) -> Optional[StagePolicy]:
    if not data:
        return None
    monthly = dict(data["monthly"])
    monthly["move_in_date"] = date.fromisoformat(monthly["move_in_date"])
    return StagePolicy(
        signing=SigningTerms(**data["signing"]),
        move_in=MoveInTerms(**data["move_in"]),
        monthly=MonthlyTerms(**monthly),
    )


def household_to_json(household: Optional[Household]) -> Optional[Dict[str, Any]]:
    if household is None:
        return None
    return {
        "household_id": household.household_id,
        "display_name": household.display_name,
        "members": [
            {"user_id": m.user_id, "role": m.role.value, "state": m.state.value} for m in household.members
        ],
    }


def household_from_json(data: Optional[Dict[str, Any]]) -> Optional[Household]:
    if not data:
        return None
    return Household(
        household_id=data["household_id"],
        display_name=data.get("display_name"),
        members=[Member(**m) for m in data.get("members", [])],
    )


def pieces_to_json(pieces: List[AllocationPiece]) -> List[Dict[str, Any]]:
    return [
        {
            "charge_key": p.charge_key,
            "label": p.label,
            "amount_cents": p.amount_cents,
            "fully_covered": p.fully_covered,
        }
        for p in pieces
    ]


def pieces_from_json(data: Optional[List[Dict[str, Any]]]) -> List[AllocationPiece]:
    return [AllocationPiece(**p) for p in data or []]


class SqlWorkflowStore:
    """
    WorkflowStore over a SQLAlchemy session.

    Every write commits on its own. Loads build fresh domain objects from the
    rows, so callers never hold ORM-attached state.
    """

    def __init__(self, db: Session):
        self.db = db

    async def create_application(self, application: WorkflowApplication) -> None:
        if self.db.get(ApplicationRecord, application.application_id) is not None:
            raise ValueError(f"Application {application.application_id} already exists")
        record = ApplicationRecord(id=application.application_id, created_at=application.created_at)
        self._fill_application(record, application)
        self.db.add(record)
        self.db.commit()

    async def load_application(self, application_id: str) -> WorkflowApplication:
        record = self._require(application_id)
        return WorkflowApplication(
            application_id=record.id,
            state=ApplicationState(record.state),
            policy=policy_from_json(record.policy),
            household=household_from_json(record.household),
            needs_attention=record.needs_attention,
            unapplied_cents=record.unapplied_cents,
            closed_reason=record.closed_reason,
            created_at=record.created_at,
        )

    async def save_application(self, application: WorkflowApplication) -> None:
        record = self._require(application.application_id)
        self._fill_application(record, application)
        self.db.commit()

    async def load_state(self, application_id: str) -> ApplicationState:
        return ApplicationState(self._require(application_id).state)

    async def save_state(self, application_id: str, state: ApplicationState) -> None:
        record = self._require(application_id)
        record.state = ApplicationState(state).value
        self.db.commit()

    async def load_ledger(self, application_id: str) -> ChargeLedger:
        self._require(application_id)
        rows = (
            self.db.query(ChargeRecord)
            .filter(ChargeRecord.application_id == application_id)
            .order_by(ChargeRecord.due_date, ChargeRecord.charge_key)
            .all()
        )
        return ChargeLedger(
            Charge(
                charge_key=row.charge_key,
                bucket=row.bucket,
                code=row.code,
                amount_cents=row.amount_cents,
                label=row.label,
                due_date=row.due_date,
                period=row.period,
                posted_cents=row.posted_cents,
                pending_cents=row.pending_cents,
            )
            for row in rows
        )

    async def save_ledger(self, application_id: str, ledger: ChargeLedger) -> None:
        self._require(application_id)
        for charge in ledger.charges:
            row = self.db.get(ChargeRecord, charge.charge_key)
            if row is None:
                row = ChargeRecord(charge_key=charge.charge_key, application_id=application_id)
                self.db.add(row)
            row.bucket = charge.bucket.value
            row.code = charge.code.value
            row.label = charge.label
            row.amount_cents = charge.amount_cents
            row.due_date = charge.due_date
            row.period = charge.period
            row.posted_cents = charge.posted_cents
            row.pending_cents = charge.pending_cents
        self.db.commit()

    async def load_payments(self, application_id: str) -> List[Payment]:
        self._require(application_id)
        rows = (
            self.db.query(PaymentRecord)
            .filter(PaymentRecord.application_id == application_id)
            .order_by(PaymentRecord.created_at)
            .all()
        )
        return [
            Payment(
                payment_id=row.id,
                kind=row.kind,
                amount_cents=row.amount_cents,
                status=row.status,
                created_at=row.created_at,
                pieces=pieces_from_json(row.pieces),
                unapplied_cents=row.unapplied_cents,
            )
            for row in rows
        ]

    async def save_payment(self, application_id: str, payment: Payment) -> None:
        self._require(application_id)
        row = self.db.get(PaymentRecord, payment.payment_id)
        if row is None:
            row = PaymentRecord(
                id=payment.payment_id,
                application_id=application_id,
                created_at=payment.created_at,
            )
            self.db.add(row)
        row.kind = payment.kind.value
        row.amount_cents = payment.amount_cents
        row.status = payment.status.value
        row.pieces = pieces_to_json(payment.pieces)
        row.unapplied_cents = payment.unapplied_cents
        self.db.commit()

    async def is_payment_processed(self, application_id: str, payment_id: str) -> bool:
        return self.db.get(ProcessedPayment, (application_id, payment_id)) is not None

    async def mark_payment_processed(self, application_id: str, payment_id: str, result: AllocationResult) -> None:
        self.db.add(
            ProcessedPayment(
                application_id=application_id,
                payment_id=payment_id,
                result={"pieces": pieces_to_json(result.pieces), "leftover_cents": result.leftover_cents},
            )
        )
        self.db.commit()

    async def get_processed_result(self, application_id: str, payment_id: str) -> Optional[AllocationResult]:
        row = self.db.get(ProcessedPayment, (application_id, payment_id))
        if row is None:
            return None
        return AllocationResult(
            pieces=pieces_from_json(row.result.get("pieces")),
            leftover_cents=row.result.get("leftover_cents", 0),
        )

    async def payment_owner(self, payment_id: str) -> Optional[str]:
        row = self.db.get(PaymentRecord, payment_id)
        if row is not None:
            return row.application_id
        processed = self.db.query(ProcessedPayment).filter(ProcessedPayment.payment_id == payment_id).first()
        return processed.application_id if processed is not None else None

    def _require(self, application_id: str) -> ApplicationRecord:
        record = self.db.get(ApplicationRecord, application_id)
        if record is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")
        return record

    @staticmethod
    def _fill_application(record: ApplicationRecord, application: WorkflowApplication) -> None:
        record.state = application.state.value
        record.policy = policy_to_json(application.policy)
        record.household = household_to_json(application.household)
        record.needs_attention = application.needs_attention
        record.unapplied_cents = application.unapplied_cents
        record.closed_reason = application.closed_reason

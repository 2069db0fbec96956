"""Workflow orchestrator - the entry point API routes use"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, List, Optional, Tuple

from rentflow.config import settings
from rentflow.domain.allocation import allocate, allocate_rollover
from rentflow.domain.exceptions import (
    AmountNotAllowedError,
    DuplicatePaymentError,
    InvalidBucketError,
    InvalidPaymentStatusError,
    InvalidTransitionError,
    LedgerCorruptionError,
    PaymentNotFoundError,
)
from rentflow.domain.household import Household
from rentflow.domain.ledger import ChargeLedger, build_charges
from rentflow.domain.models import (
    AllocationResult,
    Bucket,
    DueWindows,
    NextRent,
    Payment,
    PaymentStatus,
    StagePolicy,
    StageProgress,
    WorkflowApplication,
)
from rentflow.domain.payments import OPEN_STATUSES, settle_path
from rentflow.domain.stages import Stage, StageEvaluator
from rentflow.domain.states import (
    DISPLAY_LABELS,
    PAID_STATES,
    ApplicationState,
    GuardContext,
    WorkflowEvent,
    allowed_events,
    next_state,
)
from rentflow.infrastructure.observability.logging import (
    log_duplicate_payment,
    log_payment_recorded,
    log_reconciliation_needed,
    log_transition,
)
from rentflow.infrastructure.observability.metrics import (
    duplicate_payment_counter,
    ledger_corruption_counter,
    reconciliation_counter,
    record_payment,
    record_transition,
)
from rentflow.workflow.locks import ApplicationLocks
from rentflow.workflow.ports import PaymentIntent, PaymentProcessor, WorkflowStore

logger = logging.getLogger(__name__)


@dataclass
class PaymentQuote:
    bucket: Bucket
    amount_cents: int
    allowed_exact_amounts: List[int] = field(default_factory=list)


@dataclass
class ApplicationStatus:
    """Read model for one application"""

    application_id: str
    state: ApplicationState
    display_label: str
    allowed_events: List[WorkflowEvent]
    needs_attention: bool
    unapplied_cents: int
    closed_reason: Optional[str] = None
    stage1: Optional[StageProgress] = None
    stage2: Optional[StageProgress] = None
    current_stage: Optional[Stage] = None
    due_windows: Optional[DueWindows] = None
    next_rent: Optional[NextRent] = None
    pending_payments: List[Payment] = field(default_factory=list)


class WorkflowOrchestrator:
    """
    Coordinates ledger, allocation, stage gates and the state machine.

    Writes for one application run under that application's lock, so
    duplicate or concurrent processor notifications apply one at a time
    and in call order. Reads work on store snapshots without the lock.
    """

    def __init__(
        self,
        store: WorkflowStore,
        processor: Optional[PaymentProcessor] = None,
        *,
        locks: Optional[ApplicationLocks] = None,
        clock: Callable[[], date] = date.today,
        rollover_leftover_to_rent: Optional[bool] = None,
    ):
        self.store = store
        self.processor = processor
        self.locks = locks or ApplicationLocks()
        self.clock = clock
        self.rollover_leftover_to_rent = (
            settings.rollover_leftover_to_rent if rollover_leftover_to_rent is None else rollover_leftover_to_rent
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_application(
        self, application_id: str, household: Optional[Household] = None
    ) -> WorkflowApplication:
        application = WorkflowApplication(application_id=application_id, household=household)
        async with self.locks.hold(application_id):
            await self.store.create_application(application)
            await self.store.save_ledger(application_id, ChargeLedger())
        return application

    async def set_terms(self, application_id: str, policy: StagePolicy) -> ApplicationState:
        """
        Finalize the plan: build the ledger, move to terms_set and open the
        payment window. Zero signing thresholds carry straight on to min_paid.
        """
        policy.validate()
        ledger = ChargeLedger(build_charges(application_id, policy))
        async with self.locks.hold(application_id):
            application, _ = await self._load(application_id)
            await self._apply(application, WorkflowEvent.SET_TERMS, GuardContext())

            application.policy = policy
            await self.store.save_ledger(application_id, ledger)

            await self._apply(application, WorkflowEvent.OPEN_PAYMENTS, GuardContext())
            if self._stage1(application, ledger).met:
                await self._apply(application, WorkflowEvent.PAYMENT_UPDATED, GuardContext(stage1_met=True))
            await self.store.save_application(application)
            return application.state

    async def transition(
        self, application_id: str, event: WorkflowEvent, reason: Optional[str] = None
    ) -> ApplicationState:
        """
        Apply one state-machine edge.

        Raises:
            InvalidTransitionError: If the edge does not exist or its guard fails
        """
        event = WorkflowEvent(event)
        async with self.locks.hold(application_id):
            application, ledger = await self._load(application_id)

            if event == WorkflowEvent.SET_TERMS and application.policy is None:
                raise InvalidTransitionError(application.state.value, event.value, "terms required")

            ctx = GuardContext(
                stage1_met=self._stage1(application, ledger).met if application.policy else False,
                move_in_reached=(
                    application.policy is not None
                    and application.policy.monthly.move_in_date <= self.clock()
                ),
                reason=reason,
            )
            await self._apply(application, event, ctx)
            if event in (WorkflowEvent.REJECT, WorkflowEvent.WITHDRAW):
                application.closed_reason = reason
            await self.store.save_application(application)
            return application.state

    # ------------------------------------------------------------------
    # Quoting and payment initiation
    # ------------------------------------------------------------------

    async def quote_payment(
        self,
        application_id: str,
        bucket: Bucket,
        proposed_amount_cents: Optional[int] = None,
    ) -> PaymentQuote:
        """
        Amount due now for ``bucket`` and the closed list of exact amounts a
        payer may choose.

        Raises:
            InvalidBucketError: For buckets payments cannot target
            AmountNotAllowedError: If ``proposed_amount_cents`` is not allowed
        """
        bucket = Bucket.parse(bucket)
        if bucket not in (Bucket.UPFRONT, Bucket.DEPOSIT):
            raise InvalidBucketError(f"Payments cannot target bucket {bucket.value}")

        application, ledger = await self._load(application_id)
        quote = self._quote(application, ledger, bucket)

        if proposed_amount_cents is not None and proposed_amount_cents not in quote.allowed_exact_amounts:
            raise AmountNotAllowedError(bucket.value, proposed_amount_cents, quote.allowed_exact_amounts)
        return quote

    async def start_payment(
        self,
        application_id: str,
        bucket: Bucket,
        amount_cents: int,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        """Validate the amount, open a processor intent and record a created payment"""
        if self.processor is None:
            raise RuntimeError("No payment processor configured")

        bucket = Bucket.parse(bucket)
        await self.quote_payment(application_id, bucket, amount_cents)

        intent = await self.processor.create_payment_intent(
            amount_cents,
            bucket,
            application_id=application_id,
            idempotency_key=idempotency_key,
        )
        async with self.locks.hold(application_id):
            payments = await self.store.load_payments(application_id)
            if _find(payments, intent.intent_id) is None:
                payment = Payment(payment_id=intent.intent_id, kind=bucket, amount_cents=amount_cents)
                await self.store.save_payment(application_id, payment)
        return intent

    # ------------------------------------------------------------------
    # Processor notifications
    # ------------------------------------------------------------------

    async def record_payment_processing(
        self, application_id: str, payment_id: str, bucket: Bucket, amount_cents: int
    ) -> AllocationResult:
        """Hold pending credits for a payment that is in flight"""
        bucket = Bucket.parse(bucket)
        async with self.locks.hold(application_id):
            await self._check_owner(application_id, payment_id)
            application, ledger = await self._load(application_id)
            payments = await self.store.load_payments(application_id)
            payment = self._resolve_payment(payments, payment_id, bucket, amount_cents)

            if payment.status in (PaymentStatus.FAILED, PaymentStatus.CANCELED):
                raise InvalidPaymentStatusError(
                    f"Payment {payment_id} is already {payment.status.value} and cannot be processing"
                )
            if payment.status != PaymentStatus.CREATED:
                # Late or repeated notification; keep what is already held
                return AllocationResult(pieces=list(payment.pieces), leftover_cents=payment.unapplied_cents)

            result = self._allocate(ledger, bucket, amount_cents)
            for piece in result.pieces:
                ledger.apply_credit(piece.charge_key, 0, piece.amount_cents)
            payment.pieces = list(result.pieces)
            payment.unapplied_cents = result.leftover_cents
            settle_path(payment, PaymentStatus.PROCESSING)

            await self.store.save_ledger(application_id, ledger)
            await self.store.save_payment(application_id, payment)
            record_payment(bucket.value, PaymentStatus.PROCESSING.value)
            log_payment_recorded(
                application_id, payment_id, "processing", amount_cents, result.applied_cents, result.leftover_cents
            )
            return result

    async def record_payment_succeeded(
        self, application_id: str, payment_id: str, bucket: Bucket, amount_cents: int
    ) -> AllocationResult:
        """
        Credit a settled payment, re-check the signing gate and advance the
        application when it is newly met.

        Replaying the same ``payment_id`` returns the first result without
        crediting again.
        """
        bucket = Bucket.parse(bucket)
        async with self.locks.hold(application_id):
            try:
                return await self._apply_success(application_id, payment_id, bucket, amount_cents)
            except DuplicatePaymentError as e:
                duplicate_payment_counter.inc()
                log_duplicate_payment(application_id, payment_id)
                return e.result

    async def record_payment_failed(self, application_id: str, payment_id: str) -> Payment:
        return await self._close_unsettled(application_id, payment_id, PaymentStatus.FAILED)

    async def record_payment_canceled(self, application_id: str, payment_id: str) -> Payment:
        return await self._close_unsettled(application_id, payment_id, PaymentStatus.CANCELED)

    async def record_payment_returned(self, application_id: str, payment_id: str) -> Payment:
        """
        Reverse a succeeded payment's credits. The application state is never
        moved backward; if signing funds are no longer met past min_paid the
        application is flagged for reconciliation instead.
        """
        async with self.locks.hold(application_id):
            application, ledger = await self._load(application_id)
            payments = await self.store.load_payments(application_id)
            payment = _find(payments, payment_id)
            if payment is None:
                raise PaymentNotFoundError(f"Payment {payment_id} not found on {application_id}")
            if payment.status == PaymentStatus.RETURNED:
                return payment

            settle_path(payment, PaymentStatus.RETURNED)
            for piece in payment.pieces:
                ledger.apply_credit(piece.charge_key, -piece.amount_cents, 0)
            application.unapplied_cents = max(0, application.unapplied_cents - payment.unapplied_cents)
            payment.pieces = []
            payment.unapplied_cents = 0

            await self.store.save_ledger(application_id, ledger)
            await self.store.save_payment(application_id, payment)
            self._reevaluate(application, ledger)
            await self.store.save_application(application)
            record_payment(payment.kind.value, PaymentStatus.RETURNED.value)
            log_payment_recorded(application_id, payment_id, "returned", payment.amount_cents, 0, 0)
            return payment

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_pending_payments(self, application_id: str) -> List[Payment]:
        """Payments not yet settled; callers poll this instead of the processor"""
        payments = await self.store.load_payments(application_id)
        return [p for p in payments if p.status in OPEN_STATUSES]

    async def get_ledger(self, application_id: str) -> ChargeLedger:
        _, ledger = await self._load(application_id)
        return ledger

    async def get_status(self, application_id: str) -> ApplicationStatus:
        application, ledger = await self._load(application_id)
        status = ApplicationStatus(
            application_id=application_id,
            state=application.state,
            display_label=DISPLAY_LABELS[application.state],
            allowed_events=allowed_events(application.state),
            needs_attention=application.needs_attention,
            unapplied_cents=application.unapplied_cents,
            closed_reason=application.closed_reason,
            pending_payments=await self.get_pending_payments(application_id),
        )
        if application.policy is not None:
            evaluator = StageEvaluator(ledger, application.policy)
            status.stage1 = evaluator.evaluate_stage1()
            status.stage2 = evaluator.evaluate_stage2()
            status.current_stage = evaluator.current_stage()
            status.due_windows = ledger.due_windows(
                self.clock(), application.policy.monthly.move_in_date, settings.due_soon_days
            )
            status.next_rent = ledger.next_rent()
        return status

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, application_id: str) -> Tuple[WorkflowApplication, ChargeLedger]:
        application = await self.store.load_application(application_id)
        ledger = await self.store.load_ledger(application_id)
        try:
            ledger.verify()
        except LedgerCorruptionError as e:
            ledger_corruption_counter.inc()
            logger.critical(
                "Ledger invariant violated on load",
                extra={"application_id": application_id, "error": str(e)},
            )
            raise
        return application, ledger

    async def _apply(self, application: WorkflowApplication, event: WorkflowEvent, ctx: GuardContext) -> None:
        previous = application.state
        application.state = next_state(previous, event, ctx)
        await self.store.save_state(application.application_id, application.state)
        record_transition(event.value, application.state.value)
        log_transition(application.application_id, event.value, previous.value, application.state.value)

    async def _apply_success(
        self, application_id: str, payment_id: str, bucket: Bucket, amount_cents: int
    ) -> AllocationResult:
        await self._check_owner(application_id, payment_id)
        if await self.store.is_payment_processed(application_id, payment_id):
            raise DuplicatePaymentError(
                payment_id, await self.store.get_processed_result(application_id, payment_id)
            )

        application, ledger = await self._load(application_id)
        payments = await self.store.load_payments(application_id)
        payment = self._resolve_payment(payments, payment_id, bucket, amount_cents)

        if payment.status in (PaymentStatus.SUCCEEDED, PaymentStatus.RETURNED):
            raise DuplicatePaymentError(
                payment_id, AllocationResult(pieces=list(payment.pieces), leftover_cents=payment.unapplied_cents)
            )

        if payment.status == PaymentStatus.PROCESSING:
            # Promote exactly what was held while the payment was in flight
            result = AllocationResult(pieces=list(payment.pieces), leftover_cents=payment.unapplied_cents)
            for piece in result.pieces:
                ledger.apply_credit(piece.charge_key, piece.amount_cents, -piece.amount_cents)
        else:
            result = self._allocate(ledger, bucket, amount_cents)
            for piece in result.pieces:
                ledger.apply_credit(piece.charge_key, piece.amount_cents, 0)
            payment.pieces = list(result.pieces)
            payment.unapplied_cents = result.leftover_cents

        settle_path(payment, PaymentStatus.SUCCEEDED)
        application.unapplied_cents += result.leftover_cents
        if result.leftover_cents:
            logger.warning(
                "Payment exceeded outstanding charges",
                extra={
                    "application_id": application_id,
                    "payment_id": payment_id,
                    "bucket": bucket.value,
                    "leftover_cents": result.leftover_cents,
                },
            )

        await self.store.save_ledger(application_id, ledger)
        await self.store.save_payment(application_id, payment)

        if application.state == ApplicationState.MIN_DUE and self._stage1(application, ledger).met:
            await self._apply(application, WorkflowEvent.PAYMENT_UPDATED, GuardContext(stage1_met=True))
        self._reevaluate(application, ledger)
        await self.store.save_application(application)
        await self.store.mark_payment_processed(application_id, payment_id, result)

        record_payment(bucket.value, PaymentStatus.SUCCEEDED.value, amount_cents, result.leftover_cents)
        log_payment_recorded(
            application_id, payment_id, "succeeded", amount_cents, result.applied_cents, result.leftover_cents
        )
        return result

    async def _close_unsettled(self, application_id: str, payment_id: str, outcome: PaymentStatus) -> Payment:
        async with self.locks.hold(application_id):
            application, ledger = await self._load(application_id)
            payments = await self.store.load_payments(application_id)
            payment = _find(payments, payment_id)
            if payment is None:
                raise PaymentNotFoundError(f"Payment {payment_id} not found on {application_id}")
            if payment.status == outcome:
                return payment

            settle_path(payment, outcome)
            # Only in-flight payments hold (pending) credits
            for piece in payment.pieces:
                ledger.apply_credit(piece.charge_key, 0, -piece.amount_cents)
            payment.pieces = []
            payment.unapplied_cents = 0

            await self.store.save_ledger(application_id, ledger)
            await self.store.save_payment(application_id, payment)
            self._reevaluate(application, ledger)
            await self.store.save_application(application)
            record_payment(payment.kind.value, outcome.value)
            log_payment_recorded(application_id, payment_id, outcome.value, payment.amount_cents, 0, 0)
            return payment

    async def _check_owner(self, application_id: str, payment_id: str) -> None:
        owner = await self.store.payment_owner(payment_id)
        if owner is not None and owner != application_id:
            raise InvalidPaymentStatusError(f"Payment {payment_id} belongs to another application")

    def _resolve_payment(
        self, payments: List[Payment], payment_id: str, bucket: Bucket, amount_cents: int
    ) -> Payment:
        payment = _find(payments, payment_id)
        if payment is None:
            return Payment(payment_id=payment_id, kind=bucket, amount_cents=amount_cents)
        if payment.kind != bucket or payment.amount_cents != amount_cents:
            raise InvalidPaymentStatusError(
                f"Payment {payment_id} was opened as {payment.kind.value}/{payment.amount_cents}, "
                f"notified as {bucket.value}/{amount_cents}"
            )
        return payment

    def _allocate(self, ledger: ChargeLedger, bucket: Bucket, amount_cents: int) -> AllocationResult:
        result = allocate(ledger, amount_cents, bucket)
        if bucket == Bucket.UPFRONT and self.rollover_leftover_to_rent and result.leftover_cents:
            rollover = allocate_rollover(ledger, result.leftover_cents)
            result = AllocationResult(pieces=result.pieces + rollover.pieces, leftover_cents=rollover.leftover_cents)
        return result

    def _stage1(self, application: WorkflowApplication, ledger: ChargeLedger) -> StageProgress:
        """Signing gate on settled money only"""
        return StageEvaluator(ledger, application.policy, posted_only=True).evaluate_stage1()

    def _reevaluate(self, application: WorkflowApplication, ledger: ChargeLedger) -> None:
        """Raise or clear the reconciliation flag for applications past the signing gate"""
        if application.policy is None or application.state not in PAID_STATES:
            return
        stage1 = self._stage1(application, ledger)
        if stage1.met:
            application.needs_attention = False
        elif not application.needs_attention:
            application.needs_attention = True
            reconciliation_counter.inc()
            log_reconciliation_needed(
                application.application_id, application.state.value, stage1.remaining_total_cents
            )

    def _quote(self, application: WorkflowApplication, ledger: ChargeLedger, bucket: Bucket) -> PaymentQuote:
        if application.policy is None or application.state.is_terminal:
            return PaymentQuote(bucket=bucket, amount_cents=0)

        evaluator = StageEvaluator(ledger, application.policy)
        stage1 = evaluator.evaluate_stage1()
        stage = stage1 if not stage1.met else evaluator.evaluate_stage2()

        if bucket == Bucket.UPFRONT:
            due = stage.operating_remaining_cents
            candidates = [due, ledger.remaining(Bucket.UPFRONT)]
            candidates += [c.remaining_cents for c in ledger.select(Bucket.UPFRONT)]
        else:
            due = stage.deposit_remaining_cents
            candidates = [due, ledger.remaining(Bucket.DEPOSIT)]

        # A stage figure can exceed what the charges still need; never quote above that
        ceiling = ledger.remaining(bucket)
        allowed = sorted({c for c in candidates if 0 < c <= ceiling})
        return PaymentQuote(bucket=bucket, amount_cents=min(due, ceiling), allowed_exact_amounts=allowed)


def _find(payments: List[Payment], payment_id: str) -> Optional[Payment]:
    return next((p for p in payments if p.payment_id == payment_id), None)

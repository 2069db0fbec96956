"""/v1/applications - lifecycle, ledger, quotes and payment initiation"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from rentflow.api.dependencies import get_orchestrator, get_request_id
from rentflow.api.errors import to_http_exception
from rentflow.api.v1.schemas import (
    ChargeSchema,
    ChargesResponse,
    CreateApplicationRequest,
    HouseholdSchema,
    PaymentIntentResponse,
    QuoteRequest,
    QuoteResponse,
    StartPaymentRequest,
    StateResponse,
    StatusResponse,
    TermsRequest,
    TransitionRequest,
)
from rentflow.domain.household import Household
from rentflow.domain.models import MonthlyTerms, MoveInTerms, SigningTerms, StagePolicy
from rentflow.domain.states import DISPLAY_LABELS
from rentflow.workflow.orchestrator import WorkflowOrchestrator

router = APIRouter()


def _household(body: HouseholdSchema) -> Household:
    household = Household(household_id=body.household_id, display_name=body.display_name)
    for member in body.members:
        household.add_member(member.user_id, member.role, member.state)
    return household


def _policy(body: TermsRequest) -> StagePolicy:
    return StagePolicy(
        signing=SigningTerms(**body.signing.model_dump()),
        move_in=MoveInTerms(**body.move_in.model_dump()),
        monthly=MonthlyTerms(**body.monthly.model_dump()),
    )


def _state_response(application_id: str, state) -> StateResponse:
    return StateResponse(application_id=application_id, state=state.value, display_label=DISPLAY_LABELS[state])


@router.post("/applications", response_model=StateResponse, status_code=201)
async def create_application(
    body: CreateApplicationRequest,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    request_id = get_request_id(request)
    try:
        household = _household(body.household) if body.household else None
        application = await orchestrator.create_application(body.application_id, household)
    except ValueError as e:
        # Duplicate id
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        raise to_http_exception(e, request_id)

    logging.info("Application created", extra={"request_id": request_id, "application_id": body.application_id})
    return _state_response(application.application_id, application.state)


@router.get("/applications/{application_id}", response_model=StatusResponse)
async def get_application(
    application_id: str,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    try:
        status = await orchestrator.get_status(application_id)
    except Exception as e:
        raise to_http_exception(e, get_request_id(request))

    return StatusResponse(
        application_id=status.application_id,
        state=status.state.value,
        display_label=status.display_label,
        allowed_events=[e.value for e in status.allowed_events],
        needs_attention=status.needs_attention,
        unapplied_cents=status.unapplied_cents,
        closed_reason=status.closed_reason,
        current_stage=int(status.current_stage) if status.current_stage is not None else None,
        stage1=vars(status.stage1) if status.stage1 else None,
        stage2=vars(status.stage2) if status.stage2 else None,
        due_windows=vars(status.due_windows) if status.due_windows else None,
        next_rent=vars(status.next_rent) if status.next_rent else None,
        pending_payments=[
            {"payment_id": p.payment_id, "kind": p.kind.value, "amount_cents": p.amount_cents, "status": p.status.value}
            for p in status.pending_payments
        ],
    )


@router.get("/applications/{application_id}/charges", response_model=ChargesResponse)
async def get_charges(
    application_id: str,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    try:
        ledger = await orchestrator.get_ledger(application_id)
    except Exception as e:
        raise to_http_exception(e, get_request_id(request))

    charges = sorted(ledger.charges, key=lambda c: (c.due_date is None, c.due_date, c.priority, c.charge_key))
    return ChargesResponse(
        application_id=application_id,
        charges=[
            ChargeSchema(
                charge_key=c.charge_key,
                bucket=c.bucket.value,
                code=c.code.value,
                label=c.label,
                amount_cents=c.amount_cents,
                posted_cents=c.posted_cents,
                pending_cents=c.pending_cents,
                remaining_cents=c.remaining_cents,
                due_date=c.due_date,
                period=c.period,
            )
            for c in charges
        ],
    )


@router.post("/applications/{application_id}/terms", response_model=StateResponse)
async def set_terms(
    application_id: str,
    body: TermsRequest,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Finalize the lease plan.

    Builds the charge ledger and opens the payment window; the response state
    is min_due, or min_paid when the signing thresholds are zero.
    """
    try:
        state = await orchestrator.set_terms(application_id, _policy(body))
    except Exception as e:
        raise to_http_exception(e, get_request_id(request))
    return _state_response(application_id, state)


@router.post("/applications/{application_id}/transitions", response_model=StateResponse)
async def apply_transition(
    application_id: str,
    body: TransitionRequest,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    request_id = get_request_id(request)
    try:
        state = await orchestrator.transition(application_id, body.event, body.reason)
    except ValueError as e:
        # Unknown event name
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise to_http_exception(e, request_id)
    return _state_response(application_id, state)


@router.post("/applications/{application_id}/quote", response_model=QuoteResponse)
async def quote_payment(
    application_id: str,
    body: QuoteRequest,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    try:
        quote = await orchestrator.quote_payment(application_id, body.bucket, body.proposed_amount_cents)
    except Exception as e:
        raise to_http_exception(e, get_request_id(request))
    return QuoteResponse(
        bucket=quote.bucket.value,
        amount_cents=quote.amount_cents,
        allowed_exact_amounts=quote.allowed_exact_amounts,
    )


@router.post("/applications/{application_id}/payments", response_model=PaymentIntentResponse, status_code=201)
async def start_payment(
    application_id: str,
    body: StartPaymentRequest,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Open a payment with the processor.

    The amount must be one of the exact amounts the quote endpoint returns;
    otherwise the response is 422 with the allowed list.
    """
    request_id = get_request_id(request)
    try:
        intent = await orchestrator.start_payment(application_id, body.bucket, body.amount_cents, body.idempotency_key)
    except Exception as e:
        raise to_http_exception(e, request_id)

    logging.info(
        "Payment started",
        extra={"request_id": request_id, "application_id": application_id, "payment_id": intent.intent_id},
    )
    return PaymentIntentResponse(
        intent_id=intent.intent_id,
        client_secret_or_redirect_url=intent.client_secret_or_redirect_url,
        status=intent.status,
    )

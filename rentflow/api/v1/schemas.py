"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date
from typing import List, Literal, Optional


class MemberSchema(BaseModel):
    user_id: str = Field(..., min_length=1)
    role: Literal["primary", "co_applicant", "cosigner"] = "co_applicant"
    state: Literal["invited", "active", "left"] = "invited"


class HouseholdSchema(BaseModel):
    household_id: str = Field(..., min_length=1)
    display_name: Optional[str] = None
    members: List[MemberSchema] = Field(default_factory=list)


class CreateApplicationRequest(BaseModel):
    """Request body for POST /v1/applications"""

    application_id: str = Field(..., min_length=1, max_length=128, description="Caller-chosen application id")
    household: Optional[HouseholdSchema] = None


class SigningTermsSchema(BaseModel):
    upfront_threshold_cents: int = Field(0, ge=0)
    deposit_threshold_cents: int = Field(0, ge=0)


class MoveInTermsSchema(BaseModel):
    first_month_cents: int = Field(0, ge=0)
    last_month_cents: int = Field(0, ge=0)
    key_fee_cents: int = Field(0, ge=0)
    security_deposit_cents: int = Field(0, ge=0)
    total_upfront_cents: Optional[int] = Field(None, ge=0, description="Defaults to first + last + key fee")
    require_first_before_move_in: bool = True
    require_last_before_move_in: bool = False


class MonthlyTermsSchema(BaseModel):
    monthly_rent_cents: int
    term_months: int
    move_in_date: date


class TermsRequest(BaseModel):
    """Request body for POST /v1/applications/{id}/terms"""

    signing: SigningTermsSchema = Field(default_factory=SigningTermsSchema)
    move_in: MoveInTermsSchema = Field(default_factory=MoveInTermsSchema)
    monthly: MonthlyTermsSchema


class TransitionRequest(BaseModel):
    event: str = Field(..., min_length=1)
    reason: Optional[str] = None


class StateResponse(BaseModel):
    application_id: str
    state: str
    display_label: str


class QuoteRequest(BaseModel):
    bucket: str
    proposed_amount_cents: Optional[int] = None


class QuoteResponse(BaseModel):
    bucket: str
    amount_cents: int
    allowed_exact_amounts: List[int]


class StartPaymentRequest(BaseModel):
    bucket: str
    amount_cents: int = Field(..., gt=0)
    idempotency_key: Optional[str] = None


class PaymentIntentResponse(BaseModel):
    intent_id: str
    client_secret_or_redirect_url: str
    status: str


class PaymentWebhookRequest(BaseModel):
    """Processor notification; bucket and amount are required for processing/succeeded"""

    application_id: str
    payment_id: str
    status: Literal["processing", "succeeded", "failed", "canceled", "returned"]
    bucket: Optional[str] = None
    amount_cents: Optional[int] = Field(None, gt=0)


class AllocationPieceSchema(BaseModel):
    charge_key: str
    label: str
    amount_cents: int
    fully_covered: bool


class PaymentWebhookResponse(BaseModel):
    payment_id: str
    status: str
    applied_cents: int = 0
    leftover_cents: int = 0
    pieces: List[AllocationPieceSchema] = Field(default_factory=list)


class ChargeSchema(BaseModel):
    charge_key: str
    bucket: str
    code: str
    label: str
    amount_cents: int
    posted_cents: int
    pending_cents: int
    remaining_cents: int
    due_date: Optional[date] = None
    period: Optional[str] = None


class ChargesResponse(BaseModel):
    application_id: str
    charges: List[ChargeSchema]


class StageProgressSchema(BaseModel):
    operating_total_cents: int
    deposit_total_cents: int
    operating_paid_cents: int
    deposit_paid_cents: int
    operating_remaining_cents: int
    deposit_remaining_cents: int
    remaining_total_cents: int
    met: bool


class DueWindowsSchema(BaseModel):
    due_now_cents: int
    due_before_move_in_cents: int
    due_next_30_cents: int
    later_cents: int


class NextRentSchema(BaseModel):
    period: str
    due_date: Optional[date] = None
    amount_cents: int
    remaining_cents: int


class PendingPaymentSchema(BaseModel):
    payment_id: str
    kind: str
    amount_cents: int
    status: str


class StatusResponse(BaseModel):
    """Response for GET /v1/applications/{id}"""

    application_id: str
    state: str
    display_label: str
    allowed_events: List[str]
    needs_attention: bool
    unapplied_cents: int
    closed_reason: Optional[str] = None
    current_stage: Optional[int] = None
    stage1: Optional[StageProgressSchema] = None
    stage2: Optional[StageProgressSchema] = None
    due_windows: Optional[DueWindowsSchema] = None
    next_rent: Optional[NextRentSchema] = None
    pending_payments: List[PendingPaymentSchema] = Field(default_factory=list)

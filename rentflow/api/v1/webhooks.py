"""POST /v1/webhooks/payments - payment processor notifications"""

from fastapi import APIRouter, Depends, HTTPException, Request

from rentflow.api.dependencies import get_orchestrator, get_request_id
from rentflow.api.errors import to_http_exception
from rentflow.api.v1.schemas import PaymentWebhookRequest, PaymentWebhookResponse
from rentflow.workflow.orchestrator import WorkflowOrchestrator

router = APIRouter()


@router.post("/webhooks/payments", response_model=PaymentWebhookResponse)
async def payment_notification(
    body: PaymentWebhookRequest,
    request: Request,
    orchestrator: WorkflowOrchestrator = Depends(get_orchestrator),
):
    """
    Apply one processor notification.

    Safe to redeliver: a repeated success returns the allocation recorded the
    first time, and repeated failures, cancels or returns are no-ops.
    """
    request_id = get_request_id(request)

    if body.status in ("processing", "succeeded") and (body.bucket is None or body.amount_cents is None):
        raise HTTPException(status_code=400, detail="bucket and amount_cents are required for this status")

    try:
        if body.status == "processing":
            result = await orchestrator.record_payment_processing(
                body.application_id, body.payment_id, body.bucket, body.amount_cents
            )
        elif body.status == "succeeded":
            result = await orchestrator.record_payment_succeeded(
                body.application_id, body.payment_id, body.bucket, body.amount_cents
            )
        else:
            if body.status == "failed":
                await orchestrator.record_payment_failed(body.application_id, body.payment_id)
            elif body.status == "canceled":
                await orchestrator.record_payment_canceled(body.application_id, body.payment_id)
            else:
                await orchestrator.record_payment_returned(body.application_id, body.payment_id)
            return PaymentWebhookResponse(payment_id=body.payment_id, status=body.status)

    except Exception as e:
        raise to_http_exception(e, request_id)

    return PaymentWebhookResponse(
        payment_id=body.payment_id,
        status=body.status,
        applied_cents=result.applied_cents if result else 0,
        leftover_cents=result.leftover_cents if result else 0,
        pieces=[vars(p) for p in result.pieces] if result else [],
    )

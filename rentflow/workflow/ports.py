"""Collaborator contracts the orchestrator depends on"""

from dataclasses import dataclass
from typing import List, Optional, Protocol

from rentflow.domain.ledger import ChargeLedger
from rentflow.domain.models import AllocationResult, Bucket, Payment, WorkflowApplication
from rentflow.domain.states import ApplicationState


class WorkflowStore(Protocol):
    """
    Persistence for applications, ledgers and payments.

    Each call is atomic on its own; loads return detached copies so a
    reader never observes a half-written ledger.
    """

    async def create_application(self, application: WorkflowApplication) -> None: ...

    async def load_application(self, application_id: str) -> WorkflowApplication: ...

    async def save_application(self, application: WorkflowApplication) -> None: ...

    async def load_state(self, application_id: str) -> ApplicationState: ...

    async def save_state(self, application_id: str, state: ApplicationState) -> None: ...

    async def load_ledger(self, application_id: str) -> ChargeLedger: ...

    async def save_ledger(self, application_id: str, ledger: ChargeLedger) -> None: ...

    async def load_payments(self, application_id: str) -> List[Payment]: ...

    async def save_payment(self, application_id: str, payment: Payment) -> None: ...

    async def is_payment_processed(self, application_id: str, payment_id: str) -> bool: ...

    async def mark_payment_processed(self, application_id: str, payment_id: str, result: AllocationResult) -> None: ...

    async def get_processed_result(self, application_id: str, payment_id: str) -> Optional[AllocationResult]: ...

    async def payment_owner(self, payment_id: str) -> Optional[str]: ...


@dataclass
class PaymentIntent:
    """Processor-side handle the payer completes"""

    intent_id: str
    client_secret_or_redirect_url: str
    status: str = "created"


class PaymentProcessor(Protocol):
    async def create_payment_intent(
        self,
        amount_cents: int,
        bucket: Bucket,
        *,
        application_id: str,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent: ...

"""In-memory workflow store for tests and local runs"""

import copy
from typing import Dict, List, Optional, Tuple

from rentflow.domain.exceptions import ApplicationNotFoundError
from rentflow.domain.ledger import ChargeLedger
from rentflow.domain.models import AllocationResult, Payment, WorkflowApplication
from rentflow.domain.states import ApplicationState


class InMemoryWorkflowStore:
    """
    Dict-backed WorkflowStore.

    Everything is deep-copied on the way in and out, so callers never share
    objects with the store and a load is always a consistent snapshot.
    """

    def __init__(self) -> None:
        self._applications: Dict[str, WorkflowApplication] = {}
        self._ledgers: Dict[str, ChargeLedger] = {}
        self._payments: Dict[str, Dict[str, Payment]] = {}
        self._processed: Dict[Tuple[str, str], AllocationResult] = {}

    async def create_application(self, application: WorkflowApplication) -> None:
        if application.application_id in self._applications:
            raise ValueError(f"Application {application.application_id} already exists")
        self._applications[application.application_id] = copy.deepcopy(application)
        self._payments.setdefault(application.application_id, {})

    async def load_application(self, application_id: str) -> WorkflowApplication:
        return copy.deepcopy(self._require(application_id))

    async def save_application(self, application: WorkflowApplication) -> None:
        self._require(application.application_id)
        self._applications[application.application_id] = copy.deepcopy(application)

    async def load_state(self, application_id: str) -> ApplicationState:
        return self._require(application_id).state

    async def save_state(self, application_id: str, state: ApplicationState) -> None:
        self._require(application_id).state = ApplicationState(state)

    async def load_ledger(self, application_id: str) -> ChargeLedger:
        self._require(application_id)
        ledger = self._ledgers.get(application_id)
        return ledger.snapshot() if ledger is not None else ChargeLedger()

    async def save_ledger(self, application_id: str, ledger: ChargeLedger) -> None:
        self._require(application_id)
        self._ledgers[application_id] = ledger.snapshot()

    async def load_payments(self, application_id: str) -> List[Payment]:
        self._require(application_id)
        return [copy.deepcopy(p) for p in self._payments[application_id].values()]

    async def save_payment(self, application_id: str, payment: Payment) -> None:
        self._require(application_id)
        self._payments[application_id][payment.payment_id] = copy.deepcopy(payment)

    async def is_payment_processed(self, application_id: str, payment_id: str) -> bool:
        return (application_id, payment_id) in self._processed

    async def mark_payment_processed(self, application_id: str, payment_id: str, result: AllocationResult) -> None:
        self._processed[(application_id, payment_id)] = copy.deepcopy(result)

    async def get_processed_result(self, application_id: str, payment_id: str) -> Optional[AllocationResult]:
        result = self._processed.get((application_id, payment_id))
        return copy.deepcopy(result) if result is not None else None

    async def payment_owner(self, payment_id: str) -> Optional[str]:
        for application_id, payments in self._payments.items():
            if payment_id in payments:
                return application_id
        for application_id, processed_id in self._processed:
            if processed_id == payment_id:
                return application_id
        return None

    def _require(self, application_id: str) -> WorkflowApplication:
        try:
            return self._applications[application_id]
        except KeyError:
            raise ApplicationNotFoundError(f"Application {application_id} not found") from None

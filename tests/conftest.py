"""Pytest fixtures for testing"""

import itertools
import pytest
from datetime import date
from typing import Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from rentflow.api.dependencies import get_processor_client
from rentflow.api.main import create_app
from rentflow.domain.models import Bucket, MonthlyTerms, MoveInTerms, SigningTerms, StagePolicy
from rentflow.infrastructure.database.models import Base
from rentflow.infrastructure.database.session import build_engine, get_db
from rentflow.infrastructure.memory import InMemoryWorkflowStore
from rentflow.workflow.orchestrator import WorkflowOrchestrator
from rentflow.workflow.ports import PaymentIntent


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TODAY = date(2025, 3, 1)
MOVE_IN = date(2025, 3, 15)


class FakeProcessor:
    """Records intent requests and hands out sequential intent ids"""

    def __init__(self) -> None:
        self.calls = []
        self._ids = itertools.count(1)

    async def create_payment_intent(
        self,
        amount_cents: int,
        bucket: Bucket,
        *,
        application_id: str,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        self.calls.append((application_id, Bucket(bucket), amount_cents, idempotency_key))
        intent_id = f"pi_{next(self._ids)}"
        return PaymentIntent(intent_id=intent_id, client_secret_or_redirect_url=f"secret_{intent_id}")


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def client(db: Session, processor: FakeProcessor) -> TestClient:
    """Create FastAPI test client with test database and a fake processor"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_processor_client] = lambda: processor
    return TestClient(app)


@pytest.fixture
def policy() -> StagePolicy:
    """
    12-month lease from mid-March 2025 at $2,000/month.

    Upfront: last + first month + $50 key fee = $4,050; deposit $2,000.
    Signing needs $1,000 of operating funds and $500 of deposit.
    """
    return StagePolicy(
        signing=SigningTerms(upfront_threshold_cents=100000, deposit_threshold_cents=50000),
        move_in=MoveInTerms(
            first_month_cents=200000,
            last_month_cents=200000,
            key_fee_cents=5000,
            security_deposit_cents=200000,
        ),
        monthly=MonthlyTerms(monthly_rent_cents=200000, term_months=12, move_in_date=MOVE_IN),
    )


@pytest.fixture
def store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def orchestrator(store: InMemoryWorkflowStore, processor: FakeProcessor) -> WorkflowOrchestrator:
    return WorkflowOrchestrator(store, processor, clock=lambda: TODAY, rollover_leftover_to_rent=True)

"""Integration tests for API endpoints"""

import pytest
from fastapi.testclient import TestClient
from rentflow.api.dependencies import get_processor_client
from rentflow.domain.exceptions import PaymentProcessorError

pytestmark = pytest.mark.integration

TERMS = {
    "signing": {"upfront_threshold_cents": 100000, "deposit_threshold_cents": 50000},
    "move_in": {
        "first_month_cents": 200000,
        "last_month_cents": 200000,
        "key_fee_cents": 5000,
        "security_deposit_cents": 200000,
    },
    "monthly": {"monthly_rent_cents": 200000, "term_months": 12, "move_in_date": "2025-03-15"},
}


def _approved(client: TestClient, application_id: str = "app1") -> None:
    response = client.post("/v1/applications", json={"application_id": application_id})
    assert response.status_code == 201
    for event in ("submit", "screen", "approve"):
        response = client.post(f"/v1/applications/{application_id}/transitions", json={"event": event})
        assert response.status_code == 200


def _with_terms(client: TestClient, application_id: str = "app1") -> None:
    _approved(client, application_id)
    response = client.post(f"/v1/applications/{application_id}/terms", json=TERMS)
    assert response.status_code == 200


def _webhook(client: TestClient, payment_id: str, status: str, bucket=None, amount=None):
    body = {"application_id": "app1", "payment_id": payment_id, "status": status}
    if bucket:
        body["bucket"] = bucket
    if amount:
        body["amount_cents"] = amount
    return client.post("/v1/webhooks/payments", json=body)


def test_health_endpoint(client: TestClient):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_metrics_endpoint(client: TestClient):
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "rentflow_transition_total" in response.text


def test_create_application_with_household(client: TestClient):
    response = client.post(
        "/v1/applications",
        json={
            "application_id": "app1",
            "household": {
                "household_id": "hh1",
                "members": [{"user_id": "alex", "role": "primary", "state": "active"}],
            },
        },
    )

    assert response.status_code == 201
    assert response.json() == {"application_id": "app1", "state": "draft", "display_label": "new"}
    assert "X-Request-ID" in response.headers


def test_create_application_twice(client: TestClient):
    client.post("/v1/applications", json={"application_id": "app1"})

    response = client.post("/v1/applications", json={"application_id": "app1"})

    assert response.status_code == 409


def test_household_with_two_primaries_rejected(client: TestClient):
    response = client.post(
        "/v1/applications",
        json={
            "application_id": "app1",
            "household": {
                "household_id": "hh1",
                "members": [
                    {"user_id": "alex", "role": "primary", "state": "active"},
                    {"user_id": "sam", "role": "primary", "state": "active"},
                ],
            },
        },
    )

    assert response.status_code == 400


def test_terms_open_payment_window(client: TestClient):
    _with_terms(client)

    status = client.get("/v1/applications/app1").json()
    assert status["state"] == "min_due"
    assert status["current_stage"] == 1
    assert status["stage1"]["remaining_total_cents"] == 150000

    charges = client.get("/v1/applications/app1/charges").json()["charges"]
    assert len(charges) == 14
    assert charges[0]["code"] == "last_month"


def test_terms_above_plan_rejected(client: TestClient):
    _approved(client)
    bad = dict(TERMS, signing={"upfront_threshold_cents": 500000, "deposit_threshold_cents": 0})

    response = client.post("/v1/applications/app1/terms", json=bad)

    assert response.status_code == 400


def test_full_payment_flow(client: TestClient, processor):
    _with_terms(client)

    quote = client.post("/v1/applications/app1/quote", json={"bucket": "upfront"}).json()
    assert quote["amount_cents"] == 100000
    assert quote["allowed_exact_amounts"] == [5000, 100000, 200000, 405000]

    started = client.post("/v1/applications/app1/payments", json={"bucket": "upfront", "amount_cents": 100000})
    assert started.status_code == 201
    intent_id = started.json()["intent_id"]
    assert processor.calls[0][2] == 100000

    pending = client.get("/v1/applications/app1").json()["pending_payments"]
    assert [p["payment_id"] for p in pending] == [intent_id]

    first = _webhook(client, intent_id, "succeeded", "upfront", 100000)
    assert first.status_code == 200
    assert first.json()["applied_cents"] == 100000
    assert first.json()["pieces"][0]["charge_key"] == "app1:upfront:last_month"

    # Redelivery
    replay = _webhook(client, intent_id, "succeeded", "upfront", 100000)
    assert replay.json() == first.json()

    _webhook(client, "pi_dep", "succeeded", "deposit", 50000)

    status = client.get("/v1/applications/app1").json()
    assert status["state"] == "min_paid"
    assert status["display_label"] == "countersign_ready"
    assert status["pending_payments"] == []

    charges = {c["charge_key"]: c for c in client.get("/v1/applications/app1/charges").json()["charges"]}
    assert charges["app1:upfront:last_month"]["posted_cents"] == 100000

    response = client.post("/v1/applications/app1/transitions", json={"event": "countersign"})
    assert response.json()["state"] == "countersigned"


def test_returned_payment_flags_application(client: TestClient):
    _with_terms(client)
    _webhook(client, "pi_up", "succeeded", "upfront", 100000)
    _webhook(client, "pi_dep", "succeeded", "deposit", 50000)

    response = _webhook(client, "pi_up", "returned")

    assert response.status_code == 200
    status = client.get("/v1/applications/app1").json()
    assert status["state"] == "min_paid"
    assert status["needs_attention"] is True

    response = client.post("/v1/applications/app1/transitions", json={"event": "countersign"})
    assert response.status_code == 409


def test_processing_then_failed(client: TestClient):
    _with_terms(client)

    _webhook(client, "pi_ach", "processing", "upfront", 100000)
    charges = {c["charge_key"]: c for c in client.get("/v1/applications/app1/charges").json()["charges"]}
    assert charges["app1:upfront:last_month"]["pending_cents"] == 100000

    _webhook(client, "pi_ach", "failed")
    charges = {c["charge_key"]: c for c in client.get("/v1/applications/app1/charges").json()["charges"]}
    assert charges["app1:upfront:last_month"]["pending_cents"] == 0


def test_quote_amount_not_allowed(client: TestClient):
    _with_terms(client)

    response = client.post(
        "/v1/applications/app1/quote",
        json={"bucket": "upfront", "proposed_amount_cents": 12345},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["allowed_exact_amounts"] == [5000, 100000, 200000, 405000]


def test_quote_invalid_bucket(client: TestClient):
    _with_terms(client)

    response = client.post("/v1/applications/app1/quote", json={"bucket": "escrow"})

    assert response.status_code == 400


def test_invalid_transition_is_generic(client: TestClient):
    client.post("/v1/applications", json={"application_id": "app1"})

    response = client.post("/v1/applications/app1/transitions", json={"event": "countersign"})

    assert response.status_code == 409
    assert response.json()["detail"] == "Transition not allowed in current state"


def test_unknown_event(client: TestClient):
    client.post("/v1/applications", json={"application_id": "app1"})

    response = client.post("/v1/applications/app1/transitions", json={"event": "teleport"})

    assert response.status_code == 400


def test_withdraw_requires_reason(client: TestClient):
    client.post("/v1/applications", json={"application_id": "app1"})

    missing = client.post("/v1/applications/app1/transitions", json={"event": "withdraw"})
    assert missing.status_code == 409

    ok = client.post("/v1/applications/app1/transitions", json={"event": "withdraw", "reason": "found another place"})
    assert ok.json()["state"] == "withdrawn"
    assert client.get("/v1/applications/app1").json()["closed_reason"] == "found another place"


def test_unknown_application(client: TestClient):
    response = client.get("/v1/applications/nope")
    assert response.status_code == 404


def test_webhook_requires_amount_for_success(client: TestClient):
    _with_terms(client)

    response = _webhook(client, "pi_1", "succeeded")

    assert response.status_code == 400


def test_processor_outage_returns_503(client: TestClient):
    _with_terms(client)

    class DownProcessor:
        async def create_payment_intent(self, *args, **kwargs):
            raise PaymentProcessorError("Processor unreachable after 3 attempts")

    client.app.dependency_overrides[get_processor_client] = lambda: DownProcessor()

    response = client.post("/v1/applications/app1/payments", json={"bucket": "upfront", "amount_cents": 100000})

    assert response.status_code == 503

"""Unit tests for the payment processor client"""

import json
import httpx
import pytest
from rentflow.domain.exceptions import PaymentProcessorError
from rentflow.domain.models import Bucket
from rentflow.infrastructure.clients.processor import ProcessorClient


def _client(handler, max_retries: int = 3) -> ProcessorClient:
    return ProcessorClient(
        base_url="http://processor.test",
        api_key="sk_test",
        max_retries=max_retries,
        backoff_base=0,
        transport=httpx.MockTransport(handler),
    )


async def test_create_intent_success():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "pi_123", "client_secret": "secret_abc", "status": "created"})

    intent = await _client(handler).create_payment_intent(
        100000, Bucket.UPFRONT, application_id="app1", idempotency_key="key-1"
    )

    assert intent.intent_id == "pi_123"
    assert intent.client_secret_or_redirect_url == "secret_abc"
    request = seen[0]
    assert request.url.path == "/payment_intents"
    assert request.headers["Idempotency-Key"] == "key-1"
    assert request.headers["Authorization"] == "Bearer sk_test"
    assert json.loads(request.content) == {"amount_cents": 100000, "bucket": "upfront", "application_id": "app1"}


async def test_redirect_url_accepted():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"id": "pi_9", "redirect_url": "https://pay.test/pi_9"})

    intent = await _client(handler).create_payment_intent(5000, Bucket.DEPOSIT, application_id="app1")

    assert intent.client_secret_or_redirect_url == "https://pay.test/pi_9"
    assert intent.status == "created"


async def test_retries_server_errors_with_same_idempotency_key():
    keys = []

    def handler(request: httpx.Request) -> httpx.Response:
        keys.append(request.headers["Idempotency-Key"])
        if len(keys) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"id": "pi_1", "client_secret": "s"})

    intent = await _client(handler).create_payment_intent(100, Bucket.UPFRONT, application_id="app1")

    assert intent.intent_id == "pi_1"
    assert len(keys) == 3
    assert len(set(keys)) == 1


async def test_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    with pytest.raises(PaymentProcessorError):
        await _client(handler, max_retries=2).create_payment_intent(100, Bucket.UPFRONT, application_id="app1")

    assert len(calls) == 2


async def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(402, json={"error": "card_declined"})

    with pytest.raises(PaymentProcessorError):
        await _client(handler).create_payment_intent(100, Bucket.UPFRONT, application_id="app1")

    assert len(calls) == 1


async def test_network_failure_raises_processor_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentProcessorError):
        await _client(handler, max_retries=2).create_payment_intent(100, Bucket.UPFRONT, application_id="app1")


async def test_malformed_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "created"})

    with pytest.raises(PaymentProcessorError):
        await _client(handler).create_payment_intent(100, Bucket.UPFRONT, application_id="app1")

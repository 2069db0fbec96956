"""Payment processor HTTP client with exponential backoff retry logic"""

import asyncio
import logging
import uuid
from typing import Optional

import httpx

from rentflow.config import settings
from rentflow.domain.exceptions import PaymentProcessorError
from rentflow.domain.models import Bucket
from rentflow.infrastructure.observability.metrics import processor_failure_counter, processor_latency_histogram
from rentflow.workflow.ports import PaymentIntent

logger = logging.getLogger(__name__)


class ProcessorClient:
    """Client for creating payment intents on the external processor"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url or settings.processor_api_base
        self.api_key = api_key if api_key is not None else settings.processor_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries or settings.processor_max_retries
        self.backoff_base = settings.processor_backoff_base if backoff_base is None else backoff_base
        self.transport = transport

    async def create_payment_intent(
        self,
        amount_cents: int,
        bucket: Bucket,
        *,
        application_id: str,
        idempotency_key: Optional[str] = None,
    ) -> PaymentIntent:
        """
        Create a payment intent for ``amount_cents`` into ``bucket``.

        Retry strategy:
        - Exponential backoff: base, 2x base, 4x base ...
        - Retries on 5xx errors and network failures, never on 4xx
        - The same Idempotency-Key is sent on every attempt

        Raises:
            PaymentProcessorError: On rejection, exhausted retries, or an
                unreadable response
        """
        bucket = Bucket.parse(bucket)
        headers = {"Idempotency-Key": idempotency_key or str(uuid.uuid4())}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            "amount_cents": amount_cents,
            "bucket": bucket.value,
            "application_id": application_id,
        }

        attempt = 0
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with processor_latency_histogram.time():
                        response = await client.post("/payment_intents", json=payload, headers=headers)
                        response.raise_for_status()
                    return self._parse_intent(response.json())

                except httpx.HTTPStatusError as e:
                    processor_failure_counter.inc()
                    status = e.response.status_code
                    if status < 500:
                        raise PaymentProcessorError(f"Processor rejected intent: {status}") from e
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise PaymentProcessorError(f"Processor error after {attempt} attempts: {status}") from e

                except httpx.RequestError as e:
                    processor_failure_counter.inc()
                    attempt += 1
                    if attempt >= self.max_retries:
                        raise PaymentProcessorError(f"Processor unreachable after {attempt} attempts") from e

                backoff = self.backoff_base * (2 ** (attempt - 1))
                logger.warning(
                    "Retrying payment processor call",
                    extra={"application_id": application_id, "attempt": attempt, "backoff_seconds": backoff},
                )
                await asyncio.sleep(backoff)

    @staticmethod
    def _parse_intent(data: dict) -> PaymentIntent:
        try:
            return PaymentIntent(
                intent_id=data["id"],
                client_secret_or_redirect_url=data.get("client_secret") or data["redirect_url"],
                status=data.get("status", "created"),
            )
        except (KeyError, TypeError) as e:
            raise PaymentProcessorError(f"Invalid intent data from processor: {e}") from e

"""Prometheus metrics for payments, workflow transitions, and processor performance"""

from prometheus_client import Counter, Histogram

# Payment metrics
payment_counter = Counter(
    "rentflow_payment_total",
    "Payment notifications applied",
    ["bucket", "outcome"],  # outcome: processing | succeeded | failed | canceled | returned
)

payment_amount_histogram = Histogram(
    "rentflow_payment_amount_cents",
    "Succeeded payment amounts",
    ["bucket"],
    buckets=[10_000, 50_000, 100_000, 250_000, 500_000, 1_000_000],
)

duplicate_payment_counter = Counter(
    "rentflow_duplicate_payment_total",
    "Replayed payment notifications ignored",
)

unapplied_cents_counter = Counter(
    "rentflow_unapplied_cents_total",
    "Cents received that no charge could absorb",
    ["bucket"],
)

# Workflow metrics
transition_counter = Counter(
    "rentflow_transition_total",
    "Application state transitions",
    ["event", "to_state"],
)

reconciliation_counter = Counter(
    "rentflow_reconciliation_needed_total",
    "Applications flagged after a returned payment",
)

ledger_corruption_counter = Counter(
    "rentflow_ledger_corruption_total",
    "Ledgers loaded with a broken invariant",
)

# Processor metrics
processor_latency_histogram = Histogram(
    "processor_latency_seconds",
    "Payment processor response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

processor_failure_counter = Counter(
    "processor_failures_total",
    "Failed payment processor calls",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_payment(bucket: str, outcome: str, amount_cents: int = 0, unapplied_cents: int = 0) -> None:
    """Record a payment outcome and, on success, its size and any unapplied remainder"""
    payment_counter.labels(bucket=bucket, outcome=outcome).inc()
    if outcome == "succeeded":
        payment_amount_histogram.labels(bucket=bucket).observe(amount_cents)
    if unapplied_cents > 0:
        unapplied_cents_counter.labels(bucket=bucket).inc(unapplied_cents)


def record_transition(event: str, to_state: str) -> None:
    transition_counter.labels(event=event, to_state=to_state).inc()

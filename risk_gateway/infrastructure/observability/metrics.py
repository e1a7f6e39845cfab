"""Prometheus metrics for monitoring decision mix, provider health and fail-open events"""

from prometheus_client import Counter, Histogram

from risk_gateway.domain.models import FinalDecision

# Decision metrics
decision_counter = Counter(
    "risk_decision_total",
    "Total risk decisions made",
    ["decision"],  # ALLOW | REVIEW | BLOCK
)

short_circuit_counter = Counter(
    "risk_short_circuit_total",
    "Decisions returned without querying the provider",
)

# Provider metrics
provider_latency_histogram = Histogram(
    "risk_provider_latency_seconds",
    "Risk provider response time",
    ["path"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

provider_failure_counter = Counter(
    "risk_provider_failures_total",
    "Provider calls that fell back to the fail-open verdict",
    ["reason"],  # timeout | error
)

# Limits store metrics
limits_store_failure_counter = Counter(
    "risk_limits_store_failures_total",
    "Limits store failures that were failed open",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_decision(final: FinalDecision) -> None:
    """Record decision metrics for monitoring the allow/review/block mix"""
    decision_counter.labels(decision=final.decision.value).inc()
    if final.short_circuited:
        short_circuit_counter.inc()


def record_provider_failure(reason: str) -> None:
    provider_failure_counter.labels(reason=reason).inc()


def record_limits_store_failure(error: Exception) -> None:
    limits_store_failure_counter.inc()

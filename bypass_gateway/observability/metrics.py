"""Prometheus metrics for the gateway."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

gateway_requests_total = Counter(
    "bypass_gateway_requests_total",
    "Inbound requests by endpoint, route, and response status",
    ["endpoint", "route", "status"],
)
gateway_failures_total = Counter(
    "bypass_gateway_failures_total",
    "Requests answered with an error, by error type",
    ["endpoint", "route", "error"],
)
gateway_latency_ms = Histogram(
    "bypass_gateway_latency_ms",
    "Time until the response (or the stream) starts, in milliseconds",
    ["endpoint", "route"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000),
)
gateway_stream_envelopes_total = Counter(
    "bypass_gateway_stream_envelopes_total",
    "Envelopes written to streaming callers",
    ["route"],
)

__all__ = [
    "gateway_failures_total",
    "gateway_latency_ms",
    "gateway_requests_total",
    "gateway_stream_envelopes_total",
]

"""Prometheus metrics for Bankly calls.

This module does NOT start an HTTP server. Expose the default registry from
the host application, e.g. ``prometheus_client.start_http_server``.
"""
from __future__ import annotations

from typing import Any, Dict, Tuple, Type

from prometheus_client import Counter, Gauge, Histogram

__all__ = [
    "get_metric",
    "http_requests_total",
    "http_latency_seconds",
    "tokens_issued_total",
    "token_errors_total",
    "token_expiry_seconds",
]

# Registration helper (avoid duplicate collectors on module reload)
_METRICS: Dict[Tuple[Type[Any], str], Any] = {}


def get_metric(cls: Type[Any], name: str, *args, **kwargs):
    key = (cls, name)
    if key in _METRICS:
        return _METRICS[key]
    metric = cls(name, *args, **kwargs)
    _METRICS[key] = metric
    return metric


http_requests_total = get_metric(
    Counter,
    "bankly_http_requests_total",
    "HTTP requests sent to Bankly",
    ["method", "status"],
)

http_latency_seconds = get_metric(
    Histogram,
    "bankly_http_latency_seconds",
    "Latency of Bankly HTTP requests in seconds",
    ["method"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5, 10),
)

tokens_issued_total = get_metric(
    Counter,
    "bankly_oauth_tokens_issued_total",
    "Access tokens obtained through the client-credentials exchange",
)

token_errors_total = get_metric(
    Counter,
    "bankly_oauth_token_errors_total",
    "Failed client-credentials exchanges",
    ["reason"],
)

token_expiry_seconds = get_metric(
    Gauge,
    "bankly_oauth_token_expiry_seconds",
    "Seconds until the cached access token expires, at issue time",
)

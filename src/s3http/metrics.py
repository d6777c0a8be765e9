"""Prometheus metrics definitions for s3http.

All metrics use the ``s3http_`` prefix. They live in the global
``prometheus_client`` registry, so they are created at most once per
process by ``init_metrics()``; until then the module-level references stay
``None`` and the ``record_*`` helpers do nothing.
"""

from __future__ import annotations

import threading

from prometheus_client import Counter

_initialized: bool = False
_init_lock = threading.Lock()

# ---------------------------------------------------------------------------
# Request counter  (labels: verb, outcome)
# ---------------------------------------------------------------------------
requests_total: Counter | None = None

# ---------------------------------------------------------------------------
# Retry counter  (labels: verb)
# ---------------------------------------------------------------------------
retries_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_sent_total: Counter | None = None
bytes_received_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Safe to call repeatedly and from several threads; only the first call
    registers collectors.
    """
    global _initialized
    global requests_total, retries_total, bytes_sent_total, bytes_received_total

    with _init_lock:
        if _initialized:
            return

        requests_total = Counter(
            "s3http_requests_total",
            "Total HTTP requests issued by verb and outcome",
            ["verb", "outcome"],
        )

        retries_total = Counter(
            "s3http_retries_total",
            "Total request attempts that were retried",
            ["verb"],
        )

        bytes_sent_total = Counter(
            "s3http_bytes_sent_total",
            "Total bytes sent in request bodies",
        )

        bytes_received_total = Counter(
            "s3http_bytes_received_total",
            "Total bytes received in response bodies",
        )

        _initialized = True


def record_attempt(verb: str, outcome: str, sent: int, received: int) -> None:
    """Account for one request attempt."""
    if requests_total is None:
        return
    requests_total.labels(verb=verb, outcome=outcome).inc()
    bytes_sent_total.inc(sent)
    bytes_received_total.inc(received)


def record_retry(verb: str) -> None:
    if retries_total is None:
        return
    retries_total.labels(verb=verb).inc()

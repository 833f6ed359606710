"""Prometheus metrics for sshca."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Generator

from prometheus_client import Counter, Histogram, Info, generate_latest, start_http_server

from sshca import __version__

# -----------------------------------------------------------------------------
# Application Info
# -----------------------------------------------------------------------------

APP_INFO = Info(
    "sshca",
    "SSH CA information",
)
APP_INFO.info({
    "version": __version__,
})

# -----------------------------------------------------------------------------
# Signing Metrics
# -----------------------------------------------------------------------------

SIGN_REQUESTS = Counter(
    "sshca_sign_requests_total",
    "Total signing requests by outcome",
    ["cert_type", "outcome"],
)

SIGNING_DURATION = Histogram(
    "sshca_signing_duration_seconds",
    "Time spent in ssh-keygen, including the wait for the signing lock",
    ["cert_type"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

RPC_CALLS = Counter(
    "sshca_rpc_calls_total",
    "Total remote calls handled by the server",
    ["method", "status"],
)

# -----------------------------------------------------------------------------
# sshd Configuration Metrics
# -----------------------------------------------------------------------------

SSHD_COMMITS = Counter(
    "sshca_sshd_commits_total",
    "sshd_config transactions by outcome",
    ["outcome"],
)

# -----------------------------------------------------------------------------
# Helper Functions
# -----------------------------------------------------------------------------


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose metrics over HTTP on a background thread."""
    start_http_server(port, addr=addr)


@contextmanager
def track_signing_duration(cert_type: str) -> Generator[None, None, None]:
    """Context manager to track certificate signing duration."""
    start_time = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start_time
        SIGNING_DURATION.labels(cert_type=cert_type).observe(duration)


def record_sign_request(cert_type: str, outcome: str) -> None:
    """Record a signing request (signed, failed, aborted)."""
    SIGN_REQUESTS.labels(cert_type=cert_type, outcome=outcome).inc()


def record_rpc_call(method: str, success: bool) -> None:
    """Record a dispatched remote call."""
    status = "ok" if success else "error"
    RPC_CALLS.labels(method=method, status=status).inc()


def record_sshd_commit(outcome: str) -> None:
    """Record an sshd_config transaction (unchanged, committed, rolled_back, failed)."""
    SSHD_COMMITS.labels(outcome=outcome).inc()

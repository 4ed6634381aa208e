from __future__ import annotations

"""
Prometheus metrics for the Quantum Privacy Compute (QPC) job service.

We expose counters and histograms covering:
- submissions and executions by algorithm
- resource units consumed per executed job
- decryption requests and oracle callbacks by result
- lazy timeouts by stage, refunds issued by reason, refund claims by result
- security alerts (callback correlation mismatches)
- privacy transforms by operation
- per-operation latency

This module can be mounted into any ASGI app or FastAPI app via the helpers
at the bottom.
"""


import time
from contextlib import contextmanager
from typing import Iterator, Optional

from prometheus_client import (CONTENT_TYPE_LATEST, CollectorRegistry, Counter,
                               Histogram, generate_latest)

# Use a dedicated registry so embedding apps can choose to merge or expose it directly.
REGISTRY = CollectorRegistry()

# ────────────────────────────────────────────────────────────────────────────────
# Label conventions
#   algorithm: "shor" | "grover" | "vqe" | "qaoa" | "quantum_ml" | "custom_circuit"
#   result:    "issued" | "superseded" | "expired" | "completed" | "rejected" | "timed_out"
#   stage:     "execute" | "request" | "callback" | "manual"
#   reason:    "execute_timeout" | "request_timeout" | "callback_timeout" | "manual"
# ────────────────────────────────────────────────────────────────────────────────

JOBS_SUBMITTED = Counter(
    "qpc_jobs_submitted_total",
    "Total jobs submitted by algorithm.",
    labelnames=("algorithm",),
    registry=REGISTRY,
)

JOBS_EXECUTED = Counter(
    "qpc_jobs_executed_total",
    "Total jobs executed by an authorized worker, by algorithm.",
    labelnames=("algorithm",),
    registry=REGISTRY,
)

JOB_RESOURCE_UNITS = Histogram(
    "qpc_job_resource_units",
    "Resource units consumed by an executed job, by algorithm.",
    labelnames=("algorithm",),
    buckets=(1, 2, 4, 8, 16, 32, 64, 128, 256, 512, 1024, 4096),
    registry=REGISTRY,
)

DECRYPT_REQUESTS = Counter(
    "qpc_decrypt_requests_total",
    "Decryption requests by result.",
    labelnames=("result",),
    registry=REGISTRY,
)

ORACLE_CALLBACKS = Counter(
    "qpc_oracle_callbacks_total",
    "Oracle callbacks by result.",
    labelnames=("result",),
    registry=REGISTRY,
)

TIMEOUTS = Counter(
    "qpc_timeouts_total",
    "Lazy timeouts detected, by lifecycle stage.",
    labelnames=("stage",),
    registry=REGISTRY,
)

REFUNDS_ISSUED = Counter(
    "qpc_refunds_issued_total",
    "Refunds credited to depositors, by reason.",
    labelnames=("reason",),
    registry=REGISTRY,
)

REFUND_CLAIMS = Counter(
    "qpc_refund_claims_total",
    "Refund withdrawals by result.",
    labelnames=("result",),  # result: "paid" | "failed"
    registry=REGISTRY,
)

SECURITY_ALERTS = Counter(
    "qpc_security_alerts_total",
    "Security alerts raised by kind.",
    labelnames=("kind",),
    registry=REGISTRY,
)

PRIVACY_OPS = Counter(
    "qpc_privacy_ops_total",
    "Privacy transform invocations by operation.",
    labelnames=("op",),
    registry=REGISTRY,
)

_LATENCY_BUCKETS = (
    0.0005,
    0.001,
    0.0025,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
)

OP_SECONDS = Histogram(
    "qpc_op_seconds",
    "Wall time spent inside a public operation, by operation name.",
    labelnames=("op",),
    buckets=_LATENCY_BUCKETS,
    registry=REGISTRY,
)

# ────────────────────────────────────────────────────────────────────────────────
# Recording helpers
# ────────────────────────────────────────────────────────────────────────────────


def record_submit(algorithm: str) -> None:
    JOBS_SUBMITTED.labels(algorithm=algorithm).inc()


def record_execute(algorithm: str, resource_units: int) -> None:
    """Count an execution and observe its resource usage."""
    JOBS_EXECUTED.labels(algorithm=algorithm).inc()
    if resource_units > 0:
        JOB_RESOURCE_UNITS.labels(algorithm=algorithm).observe(float(resource_units))


def record_decrypt_request(result: str) -> None:
    DECRYPT_REQUESTS.labels(result=result).inc()


def record_callback(result: str) -> None:
    ORACLE_CALLBACKS.labels(result=result).inc()


def record_timeout(stage: str) -> None:
    TIMEOUTS.labels(stage=stage).inc()


def record_refund(reason: str) -> None:
    REFUNDS_ISSUED.labels(reason=reason).inc()


def record_claim(result: str) -> None:
    REFUND_CLAIMS.labels(result=result).inc()


def record_security_alert(kind: str) -> None:
    SECURITY_ALERTS.labels(kind=kind).inc()


def record_privacy_op(op: str) -> None:
    PRIVACY_OPS.labels(op=op).inc()


@contextmanager
def timed(op: str) -> Iterator[None]:
    """Context manager to observe wall time of a named operation."""
    start = time.perf_counter()
    try:
        yield
    finally:
        OP_SECONDS.labels(op=op).observe(time.perf_counter() - start)


# ────────────────────────────────────────────────────────────────────────────────
# Exposition
# ────────────────────────────────────────────────────────────────────────────────


def render_prometheus(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Serialize the registry in the Prometheus text format."""
    return generate_latest(registry or REGISTRY)


def make_prometheus_asgi_app(registry: Optional[CollectorRegistry] = None):
    """
    Return a minimal ASGI app that serves Prometheus metrics at '/'.
    No external web framework required.
    """
    reg = registry or REGISTRY

    async def app(scope, receive, send):  # type: ignore[override]
        path = scope.get("path") or "/"
        root = scope.get("root_path") or ""
        if root and path.startswith(root):
            path = path[len(root):]
        if scope["type"] != "http" or path not in ("", "/"):
            await send({"type": "http.response.start", "status": 404, "headers": []})
            await send({"type": "http.response.body", "body": b"Not Found"})
            return
        headers = [
            (b"content-type", CONTENT_TYPE_LATEST.encode("ascii")),
            (b"cache-control", b"no-cache, no-store, must-revalidate"),
        ]
        await send({"type": "http.response.start", "status": 200, "headers": headers})
        await send({"type": "http.response.body", "body": render_prometheus(reg)})

    return app


metrics_app = make_prometheus_asgi_app()


__all__ = [
    "REGISTRY",
    "JOBS_SUBMITTED",
    "JOBS_EXECUTED",
    "JOB_RESOURCE_UNITS",
    "DECRYPT_REQUESTS",
    "ORACLE_CALLBACKS",
    "TIMEOUTS",
    "REFUNDS_ISSUED",
    "REFUND_CLAIMS",
    "SECURITY_ALERTS",
    "PRIVACY_OPS",
    "OP_SECONDS",
    "record_submit",
    "record_execute",
    "record_decrypt_request",
    "record_callback",
    "record_timeout",
    "record_refund",
    "record_claim",
    "record_security_alert",
    "record_privacy_op",
    "timed",
    "render_prometheus",
    "make_prometheus_asgi_app",
    "metrics_app",
]

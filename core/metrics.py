"""
Prometheus metrics instrumentation for the billing gateway service.

This module sets up FastAPI instrumentation to expose metrics in Prometheus format
at the /metrics endpoint with optional authentication, plus the gateway-level
counters incremented by the payment gateways themselves.
"""

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Counter, Histogram
from fastapi import Request, status
from fastapi.responses import JSONResponse
import os

# Gateway protocol metrics
payment_attempts = Counter(
    "billing_gateway_payment_attempts_total",
    "Total number of gateway operations started",
    ["provider", "operation"],  # operation is pay or verify
)

payment_success = Counter(
    "billing_gateway_payment_success_total",
    "Total number of gateway operations that completed",
    ["provider", "operation"],
)

payment_failure = Counter(
    "billing_gateway_payment_failure_total",
    "Total number of gateway operations that raised",
    ["provider", "operation", "error"],
)

psp_latency = Histogram(
    "billing_gateway_psp_latency_seconds",
    "Time taken by a single PSP HTTP call",
    ["provider", "operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
    )

    # Expose metrics endpoint
    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def add_metrics_auth_middleware(app):
    """
    Add middleware to protect the /metrics endpoint in production.
    For production use, set METRICS_AUTH_TOKEN environment variable.
    """

    @app.middleware("http")
    async def metrics_auth_middleware(request: Request, call_next):
        # Only protect metrics endpoint
        if request.url.path == "/metrics":
            if os.getenv("ENVIRONMENT", "development") != "production":
                return await call_next(request)

            auth_header = request.headers.get("X-Metrics-Auth")
            expected_token = os.getenv("METRICS_AUTH_TOKEN")

            if expected_token and auth_header == expected_token:
                return await call_next(request)

            # Allow internal network access (VPN/private networks)
            client_ip = request.client.host if request.client else None
            if client_ip and (
                client_ip.startswith("10.")
                or client_ip.startswith("192.168.")
                or client_ip.startswith("172.")
            ):
                return await call_next(request)

            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Metrics endpoint access denied"},
            )

        return await call_next(request)

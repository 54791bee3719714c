"""
Billing Gateways - Main Application Entry Point

This module initializes the FastAPI application that hosts the payment
gateways. Billing records are created here and driven through the two-phase
gateway protocol: pay (authorize) and verify (capture).
"""

import structlog
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import routes
from api.middleware import log_api_entry
from core.audit import AuditMiddleware
from core.dependencies import clear_settings, get_settings, init_settings
from core.logging import configure_logging
from core.metrics import add_metrics_auth_middleware, init_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.session import init_db
from payments.registry import default_registry

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    # Startup
    init_settings()
    settings = get_settings()

    init_tracer(settings.OTEL_SERVICE_NAME, settings.OTEL_EXPORTER_OTLP_ENDPOINT)
    init_db(settings)

    log.info(
        "app.started",
        environment=settings.ENVIRONMENT,
        gateways=default_registry.names(),
        paypal_sandbox=settings.PAYPAL_SANDBOX,
    )
    yield
    # Shutdown
    clear_settings()


app = FastAPI(
    title="Billing Gateways",
    description="""
    ## Two-phase payment gateway service

    Billing records are authorized and captured through pluggable gateways.

    ### Flow:
    1. `POST /api/v1/billings` - create a billing record
    2. `POST /api/v1/billings/{identifier}/pay` - create the PSP order (authorize)
    3. `POST /api/v1/billings/{identifier}/verify` - capture the order
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Initialize FastAPI instrumentation
FastAPIInstrumentor.instrument_app(app)

# Initialize Prometheus metrics
init_metrics(app)

# Add metrics authentication middleware (for production)
add_metrics_auth_middleware(app)

# Add logging middleware first
app.middleware("http")(log_api_entry)

# Add audit middleware
app.add_middleware(AuditMiddleware)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/")
async def root():
    return {
        "name": "Billing Gateways",
        "version": "1.0.0",
        "gateways": default_registry.names(),
        "endpoints": {
            "billings": "/api/v1/billings",
            "gateways": "/api/v1/gateways",
            "health": "/healthz",
            "metrics": "/metrics",
        },
    }


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(settings)


@app.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint to verify API status."""
    db_type = (
        "PostgreSQL" if settings.DATABASE_URL.startswith("postgresql") else "SQLite"
    )
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "database": db_type,
        "environment": settings.ENVIRONMENT,
        "paypal_endpoint": (
            "sandbox" if settings.PAYPAL_SANDBOX else "live"
        ),
    }


# Include routers under a single versioned prefix
API_PREFIX = "/api/v1"

app.include_router(routes.router, prefix=API_PREFIX)


def main():
    import uvicorn

    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()

import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

log = structlog.get_logger(__name__)


def init_tracer(service_name: str = "billing-gateways", endpoint: str | None = None):
    """Initialize OpenTelemetry tracer; PSP calls are recorded as paypal.* spans."""
    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    if os.getenv("DISABLE_TRACING", "").lower() in {"1", "true", "yes"}:
        # Tracing off: keep the provider so spans are still created, drop the export
        log.debug("tracing.disabled", service=service_name)
        trace.set_tracer_provider(provider)
        return provider

    try:
        exporter = OTLPSpanExporter(endpoint=endpoint) if endpoint else OTLPSpanExporter()
    except Exception as exc:  # pragma: no cover – only hit when the collector is absent
        log.warning("OTLP exporter unavailable, tracing to console", error=str(exc))
        exporter = ConsoleSpanExporter()

    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    return provider

"""
Logging, tracing and HTTP metrics for the back-office service apps.

Business counters live in ``metrics.py``; this module wires the ambient
instrumentation every mounted service app gets.
"""
import os
import logging
import structlog
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# OpenTelemetry
from opentelemetry import trace
from opentelemetry.sdk.resources import Resource, SERVICE_NAME
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Probes and scrapes are noise in both traces and request metrics
UNOBSERVED_PATHS = ["/health", "/metrics"]


def add_otel_ids(logger, log_method, event_dict):
    """Attach the active trace/span ids so log lines join up with traces."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = trace.format_trace_id(ctx.trace_id)
        event_dict["span_id"] = trace.format_span_id(ctx.span_id)
    return event_dict


def configure_logging(service_name: str):
    level = getattr(logging, LOG_LEVEL, logging.INFO)

    # SQLAlchemy and uvicorn log through stdlib logging
    logging.basicConfig(format="%(message)s", level=level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_otel_ids,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


def configure_tracing(app: FastAPI, service_name: str):
    if os.getenv("OTEL_ENABLED", "false").lower() != "true":
        return

    # Mounted sub-apps share one provider; only the first call installs it
    provider = trace.get_tracer_provider()
    if not isinstance(provider, TracerProvider):
        ratio = float(os.getenv("OTEL_SAMPLE_RATIO", "1.0"))
        provider = TracerProvider(
            resource=Resource.create({SERVICE_NAME: service_name}),
            sampler=ParentBased(TraceIdRatioBased(ratio)),
        )
        otlp_endpoint = os.getenv("OTLP_ENDPOINT", "http://localhost:4317")
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)))
        trace.set_tracer_provider(provider)

        # Search sync and notification calls go out through httpx
        HTTPXClientInstrumentor().instrument()

    FastAPIInstrumentor.instrument_app(app, excluded_urls=",".join(p.lstrip("/") for p in UNOBSERVED_PATHS))


def configure_metrics(app: FastAPI):
    Instrumentator(excluded_handlers=UNOBSERVED_PATHS).instrument(app).expose(app, include_in_schema=False)


def setup_observability(app: FastAPI, service_name: str):
    """Bootstrap logging, tracing and request metrics for one service app."""
    configure_logging(service_name)
    configure_tracing(app, service_name)
    configure_metrics(app)

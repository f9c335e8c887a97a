# telemetry.py — OpenTelemetry tracing for the Pulse CRM API
"""
Traces inbound requests, store queries and outbound email calls.

Spans go to an OTLP collector when OTEL_EXPORTER_OTLP_ENDPOINT is configured.
Without an endpoint, or without the `telemetry` extra installed, the API runs
untraced.
"""
import logging
from typing import Optional

from config import Settings

logger = logging.getLogger("pulse-crm.telemetry")

SERVICE_NAME = "pulse-crm-api"
SERVICE_VERSION = "1.0.0"


def setup_telemetry(app=None, settings: Optional[Settings] = None, engine=None):
    """Install a tracer provider and instrument FastAPI, SQLAlchemy and HTTPX.

    Returns the provider, or None when tracing stays off.
    """
    settings = settings or Settings()
    if not settings.otel_endpoint:
        logger.info("Tracing disabled (OTEL_EXPORTER_OTLP_ENDPOINT not set)")
        return None

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
        from opentelemetry.sdk.resources import Resource, SERVICE_NAME as RES_SVC_NAME
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
    except ImportError:
        logger.warning("OTEL endpoint set but the telemetry extra is not installed; tracing disabled")
        return None

    resource = Resource.create({
        RES_SVC_NAME: SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "deployment.environment": settings.environment,
    })
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_endpoint, insecure=True))
    )
    trace.set_tracer_provider(provider)

    if app is not None:
        FastAPIInstrumentor.instrument_app(app, excluded_urls="health", tracer_provider=provider)
    if engine is not None:
        # Async engines are traced through their sync core
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine, tracer_provider=provider)
    HTTPXClientInstrumentor().instrument(tracer_provider=provider)

    logger.info(f"Tracing enabled → {settings.otel_endpoint}")
    return provider

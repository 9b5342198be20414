"""OpenTelemetry tracing for aggregation runs and completion requests."""

from __future__ import annotations

import os

import structlog
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from . import __version__
from .config import TracingSettings

logger = structlog.get_logger(__name__)

_provider: TracerProvider | None = None


def setup_tracing(settings: TracingSettings) -> bool:
    """Install the OTLP span exporter once per process.

    Spans are emitted by ``HealthAggregator.collect`` and
    ``CompletionClient.complete`` whether or not an exporter is installed.

    Returns:
        True if an exporter is installed, False otherwise.
    """
    global _provider

    if not settings.enabled:
        logger.debug("tracing_disabled")
        return False

    exporter_name = os.getenv("OTEL_TRACES_EXPORTER", "otlp").lower()
    if exporter_name in {"none", ""}:
        logger.info("tracing_exporter_disabled")
        return False

    if _provider is not None:
        return True

    resource = Resource.create(
        {SERVICE_NAME: settings.service_name, SERVICE_VERSION: __version__}
    )
    _provider = TracerProvider(resource=resource)
    _provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(_provider)
    logger.info(
        "tracing_configured",
        exporter=exporter_name,
        service_name=settings.service_name,
        service_version=__version__,
    )
    return True

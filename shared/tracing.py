"""OpenTelemetry tracing for entitlements engine services."""

from contextlib import contextmanager
from typing import Any, Dict, Optional
import os

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.asyncpg import AsyncPGInstrumentor
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

from shared.logging import get_logger

logger = get_logger("shared.tracing")


def _build_otlp_exporter_kwargs(endpoint: Optional[str] = None) -> Dict[str, Any]:
    endpoint = (
        endpoint
        or os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT")
        or os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        or "http://otel-collector:4317"
    )
    headers: Dict[str, str] = {}
    for segment in os.getenv("OTEL_EXPORTER_OTLP_HEADERS", "").split(","):
        key, sep, value = segment.partition("=")
        if sep and key.strip():
            headers[key.strip()] = value.strip()

    exporter_kwargs: Dict[str, Any] = {"endpoint": endpoint, "insecure": endpoint.startswith("http://")}
    if headers:
        exporter_kwargs["headers"] = headers
    return exporter_kwargs


def configure_tracing(service_name: str, app: FastAPI, env: str = "local",
                      otel_exporter: Optional[str] = None, enable_console: bool = False) -> TracerProvider:
    """Install a tracer provider and instrument the app, Redis and asyncpg."""
    resource = Resource.create({
        "service.name": service_name,
        "service.version": "1.0.0",
        "service.namespace": "entitlements-engine",
        "service.instance.id": os.getenv("HOSTNAME", "unknown"),
        "deployment.environment": env,
    })

    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**_build_otlp_exporter_kwargs(otel_exporter))))
    if enable_console:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)

    FastAPIInstrumentor.instrument_app(app, tracer_provider=provider, excluded_urls="health,metrics")
    RedisInstrumentor().instrument(tracer_provider=provider)
    AsyncPGInstrumentor().instrument(tracer_provider=provider)

    logger.info("Tracing configured", service=service_name, console=enable_console)
    return provider


def get_tracer(name: str):
    return trace.get_tracer(name)


@contextmanager
def trace_operation(operation_name: str, **attributes):
    """Run the body inside a span; exceptions mark the span as failed."""
    tracer = get_tracer("entitlements")
    with tracer.start_as_current_span(operation_name) as span:
        for key, value in attributes.items():
            span.set_attribute(key, value)

        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.set_attribute("error", True)
            span.set_attribute("error.message", str(exc))
            raise

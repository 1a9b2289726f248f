from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from sqlalchemy.ext.asyncio import AsyncEngine

from outbox.core.config import settings


_provider_installed = False


def get_tracer() -> trace.Tracer:
    # Resolved per call so spans follow whichever provider was installed last.
    return trace.get_tracer("outbox")


def _install_provider() -> None:
    global _provider_installed
    if _provider_installed:
        return
    resource = Resource.create({"service.name": settings.service_name, "deployment.environment": settings.env})
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{settings.otlp_endpoint}/v1/traces"))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    _provider_installed = True


def setup_telemetry(engine: AsyncEngine | None = None, app=None) -> bool:
    if not settings.otlp_endpoint:
        return False

    _install_provider()
    if app is not None:
        FastAPIInstrumentor.instrument_app(app)
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    return True

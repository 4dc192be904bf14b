"""OpenTelemetry export for traces, metrics and logs.

Everything here is a no-op unless OTEL_EXPORTER_OTLP_ENDPOINT is set. The
webhook path opens its own spans through `tracer`, which falls back to the
API's no-op tracer when no provider has been installed.
"""
import logging

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from paygate.core.config import settings

logger = logging.getLogger(__name__)

tracer = trace.get_tracer("paygate")

# Probes and scrapes would drown out the payment traffic
EXCLUDED_URLS = "healthz,health,metrics"


def _service_resource() -> Resource:
    return Resource.create({
        "service.name": settings.OTEL_SERVICE_NAME,
        "service.version": "1.0.0",
        "deployment.environment": settings.OTEL_ENVIRONMENT,
        "payment.provider": "paystack",
    })


def _collector_kwargs() -> dict:
    return {"endpoint": settings.OTEL_EXPORTER_OTLP_ENDPOINT, "insecure": True}


def _tracer_provider(resource: Resource) -> TracerProvider:
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**_collector_kwargs())))
    return provider


def _meter_provider(resource: Resource) -> MeterProvider:
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(**_collector_kwargs()),
        export_interval_millis=15000,
    )
    return MeterProvider(resource=resource, metric_readers=[reader])


def initialize_otel() -> bool:
    """Install trace and metric providers. Returns False when export is disabled or fails."""
    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        return False

    try:
        resource = _service_resource()
        trace.set_tracer_provider(_tracer_provider(resource))
        metrics.set_meter_provider(_meter_provider(resource))
        return True
    except Exception as e:
        logger.warning(f"Failed to initialize OpenTelemetry: {e}")
        return False


def setup_otel_logging() -> bool:
    """Forward stdlib log records (webhook and security loggers included) to the collector"""
    if not settings.OTEL_EXPORTER_OTLP_ENDPOINT:
        return False

    try:
        from opentelemetry._logs import set_logger_provider
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
        from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
        from opentelemetry.sdk._logs.export import BatchLogRecordProcessor

        provider = LoggerProvider(resource=_service_resource())
        provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(**_collector_kwargs())))
        set_logger_provider(provider)

        logging.getLogger().addHandler(LoggingHandler(level=logging.INFO, logger_provider=provider))
        return True
    except Exception as e:
        logger.warning(f"Failed to setup OTEL logging: {e}")
        return False


def instrument_app(app, engine):
    """Instrument inbound routes, Paystack/OpenAI HTTP calls and database queries"""
    try:
        FastAPIInstrumentor.instrument_app(app, excluded_urls=EXCLUDED_URLS)
        HTTPXClientInstrumentor().instrument()
        SQLAlchemyInstrumentor().instrument(engine=engine)
        logger.info("OpenTelemetry instrumentation enabled")
    except Exception as e:
        logger.warning(f"Failed to instrument application: {e}")

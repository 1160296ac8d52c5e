import logging
import os

from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.botocore import BotocoreInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import format_span_id, format_trace_id, get_current_span

_providers: list = []
_configured = False


def _otlp_endpoint() -> str | None:
    return os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")


def _log_hook(span, log_record):
    span = span or get_current_span()
    context = span.get_span_context() if span else None
    if context and context.is_valid:
        log_record.trace_id = format_trace_id(context.trace_id)
        log_record.span_id = format_span_id(context.span_id)


def configure_telemetry(log_level: str = "INFO") -> None:
    """Set up logging, plus OTLP export when a collector endpoint is configured.

    Warm Lambda containers reuse the process, so this only runs once.
    """
    global _configured
    logging.basicConfig(level=log_level)
    logging.getLogger().setLevel(log_level)
    if _configured:
        return
    _configured = True

    endpoint = _otlp_endpoint()
    if not endpoint:
        return

    service_name = os.getenv("OTEL_SERVICE_NAME", "library-handlers")
    resource = Resource.create({"service.name": service_name})

    tracer_provider = TracerProvider(resource=resource)
    tracer_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces")))
    trace.set_tracer_provider(tracer_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics"),
        export_interval_millis=15000,
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)

    logger_provider = LoggerProvider(resource=resource)
    logger_provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter(endpoint=f"{endpoint}/v1/logs")))
    set_logger_provider(logger_provider)

    LoggingInstrumentor().instrument(set_logging_format=True, log_hook=_log_hook)
    BotocoreInstrumentor().instrument()
    HTTPXClientInstrumentor().instrument()

    logging.getLogger().addHandler(LoggingHandler(level=logging.INFO, logger_provider=logger_provider))
    _providers.extend([tracer_provider, meter_provider, logger_provider])


def flush_telemetry() -> None:
    # the runtime freezes the process after each invocation
    for provider in _providers:
        provider.force_flush()

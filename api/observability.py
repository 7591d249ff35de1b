"""Tracing, metrics and structured logging for the Livenotes backend.

Everything is configured from the environment:
- ``OTEL_ENABLE_TRACES`` / ``OTEL_ENABLE_METRICS`` switch a signal off
- ``OTEL_TRACES_EXPORTER`` / ``OTEL_METRICS_EXPORTER`` pick ``otlp``,
  ``console`` or ``none``
- ``OTEL_LOG_LEVEL`` and ``LOG_FORMAT`` (``json`` or ``console``) shape logs
"""

import logging
import os
from collections.abc import Callable
from functools import lru_cache

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

SERVICE_NAME_VALUE = os.getenv("OTEL_SERVICE_NAME", "livenotes-api")
SERVICE_VERSION_VALUE = os.getenv("OTEL_SERVICE_VERSION", "0.1.0")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Chatty drivers whose DEBUG output drowns request logs
QUIET_LOGGERS = ("pymongo", "httpx", "httpcore")

logger = structlog.get_logger(__name__)

_providers: tuple[TracerProvider, MeterProvider] | None = None


@lru_cache(maxsize=1)
def get_resource() -> Resource:
    """Resource shared by the tracer and meter providers."""
    return Resource.create(
        {
            SERVICE_NAME: SERVICE_NAME_VALUE,
            SERVICE_VERSION: SERVICE_VERSION_VALUE,
            "service.namespace": "livenotes",
            "deployment.environment": ENVIRONMENT,
        }
    )


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).lower() == "true"


def _select_exporter(signal: str, otlp_factory: Callable, console_factory: Callable):
    """Pick an exporter for ``signal`` ("traces" or "metrics") from the environment.

    Returns None when export is disabled or misconfigured.
    """
    if not _env_flag(f"OTEL_ENABLE_{signal.upper()}"):
        logger.info("otel_signal_disabled", signal=signal)
        return None

    exporter_type = os.getenv(f"OTEL_{signal.upper()}_EXPORTER", "console")
    if exporter_type == "otlp":
        otlp_endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
        if not otlp_endpoint:
            logger.warning("otel_endpoint_missing", signal=signal)
            return None
        logger.info(
            "otel_exporter_selected", signal=signal, exporter="otlp", endpoint=otlp_endpoint
        )
        return otlp_factory(endpoint=otlp_endpoint)
    if exporter_type == "console":
        logger.info("otel_exporter_selected", signal=signal, exporter="console")
        return console_factory()

    logger.info("otel_export_disabled", signal=signal, exporter=exporter_type)
    return None


def configure_tracing() -> TracerProvider:
    """Install the global tracer provider with the configured span exporter."""
    provider = TracerProvider(resource=get_resource())

    span_exporter = _select_exporter("traces", OTLPSpanExporter, ConsoleSpanExporter)
    if span_exporter is not None:
        provider.add_span_processor(BatchSpanProcessor(span_exporter))

    trace.set_tracer_provider(provider)
    return provider


def configure_metrics() -> MeterProvider:
    """Install the global meter provider, exporting periodically when enabled."""
    metric_readers = []

    metric_exporter = _select_exporter("metrics", OTLPMetricExporter, ConsoleMetricExporter)
    if metric_exporter is not None:
        metric_readers.append(
            PeriodicExportingMetricReader(
                metric_exporter,
                export_interval_millis=int(os.getenv("OTEL_METRIC_EXPORT_INTERVAL", "60000")),
            )
        )

    provider = MeterProvider(resource=get_resource(), metric_readers=metric_readers)
    metrics.set_meter_provider(provider)
    return provider


def add_trace_context(logger, method_name, event_dict):
    """Stamp log events emitted inside a recording span with its ids."""
    span = trace.get_current_span()
    if not span.is_recording():
        return event_dict
    ctx = span.get_span_context()
    event_dict.setdefault("trace_id", trace.format_trace_id(ctx.trace_id))
    event_dict.setdefault("span_id", trace.format_span_id(ctx.span_id))
    return event_dict


def _renderer(log_format: str) -> list:
    if log_format == "console":
        return [structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer()]
    return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Route structlog through stdlib logging with trace ids attached.

    Args:
        level: Log level name, defaulting to ``OTEL_LOG_LEVEL`` or INFO
        log_format: ``json`` or ``console``, defaulting to ``LOG_FORMAT`` or json
    """
    level = (level or os.getenv("OTEL_LOG_LEVEL", "INFO")).upper()
    log_format = (log_format or os.getenv("LOG_FORMAT", "json")).lower()

    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            *_renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logger.info("logging_configured", log_level=level, log_format=log_format)


def initialize_observability() -> tuple[TracerProvider, MeterProvider]:
    """Configure logging, tracing and metrics once per process.

    Later calls, such as a second app lifespan in the same test run, return
    the providers installed by the first.
    """
    global _providers
    if _providers is not None:
        return _providers

    configure_logging()
    _providers = (configure_tracing(), configure_metrics())
    logger.info(
        "observability_initialized",
        service_name=SERVICE_NAME_VALUE,
        service_version=SERVICE_VERSION_VALUE,
        environment=ENVIRONMENT,
    )
    return _providers


def get_tracer(name: str = __name__) -> trace.Tracer:
    """Get a tracer instance for creating spans."""
    return trace.get_tracer(name, SERVICE_VERSION_VALUE)


def get_meter(name: str = __name__) -> metrics.Meter:
    """Get a meter instance for creating metrics."""
    return metrics.get_meter(name, SERVICE_VERSION_VALUE)


class AppMetrics:
    """Application-specific metrics."""

    def __init__(self):
        meter = get_meter("livenotes.metrics")

        self.user_signups = meter.create_counter(
            name="user.signups", description="Total number of account sign-ups", unit="1"
        )

        self.user_signins = meter.create_counter(
            name="user.signins", description="Total number of successful sign-ins", unit="1"
        )

        self.auth_failures = meter.create_counter(
            name="auth.failures", description="Total number of authentication failures", unit="1"
        )

        self.note_mutations = meter.create_counter(
            name="notes.mutations",
            description="Note inserts, updates and deletes, by operation",
            unit="1",
        )

        self.change_streams = meter.create_up_down_counter(
            name="notes.change_streams",
            description="Currently open change-notification streams",
            unit="1",
        )


# Global metrics instance
app_metrics: AppMetrics | None = None


def get_app_metrics() -> AppMetrics:
    """Get the global application metrics instance."""
    global app_metrics
    if app_metrics is None:
        app_metrics = AppMetrics()
    return app_metrics

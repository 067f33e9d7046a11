"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "hotel-booking-api"
SERVICE_VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
BOOKINGS_RESERVED = Counter(
    'bookings_reserved_total',
    'Total bookings created with a successful range reservation',
    ['hotel_id'],
    registry=REGISTRY
)

ROOM_NIGHTS_RESERVED = Counter(
    'room_nights_reserved_total',
    'Room-night units soft-held by the reservation engine',
    registry=REGISTRY
)

RESERVATION_CONFLICTS = Counter(
    'reservation_conflicts_total',
    'Reservation attempts rejected by the inventory ledger',
    ['reason'],
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed',
    ['hotel_id'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    registry=REGISTRY
)

BOOKINGS_EXPIRED = Counter(
    'bookings_expired_total',
    'Total bookings expired after the hold window elapsed',
    ['trigger'],
    registry=REGISTRY
)

REFUND_FAILURES = Counter(
    'refund_failures_total',
    'Refunds that failed after a cancellation was committed',
    registry=REGISTRY
)

GATEWAY_LATENCY = Histogram(
    'checkout_gateway_duration_seconds',
    'Checkout gateway call duration in seconds',
    ['operation'],
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())
    if settings.otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint))
        )
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))
    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument the async engine's sync core with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration: float):
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration)

    @staticmethod
    def record_reservation(room_nights: int):
        """Record units soft-held by a successful range reservation."""
        ROOM_NIGHTS_RESERVED.inc(room_nights)

    @staticmethod
    def record_reservation_conflict(reason: str):
        """Record a reservation rejected for lack of inventory."""
        RESERVATION_CONFLICTS.labels(reason=reason).inc()

    @staticmethod
    def record_booking_reserved(hotel_id: str):
        BOOKINGS_RESERVED.labels(hotel_id=hotel_id).inc()

    @staticmethod
    def record_booking_confirmed(hotel_id: str):
        BOOKINGS_CONFIRMED.labels(hotel_id=hotel_id).inc()

    @staticmethod
    def record_booking_cancelled():
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def record_booking_expired(trigger: str):
        """Record an expiry, triggered either lazily or by the sweep."""
        BOOKINGS_EXPIRED.labels(trigger=trigger).inc()

    @staticmethod
    def record_refund_failure():
        REFUND_FAILURES.inc()

    @staticmethod
    def time_gateway_call(operation: str):
        """Context manager timing one checkout gateway call."""
        return GATEWAY_LATENCY.labels(operation=operation).time()


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()

"""Monitoring and observability setup.

Tracing and metrics are exported over OTLP when TELEMETRY_ENABLED is set.
When it is not, the OpenTelemetry API falls back to its no-op providers, so
every counter, histogram and span below stays callable without a collector
(this is how the test suite runs).
"""
import logging
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
import pyroscope

from config import (
    OTEL_EXPORTER_OTLP_ENDPOINT,
    PYROSCOPE_SERVER,
    PROFILING_ENABLED,
    SERVICE_NAME,
    TELEMETRY_ENABLED
)

logger = logging.getLogger(__name__)


def init_tracing() -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Returns:
        Tracer instance
    """
    if TELEMETRY_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        tracer_provider = TracerProvider(resource=resource)
        otlp_span_exporter = OTLPSpanExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        tracer_provider.add_span_processor(BatchSpanProcessor(otlp_span_exporter))
        trace.set_tracer_provider(tracer_provider)

        logger.info(f"Tracing initialized with endpoint: {OTEL_EXPORTER_OTLP_ENDPOINT}")

    return trace.get_tracer(__name__)


def init_metrics() -> metrics.Meter:
    """
    Initialize OpenTelemetry metrics.

    Returns:
        Meter instance
    """
    if TELEMETRY_ENABLED:
        resource = Resource.create({"service.name": SERVICE_NAME})

        otlp_metric_exporter = OTLPMetricExporter(
            endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
            insecure=True
        )
        otlp_metric_reader = PeriodicExportingMetricReader(
            otlp_metric_exporter,
            export_interval_millis=5000
        )

        meter_provider = MeterProvider(
            resource=resource,
            metric_readers=[otlp_metric_reader]
        )
        metrics.set_meter_provider(meter_provider)

        logger.info("Metrics initialized with OTLP exporter")

    return metrics.get_meter(__name__)


def init_profiling() -> None:
    """Initialize Pyroscope profiling."""
    if not PROFILING_ENABLED:
        return
    try:
        pyroscope.configure(
            application_name=SERVICE_NAME,
            server_address=PYROSCOPE_SERVER,
            tags={"env": "demo"}
        )
        logger.info(f"Profiling initialized with server: {PYROSCOPE_SERVER}")
    except Exception as e:
        logger.warning(f"Failed to initialize profiling: {e}")


# Initialize tracer and meter
tracer = init_tracing()
meter = init_metrics()

# Catalog metrics
products_created_counter = meter.create_counter(
    "storefront.products.created",
    description="Total number of products added to the catalog",
    unit="1"
)

# Cart metrics
cart_additions_counter = meter.create_counter(
    "storefront.cart.additions",
    description="Total number of items added to cart",
    unit="1"
)

# Order metrics
orders_placed_counter = meter.create_counter(
    "storefront.orders.placed",
    description="Order placement attempts by outcome",
    unit="1"
)

order_amount_histogram = meter.create_histogram(
    "storefront.orders.amount",
    description="Order total at placement time",
    unit="1"
)

stock_conflicts_counter = meter.create_counter(
    "storefront.orders.stock_conflicts",
    description="Orders rejected because a concurrent order took the remaining stock",
    unit="1"
)

# Security monitoring metrics
auth_failures_counter = meter.create_counter(
    "storefront.auth.failures",
    description="Total number of authentication failures",
    unit="1"
)

auth_attempts_counter = meter.create_counter(
    "storefront.auth.attempts",
    description="Total number of authentication attempts",
    unit="1"
)

rate_limit_exceeded_counter = meter.create_counter(
    "storefront.rate_limit.exceeded",
    description="Total number of rate limit violations",
    unit="1"
)

suspicious_activity_counter = meter.create_counter(
    "storefront.security.suspicious_activity",
    description="Total number of suspicious activity detections",
    unit="1"
)

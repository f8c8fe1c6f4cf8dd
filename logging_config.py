"""Structured logging configuration."""
import logging
import sys
from pythonjsonlogger import jsonlogger
from opentelemetry import trace

from config import API_VERSION, OTEL_EXPORTER_OTLP_ENDPOINT, SERVICE_NAME, TELEMETRY_ENABLED

# Note: OpenTelemetry logging SDK is experimental
# Using stable trace context integration for now
try:
    from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
    from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
    from opentelemetry.sdk.resources import Resource
    OTLP_LOGGING_AVAILABLE = True
except ImportError:
    OTLP_LOGGING_AVAILABLE = False


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter that includes trace context."""

    def add_fields(self, log_record, record, message_dict):
        """Add custom fields to log record."""
        super().add_fields(log_record, record, message_dict)

        # Add trace context if available
        span = trace.get_current_span()
        if span and span.get_span_context().is_valid:
            ctx = span.get_span_context()
            log_record['trace_id'] = format(ctx.trace_id, '032x')
            log_record['span_id'] = format(ctx.span_id, '016x')
            log_record['trace_flags'] = ctx.trace_flags

        log_record['service'] = SERVICE_NAME
        log_record['version'] = API_VERSION

        if record.exc_info and record.exc_info[0] is not None:
            log_record['error_type'] = record.exc_info[0].__name__

        # Rename message field for clarity
        if 'message' in log_record:
            log_record['msg'] = log_record.pop('message')


def setup_logging(level: int = logging.INFO):
    """Configure structured logging for the application."""

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # 1. stdout handler with JSON formatting
    formatter = CustomJsonFormatter(
        '%(levelname)s %(name)s %(message)s',
        rename_fields={
            'levelname': 'level'
        }
    )
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # 2. OTLP handler to ship logs to the collector
    if TELEMETRY_ENABLED and OTLP_LOGGING_AVAILABLE:
        try:
            resource = Resource.create({
                "service.name": SERVICE_NAME,
                "deployment.environment": "demo"
            })

            logger_provider = LoggerProvider(resource=resource)

            otlp_exporter = OTLPLogExporter(
                endpoint=OTEL_EXPORTER_OTLP_ENDPOINT,
                insecure=True
            )

            logger_provider.add_log_record_processor(
                BatchLogRecordProcessor(otlp_exporter)
            )

            # Experimental API: there's no stable set_logger_provider yet
            from opentelemetry._logs import set_logger_provider
            set_logger_provider(logger_provider)

            otlp_handler = LoggingHandler(
                level=level,
                logger_provider=logger_provider
            )
            root_logger.addHandler(otlp_handler)

            logging.info("OTLP logging handler configured successfully (using experimental API)")
        except Exception as e:
            logging.warning(f"Failed to configure OTLP logging handler: {e}")
    elif TELEMETRY_ENABLED:
        logging.warning("OTLP logging SDK not available - logs will only go to stdout")

    # Reduce noise from libraries
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

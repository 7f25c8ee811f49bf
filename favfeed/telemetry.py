"""
Observability setup:
  - OpenTelemetry distributed tracing → Jaeger (via OTLP gRPC)
  - Prometheus metrics for post publishing and the notification fan-out

The API calls setup_tracing() + instrument_app(); the workers call
setup_tracing() only. Metrics are module-level and shared by all processes.
"""
import logging

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from prometheus_client import Counter, Histogram

from favfeed.config import settings

logger = logging.getLogger(__name__)

# ─────────────────────────── Prometheus Metrics ───────────────────────────
POST_PUBLISHED_TOTAL = Counter(
    "post_published_total",
    "Post-published events emitted by the API",
    ["status"],  # 'ok' or 'error'
)

FANOUT_BATCHES_TOTAL = Counter(
    "fanout_batches_total",
    "Notification batches created (one per post with followers)",
)

FANOUT_UNITS_TOTAL = Counter(
    "fanout_units_total",
    "Dispatch units by outcome",
    ["outcome"],  # submitted | completed | cancelled | retried | failed
)

NOTIFICATIONS_SENT_TOTAL = Counter(
    "notifications_sent_total",
    "Per-recipient notification deliveries",
    ["status"],  # 'sent' or 'failed'
)

FANOUT_DISPATCH_SECONDS = Histogram(
    "fanout_dispatch_seconds",
    "Time spent paging followers and enqueueing units for one post",
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)


# ─────────────────────────── OpenTelemetry Setup ──────────────────────────
def setup_tracing(service_name: str | None = None) -> None:
    """Configure the global OTel TracerProvider with OTLP/Jaeger export."""
    resource = Resource.create(
        {
            "service.name": service_name or settings.service_name,
            "deployment.environment": settings.environment,
        }
    )

    provider = TracerProvider(resource=resource)

    try:
        otlp_exporter = OTLPSpanExporter(
            endpoint=settings.otel_exporter_otlp_endpoint,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(
            "OTel tracing configured → %s", settings.otel_exporter_otlp_endpoint
        )
    except Exception as exc:
        logger.warning("Could not connect to OTLP exporter: %s — traces disabled", exc)

    trace.set_tracer_provider(provider)


def instrument_libraries() -> None:
    """Auto-instrument Redis and SQLAlchemy so their spans appear in traces."""
    # Imported here so worker processes don't pay for unused instrumentors
    from opentelemetry.instrumentation.redis import RedisInstrumentor
    from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

    RedisInstrumentor().instrument()
    SQLAlchemyInstrumentor().instrument()


def instrument_app(app) -> None:  # noqa: ANN001
    """Call after app is created to add FastAPI request spans."""
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

    FastAPIInstrumentor.instrument_app(app)

"""
favfeed API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create tables if not present
  3. Start Kafka producer (post-published events)
  4. Connect to Redis (notification inboxes, batch status)
  5. Expose Prometheus /metrics endpoint

Run with:  uvicorn favfeed.main:app
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from favfeed.config import settings
from favfeed.database import init_db
from favfeed.telemetry import instrument_app, instrument_libraries, setup_tracing
from favfeed.clients.kafka_producer import init_kafka, stop_kafka
from favfeed.clients.redis_client import close_redis, init_redis
from favfeed.routers import batches, favorites, posts, users

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting favfeed API (env=%s)", settings.environment)
    setup_tracing()
    instrument_libraries()

    await init_db()
    await init_kafka()
    await init_redis()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await stop_kafka()
    await close_redis()


app = FastAPI(
    title="favfeed API",
    description=(
        "Posts, users and favorites. Publishing a post notifies every user "
        "who favorited its author."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(favorites.router, prefix="/favorites", tags=["Favorites"])
app.include_router(batches.router, prefix="/batches", tags=["Batches"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}

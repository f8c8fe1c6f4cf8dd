"""Main application entry point."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import redis.asyncio as aioredis
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor

from config import (
    API_PREFIX,
    API_VERSION,
    CORS_ORIGINS,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_PER_MINUTE_IP,
    RATE_LIMIT_PER_MINUTE_USER,
    REDIS_URL,
    TELEMETRY_ENABLED
)
from database import init_db, engine
from errors import register_exception_handlers
from monitoring import init_profiling
from logging_config import setup_logging
from routers import cart, categories, orders, products, users
from redis_rate_limiter import RedisRateLimiter

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)

# Async client for the rate limiting middleware
redis_client = aioredis.from_url(REDIS_URL, decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting application...")

    init_db()

    if TELEMETRY_ENABLED:
        RedisInstrumentor().instrument()
    app.state.redis_client = redis_client

    init_profiling()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    await redis_client.aclose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Storefront Service",
    version=API_VERSION,
    lifespan=lifespan
)

register_exception_handlers(app)

if RATE_LIMIT_ENABLED:
    app.add_middleware(
        RedisRateLimiter,
        redis_client=redis_client,
        requests_per_minute_ip=RATE_LIMIT_PER_MINUTE_IP,
        requests_per_minute_user=RATE_LIMIT_PER_MINUTE_USER
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if TELEMETRY_ENABLED:
    FastAPIInstrumentor.instrument_app(app)
    SQLAlchemyInstrumentor().instrument(engine=engine)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(users.router, prefix=API_PREFIX)
app.include_router(categories.router, prefix=API_PREFIX)
app.include_router(products.router, prefix=API_PREFIX)
app.include_router(cart.router, prefix=API_PREFIX)
app.include_router(orders.router, prefix=API_PREFIX)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

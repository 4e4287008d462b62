"""
FastAPI Application

Hosts the analytics pipeline: the lifespan starts the projection store, batch
scheduler, Kafka consumer and publisher, and on shutdown lets the in-flight
batch finish before closing the store.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import make_asgi_app
import structlog

from analytics_pipeline.config import get_settings
from analytics_pipeline.config.logging import configure_logging
from analytics_pipeline.pipeline import AnalyticsPipeline
from analytics_pipeline.serving.middleware import RequestLoggingMiddleware
from analytics_pipeline.serving.routes import health_router, tracking_router

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting shop analytics pipeline", environment=settings.app_env)

    pipeline = AnalyticsPipeline(settings=settings)
    try:
        await pipeline.start()
    except Exception as e:
        logger.error("Pipeline start failed", error=str(e))
        raise
    app.state.pipeline = pipeline

    yield

    logger.info("Shutting down...")
    await pipeline.stop()
    app.state.pipeline = None


app = FastAPI(
    title="Shop Analytics Pipeline",
    description="Aggregates user interaction events into user, product and shop projections",
    version=settings.version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(tracking_router, prefix="/api/v1/analytics", tags=["Analytics"])

# Prometheus scrape endpoint
app.mount("/metrics", make_asgi_app())


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Shop Analytics Pipeline",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

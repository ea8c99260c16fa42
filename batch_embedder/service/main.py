"""Embedding service main application."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..common.config import ServiceConfig
from ..common.errors import ConfigurationError
from ..common.logging import configure_logging
from ..common.metrics import MetricsCollector, get_metrics_collector
from .embedding_service import EmbeddingService
from .routes import router as api_router

logger = structlog.get_logger("embedding_service")


def create_app(
    service: Optional[EmbeddingService] = None,
    config: Optional[ServiceConfig] = None,
    metrics: Optional[MetricsCollector] = None
) -> FastAPI:
    """Build the FastAPI application.

    Parameters
    - service: Pre-built service (tests inject one around a fake provider);
      when omitted it is created from configuration at startup
    - config: Service configuration; read from the environment when omitted
    - metrics: Collector to expose on ``/metrics``
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        # Startup
        app_config = config or ServiceConfig()
        configure_logging(
            app_config.embed_service_name,
            app_config.embed_log_level,
            app_config.embed_log_format
        )
        app.state.config = app_config
        app.state.startup_time = time.time()
        app.state.metrics_collector = metrics or get_metrics_collector(app_config.embed_service_name)

        logger.info("Starting embedding service")

        if service is not None:
            app.state.embedding_service = service
        else:
            try:
                app.state.embedding_service = EmbeddingService.from_config(
                    app_config,
                    metrics=app.state.metrics_collector
                )
            except ConfigurationError as e:
                logger.error("Embedding service not configured", error=e.message, key=e.key)
                app.state.embedding_service = None
                app.state.startup_error = e.message

        logger.info("Embedding service started", ready=app.state.embedding_service is not None)

        yield

        # Shutdown
        logger.info("Shutting down embedding service")
        if getattr(app.state, "embedding_service", None) is not None:
            await app.state.embedding_service.close()
        logger.info("Embedding service shutdown complete")

    app = FastAPI(
        title="Embedding Service",
        description="Batched, retrying embedding generation over pluggable providers",
        version="0.1.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(
            status_code=503,
            content={"error": "Service misconfigured", "detail": exc.message}
        )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add processing time header to responses."""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Collect metrics for HTTP requests."""
        start_time = time.time()

        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as e:
            logger.error("Unhandled error serving request", path=request.url.path, error=str(e))
            status_code = 500
            response = JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "detail": str(e)}
            )

        duration = time.time() - start_time

        if hasattr(app.state, "metrics_collector"):
            app.state.metrics_collector.record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status=status_code,
                duration=duration
            )

        return response

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        embedding_service = getattr(app.state, "embedding_service", None)
        if embedding_service is None:
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "service": "embedding-service",
                    "error": getattr(app.state, "startup_error", "not initialized")
                }
            )

        if await embedding_service.health_check():
            return {
                "status": "healthy",
                "service": "embedding-service",
                "provider": embedding_service.provider.provider_id
            }
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "service": "embedding-service"}
        )

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint."""
        if hasattr(app.state, "metrics_collector"):
            return Response(content=app.state.metrics_collector.get_metrics(), media_type="text/plain")
        return Response(content="# No metrics available\n", media_type="text/plain")

    @app.get("/live")
    async def liveness():
        """Liveness probe. Returns quickly if process is responsive."""
        return {
            "status": "alive",
            "service": "embedding-service",
            "uptime_seconds": time.time() - getattr(app.state, "startup_time", time.time())
        }

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "embedding-service",
            "version": "0.1.0",
            "status": "running",
            "endpoints": {
                "health": "/health",
                "metrics": "/metrics",
                "embed": "/api/v1/embed",
                "embed_one": "/api/v1/embed/one",
                "cancel": "/api/v1/cancel",
                "provider": "/api/v1/provider"
            },
            "probes": {
                "health": "/health",
                "live": "/live"
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "batch_embedder.service.main:app",
        host="0.0.0.0",
        port=ServiceConfig().embed_service_port,
        reload=False
    )

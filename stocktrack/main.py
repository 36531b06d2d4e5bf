"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from stocktrack.api.routes import router
from stocktrack.api.websocket import handle_invalidation_socket, manager
from stocktrack.config import get_settings
from stocktrack.engine.runtime import EngineRuntime, build_runtime
from stocktrack.models.sync import CacheInvalidation
from stocktrack.utils.logging import get_logger, setup_logging

# Setup logging first
setup_logging()
logger = get_logger(__name__)

INVALIDATION_CHANNEL = "stocktrack:invalidations"


def create_app(runtime: EngineRuntime | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        runtime: Pre-built engine runtime; built from settings at startup if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info("application_starting")

        engine = runtime or build_runtime()

        async def publish_invalidation(signal: CacheInvalidation) -> None:
            await manager.send_invalidation(signal)
            await engine.local_state.publish(INVALIDATION_CHANNEL, signal.model_dump_json())

        engine.scheduler.on_invalidate = publish_invalidation
        await engine.connect()
        app.state.runtime = engine

        engine.scheduler.start()
        logger.info("sync_scheduler_started")

        yield

        logger.info("application_shutting_down")
        await engine.close()

    app = FastAPI(
        title="StockTrack",
        description="Consumption-based inventory decrement and low stock alerts",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy", "service": "stocktrack"}

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "StockTrack API",
            "docs": "/docs",
            "health": "/health",
        }

    app.include_router(router, prefix="/api/v1", tags=["api"])

    @app.websocket("/ws/invalidations")
    async def invalidations_endpoint(websocket: WebSocket) -> None:
        """WebSocket endpoint pushing cache invalidation signals."""
        await handle_invalidation_socket(websocket)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "stocktrack.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )

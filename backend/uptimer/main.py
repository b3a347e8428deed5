"""Main FastAPI application hosting the monitor engine."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import engine_router, engine_ws_router
from .services.scheduler import scheduler_service

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Uptimer")

    await init_db()
    logger.info("Database initialized")

    # Jobs do not survive a restart; rebuild them from the active monitor rows
    scheduler_service.start()
    started = await scheduler_service.resume_all()
    logger.info(f"Monitor engine running with {started} monitors")

    yield

    await scheduler_service.shutdown()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Uptimer",
        description="Uptime monitoring engine - scheduled probes, assertions and heartbeats",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict to your domain
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(engine_router)
    app.include_router(engine_ws_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler_running": scheduler_service.running,
            "monitors_scheduled": len(scheduler_service.scheduled_monitor_ids()),
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)

"""Main FastAPI application for the notification dispatch service."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import devices_router, accounts_router, notifications_router
from .services.scheduler import scheduler_service

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting FibroDiário notification service")

    await init_db()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        # Fail fast on bad provider credentials
        scheduler_service.provider.configure()
        scheduler_service.start()

    yield

    scheduler_service.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="FibroDiário Notifications",
        description="Timezone-aware scheduled push notifications",
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

    app.include_router(devices_router)
    app.include_router(accounts_router)
    app.include_router(notifications_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler": settings.scheduler_enabled,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)

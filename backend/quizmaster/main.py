"""QuizMaster - FastAPI Application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from quizmaster.config import CATEGORIES, Settings, settings
from quizmaster.dependencies import build_services
from quizmaster.routers import (
    auth_router,
    leaderboard_router,
    notifications_router,
    profile_router,
    quiz_router,
)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(app_settings: Settings = settings) -> FastAPI:
    """Build the application around one set of services."""
    services = build_services(app_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        # Startup
        logger.info("Initializing services...")
        await services.startup()
        logger.info("Startup complete.")
        yield

        # Shutdown
        logger.info("Shutting down...")
        await services.shutdown()

    app = FastAPI(
        title=app_settings.app_name,
        description="Multiple-choice trivia quizzes with scoring and leaderboards",
        version=app_settings.version,
        lifespan=lifespan,
    )
    app.state.services = services

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(auth_router)
    app.include_router(quiz_router)
    app.include_router(leaderboard_router)
    app.include_router(profile_router)
    app.include_router(notifications_router)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": app_settings.app_name,
            "version": app_settings.version,
            "description": "Trivia quizzes with scoring and leaderboards",
            "categories": CATEGORIES,
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app(settings)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

"""FastAPI application factory for the engagement tracking API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..engine import EngagementEngine
from .middleware.cors import ALLOWED_ORIGINS
from .routes.health import router as health_router
from .routes.sessions import router as sessions_router
from .routes.scores import router as scores_router
from .routes.assessments import router as assessments_router
from .routes.cache import router as cache_router
from .services.engine import build_engine

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting Engagement Engine API")
    if app.state.engine is None:
        app.state.engine = build_engine()

    app.state.engine.start()

    yield

    # Shutdown
    app.state.engine.shutdown()
    logger.info("Engagement Engine API shutting down")


def create_app(engine: Optional[EngagementEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    An engine built from environment settings is used unless one is given.
    """
    app = FastAPI(
        title="Engagement Engine API",
        description="Session tracking, engagement scoring and tier progression",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(health_router)
    app.include_router(sessions_router)
    app.include_router(scores_router)
    app.include_router(assessments_router)
    app.include_router(cache_router)

    return app


# Module-level app instance for uvicorn
app = create_app()

"""FastAPI application for the gymdm season engine."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_settings
from ..utils.log_sanitizer import install_log_sanitizer
from .exception_handlers import register_exception_handlers
from .routes import activities, seasons, votes

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    logger.info(f"Starting gymdm v{__version__}")
    logger.info(f"Season DB: {settings.db_path}")
    yield
    logger.info("Shutting down gymdm")


def create_app() -> FastAPI:
    """Build the API application."""
    # Must run before anything logs credentials
    install_log_sanitizer()

    settings = get_settings()
    logging.getLogger("gymdm").setLevel(settings.log_level.upper())

    app = FastAPI(
        title="gymdm API",
        description="Hearts-based fitness competition: live seasons, disputes and ledgers",
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(seasons.router, prefix=settings.api_prefix, tags=["seasons"])
    app.include_router(votes.router, prefix=settings.api_prefix, tags=["votes"])
    app.include_router(activities.router, prefix=settings.api_prefix, tags=["activities"])

    @app.get("/health")
    async def health():
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()

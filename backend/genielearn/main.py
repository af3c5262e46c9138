"""GenieLearn Backend Application.

This is the main entry point for the GenieLearn backend service.
GenieLearn is a study-group platform; this service owns group membership,
message history and real-time group chat delivery.

Modules:
    - auth: Session validation (opaque bearer tokens)
    - groups: Study groups and membership
    - chat: Message history, HTTP send, and the WebSocket chat gateway
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from genielearn.auth.router import router as auth_router
from genielearn.chat.router import router as chat_router
from genielearn.config import get_config
from genielearn.groups.router import router as groups_router
from genielearn.services import Services, build_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "httpx",
    "httpcore",
    "websockets",
    "uvicorn.access",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Pre-built services (tests pass an in-memory bundle). When
            omitted, services are built from config during startup and
            closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        config = get_config()

        # Apply configured log level to root logger
        configured_level = getattr(logging, config.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", config.logging.level.upper())

        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = build_services(config)
        purged = app.state.services.sessions.purge_expired()
        if purged:
            logger.info("Purged %d expired sessions", purged)

        logger.info(
            f"GenieLearn ready on http://{config.server.host}:{config.server.port}"
        )

        yield  # Application runs here

        # Shutdown
        if owned:
            app.state.services.close()
            app.state.services = None
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="GenieLearn API",
        description="Backend service for GenieLearn study groups and group chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_config().server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register all routers
    app.include_router(auth_router)
    app.include_router(groups_router)
    app.include_router(chat_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app

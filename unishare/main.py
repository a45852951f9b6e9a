"""
Main application entry point for the UniShare gamification service.

This module serves as the central entry point for the FastAPI application,
registering the gamification router and shared middleware.

Usage:
    - Direct: python -m unishare.main
    - ASGI server: uvicorn unishare.main:app
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from unishare.common.config import AppConfig, get_config
from unishare.common.logger import app_logger, configure_logger
from unishare.database.init_db import close_database, initialize_database
from unishare.gamification import initialize_gamification_system, reset_gamification_service
from unishare.gamification.controllers import router as gamification_router

# Setup module logger
logger = app_logger.getChild("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI application lifespan context manager.

    Initializes the database and gamification service on startup and
    releases the connection pool on shutdown.
    """
    config: AppConfig = app.state.config

    logger.info("Application startup sequence initiated.")
    await initialize_database(config.database)
    await initialize_gamification_system(config)
    logger.info("Application startup complete")

    yield

    logger.info("Application shutdown sequence initiated.")
    reset_gamification_service()
    await close_database()
    logger.info("Application shutdown complete")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    Args:
        config: Application configuration (defaults to the loaded config)

    Returns:
        Configured FastAPI application
    """
    config = config or get_config()

    configure_logger(
        level=config.logging.level,
        use_json=config.logging.use_json,
        log_file=config.logging.file_path
    )

    app = FastAPI(
        title=config.app_name,
        description="Points, achievements and leaderboards for UniShare",
        version=config.version,
        lifespan=lifespan
    )
    app.state.config = config

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register routers
    app.include_router(gamification_router, prefix=config.api.prefix)

    @app.get("/health")
    async def health():
        """Liveness probe."""
        return {"status": "ok", "environment": config.environment}

    logger.info(f"Application created with {len(app.routes)} routes")
    return app


app = create_app()

# Entry point for running the application directly
if __name__ == "__main__":
    import uvicorn

    api_config = get_config().api
    logger.info(f"Starting server on {api_config.host}:{api_config.port} (reload: {api_config.reload})")

    uvicorn.run(
        "unishare.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.reload,
        log_level="info"
    )

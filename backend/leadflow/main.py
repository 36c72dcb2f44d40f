"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from leadflow.api.v1.routes import api_router
from leadflow.core.config import get_config_manager, get_settings

load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan - startup and shutdown events.

    Startup:
    - Validates provider configurations
    - Builds repository, providers and services (unless already attached)

    Shutdown:
    - Releases the AI provider client
    """
    settings = get_settings()
    logger.info("Starting Leadflow...")

    strict_validation = settings.environment == "production"
    try:
        from leadflow.core.validation import validate_providers_on_startup
        validate_providers_on_startup(strict=strict_validation, storage_backend=settings.storage_backend)
    except RuntimeError as e:
        if strict_validation:
            logger.error(f"Startup failed: {e}")
            raise
        logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        from leadflow.core.container import build_container
        app.state.container = await build_container(
            get_config_manager(),
            storage_backend=settings.storage_backend
        )

    logger.info("Leadflow started successfully")

    yield  # Application is running

    logger.info("Shutting down Leadflow...")
    if owns_container:
        try:
            await app.state.container.close()
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
        app.state.container = None

    logger.info("Leadflow shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application"""
    settings = get_settings()

    application = FastAPI(
        title="Leadflow",
        description="Lead intake, slot offers and booking pipeline for Rendetalje",
        version="1.0.0",
        lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(api_router, prefix=settings.api_prefix)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    uvicorn.run(app, host="0.0.0.0", port=8000)

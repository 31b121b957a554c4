"""
FastAPI Production Application

Main entry point for the Laundry Marketplace API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
import structlog

from laundry_api.config import get_settings
from laundry_api.config.logging import configure_logging
from laundry_api.database.connection import close_database, init_database
from laundry_api.serving.api import create_api_app

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    logger.info("Starting Laundry Marketplace API", environment=settings.app_env, version=settings.version)

    await init_database(create_tables=settings.is_development)

    yield

    logger.info("Shutting down...")
    await close_database()


app = create_api_app(lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)

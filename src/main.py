"""
Main entry point for the FastAPI application.
Configures lifespan events and mounts routers.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from src.api.routes import router as api_router
from src.config.settings import settings
from src.services.store import room_store

# Setup Logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Disable these warnings as they are false positives caused by fasapi syntax
# pylint: disable=redefined-outer-name
# pylint: disable=unused-argument
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application Lifecycle Manager.
    Checks the room store on startup and releases it on shutdown.
    """
    logger.info("Starting %s...", settings.app_name)

    if not await room_store.ping():
        logger.warning("Room store at %s is not reachable yet", settings.redis_url)

    yield

    logger.info("Shutting down %s...", settings.app_name)
    await room_store.close()


def create_app() -> FastAPI:
    """Factory to create the app."""
    application = FastAPI(
        title=settings.app_name,
        description="Synchronized video watching rooms",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    application.include_router(api_router, prefix="/api")

    # Static Files (Frontend)
    static_dir = Path(settings.static_dir)
    try:
        application.mount("/static", StaticFiles(directory=static_dir), name="static")

        @application.get("/")
        async def root() -> FileResponse:
            return FileResponse(static_dir / "index.html")

        @application.get("/room/{room_id}")
        async def room_page(room_id: str) -> FileResponse:
            return FileResponse(static_dir / "room.html")

    except RuntimeError:
        logger.warning("'%s' directory not found. UI will not be served.", static_dir)

    return application


app = create_app()


if __name__ == "__main__":
    uvicorn.run("src.main:app", host=settings.server_host, port=settings.server_port)

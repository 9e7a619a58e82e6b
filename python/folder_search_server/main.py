"""FastAPI server for folder-search."""
import logging
import os
import signal
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from folder_search_server.api import config, files, indexing, search, stats
from folder_search_server.config import settings
from folder_search_server.dependencies import Services, build_services
from folder_search_server.log_handler import get_memory_handler
from folder_search_server.services.database import Database

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize memory log handler
memory_handler = get_memory_handler()

VERSION = "0.1.0"


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the application. Without `services`, the store at settings.db_path is opened on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Server starting up...")
        if app.state.services is None:
            app.state.services = build_services(Database(settings.db_path))
        current = app.state.services

        try:
            await current.indexing.apply_config(current.config.get_config().indexing)
        except ValueError as e:
            logger.error(f"Stored indexing config is invalid, using defaults: {e}")

        yield

        logger.info("Server shutting down, stopping watchers and closing database...")
        try:
            await current.indexing.shutdown()
        except Exception as e:
            logger.error(f"Error stopping watchers: {e}")
        current.db.close()

    app = FastAPI(title="folder-search Server",
                  version=VERSION,
                  lifespan=lifespan)
    app.state.services = services

    # The desktop shell talks to us from localhost
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(indexing.router)
    app.include_router(search.router)
    app.include_router(stats.router)
    app.include_router(config.router)
    app.include_router(files.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "version": VERSION}

    @app.post("/api/shutdown")
    async def shutdown():
        """Shutdown the server gracefully."""
        os.kill(os.getpid(), signal.SIGTERM)
        return {"status": "shutting down"}

    @app.get("/api/logs")
    async def get_logs(lines: int = 10):
        """Get the last N lines of the server log."""
        logs = memory_handler.get_recent_logs(lines)
        return {"logs": logs, "count": len(logs)}

    @app.get("/")
    async def root():
        return {"message": "folder-search server running"}

    return app


app = create_app()


def run():
    """Console entry point."""
    import uvicorn

    logger.info(f"folder-search server starting on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()

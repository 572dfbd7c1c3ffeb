# main.py
"""HTTP host: starts the worker thread and exposes it over FastAPI"""
import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI

from config import settings
from services.logger_config import setup_logging
from api.endpoints import router
from worker.context import WorkerContext, build_context
from worker.host import WorkerThread

setup_logging()
logger = logging.getLogger(settings.LOGGER_NAME)


def create_app(context_factory: Callable[[], WorkerContext] = build_context) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        logger.info("Starting worker...")
        worker = WorkerThread(context_factory)
        worker.start()
        app.state.worker = worker
        logger.info("Worker started")

        yield

        logger.info("Shutting down worker...")
        worker.shutdown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.APP_TITLE,
        version=settings.APP_VERSION,
        lifespan=lifespan
    )
    app.include_router(router)
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )

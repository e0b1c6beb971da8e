"""Jobs ETL Service - FastAPI Application."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from jobs_etl import __version__
from jobs_etl.api.routes import router
from jobs_etl.config import get_settings
from jobs_etl.pipeline.job_manager import JobManager
from jobs_etl.pipeline.orchestrator import build_orchestrator
from jobs_etl.utils.log_config import configure_logging

logger = structlog.get_logger()


def create_app(job_manager: JobManager | None = None) -> FastAPI:
    """Build the FastAPI app.

    Args:
        job_manager: Prebuilt manager; when omitted one is wired to the
            HTTP spider, OpenAI processor and Postgres storage at startup.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan management."""
        logger.info(
            "service_starting",
            service=settings.service_name,
            port=settings.service_port,
        )

        if job_manager is None:
            app.state.job_manager = JobManager(build_orchestrator(settings))
        else:
            app.state.job_manager = job_manager

        logger.info("service_started")

        yield

        logger.info("service_stopping")
        await app.state.job_manager.shutdown()
        logger.info("service_stopped")

    app = FastAPI(
        title="Jobs ETL Service",
        description="Scrape -> Process -> Store pipeline for government job listings",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": settings.service_name,
            "version": __version__,
            "status": "running",
        }

    return app


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(
        "jobs_etl.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.service_port,
    )


if __name__ == "__main__":
    run()

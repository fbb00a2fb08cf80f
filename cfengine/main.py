"""
FastAPI application entry point for the CF modeling engine API.

Configures logging and CORS, creates the worker executor and optimizer job
registry for the application lifetime, and registers the API routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cfengine import __version__
from cfengine.api import api_router
from cfengine.core.config import get_settings
from cfengine.jobs.messaging import create_executor
from cfengine.jobs.optimizer_worker import OptimizerJobRegistry

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Create the worker executor (thread or process pool)
        - Create the in-process optimizer job registry

    On shutdown:
        - Shut down the executor without waiting for discarded jobs
    """
    # Startup
    logger.info(f"{settings.app_name} starting")
    executor = create_executor(settings)
    app.state.executor = executor
    app.state.optimizer_jobs = OptimizerJobRegistry(
        executor,
        settings.engine_config(),
        ttl_seconds=settings.job_ttl_seconds,
        max_retained=settings.job_max_retained,
    )

    yield

    # Shutdown
    logger.info(f"{settings.app_name} shutting down")
    executor.shutdown(wait=False, cancel_futures=True)


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description=(
        "Physician compensation modeling engine. "
        "Provides endpoints for specialty matching, scenario modeling, "
        "batch runs, CF optimization, CF sweeps and run comparison."
    ),
    lifespan=lifespan,
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(api_router)


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer checks.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "cfengine.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )

"""FastAPI application entry point for claimflow."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from claimflow import __version__
from claimflow.api.health import router as health_router
from claimflow.api.routes import router as uploads_router
from claimflow.api.streaming import router as streaming_router
from claimflow.config import Settings, get_settings
from claimflow.errors import IngestionError

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)


async def ingestion_error_handler(request: Request, exc: IngestionError) -> JSONResponse:
    """Render file-level ingestion failures with their code and user message."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    settings.uploads_path.mkdir(parents=True, exist_ok=True)
    logger.info(f"Claimflow {__version__} storing uploads in {settings.uploads_path}")
    yield


def create_app() -> FastAPI:
    """Build the application: logging, CORS in dev, error handling and routers."""
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Claimflow",
        description="Healthcare claims CSV ingestion: carrier detection, column mapping, validation and normalization",
        version=__version__,
        lifespan=lifespan,
    )

    if settings.is_dev:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(IngestionError, ingestion_error_handler)

    app.include_router(health_router)
    app.include_router(uploads_router, prefix=API_PREFIX, tags=["uploads"])
    app.include_router(streaming_router, prefix=API_PREFIX)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "claimflow.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_dev,
    )

"""
Main FastAPI application.

Wires the layers together:
- Domain: entities, queries and the error taxonomy
- Repositories: record store (SQLAlchemy) and search index (Meilisearch)
- Services: mutation coordinator, list service, reconciliation sweep
- Routers: HTTP endpoints
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings
from .database import create_db_engine, create_session_factory, init_db
from .dependencies import ServiceContainer, build_container
from .domain.exceptions import IndexException, SyncServiceException
from .logging_config import configure_logging
from .metrics import get_metrics, track_request_metrics
from .repositories.meilisearch_repository import MeilisearchConfig, MeilisearchSearchIndex
from .routers import entities_router, health_router
from .routers.schemas import ErrorResponse

logger = structlog.get_logger(__name__)


async def build_default_container(settings: Settings) -> ServiceContainer:
    """Connect to the record store and search index described by ``settings``."""
    engine = create_db_engine(settings)
    try:
        init_db(engine)
        logger.info("Record store initialized successfully")
    except Exception as e:
        logger.error("Failed to initialize record store", error=str(e))
        raise

    index = MeilisearchSearchIndex.from_config(MeilisearchConfig.from_settings(settings))
    try:
        await index.initialize_indexes()
    except IndexException as e:
        # Writes still reach the record store; the sweep can rebuild later.
        logger.warning("Search index not configured, continuing", error=e.message)

    return build_container(settings, create_session_factory(engine), index, engine=engine)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Create the application.

    Args:
        settings: Settings (read from the environment when omitted)
        container: Prebuilt services; when omitted they are built from
            ``settings`` at startup and closed at shutdown
    """
    settings = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        configure_logging(settings)
        logger.info("Starting sync service", service=settings.SERVICE_NAME)

        owned = container is None
        app.state.container = container or await build_default_container(settings)

        logger.info("Sync service started successfully")

        yield

        logger.info("Shutting down sync service...")
        if owned:
            close = getattr(app.state.container.index, "close", None)
            if close is not None:
                await close()
            if app.state.container.engine is not None:
                app.state.container.engine.dispose()
        logger.info("Sync service shut down complete")

    app = FastAPI(
        title="tutorsync",
        description="Keeps the record store and search index of a tutoring marketplace in sync",
        version=__version__,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Add request ID for distributed tracing."""
        request_id = request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:12]}"
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.clear_contextvars()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def track_metrics(request: Request, call_next):
        """Track Prometheus metrics."""
        start_time = time.time()
        response = await call_next(request)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        track_request_metrics(
            request.method, endpoint, response.status_code, time.time() - start_time
        )
        return response

    app.include_router(health_router.router)
    for router in entities_router.routers:
        app.include_router(router)

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        """Prometheus metrics endpoint."""
        return get_metrics()

    @app.exception_handler(SyncServiceException)
    async def sync_exception_handler(request: Request, exc: SyncServiceException):
        """Map the error taxonomy to HTTP statuses."""
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            error=exc.error,
            message=exc.message,
        )
        body = ErrorResponse(
            error=exc.error,
            message=exc.message,
            details=jsonable_encoder(exc.details),
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle all unhandled exceptions."""
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        body = ErrorResponse(
            error="internal_server_error",
            message="An unexpected error occurred",
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(status_code=500, content=body.model_dump())

    return app


def main() -> None:
    import uvicorn

    settings = Settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.SERVICE_PORT)


if __name__ == "__main__":
    main()

"""
StoryGate - Production API Entrypoint

- FastAPI is the sole supported framework
- Connection pool created at startup, closed at shutdown
- No stack traces to clients: structured JSON errors with request_id
- Publish gate outcomes map to stable error codes:
    not_found (404), already_published (409),
    publish_gate_failed (409), internal_error (500)
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import structlog

from storygate import __version__
from storygate.api.dependencies import (
    build_transition_manager,
    close_connection_pool,
    generate_request_id,
    init_connection_pool,
)
from storygate.api.v1 import health, stories
from storygate.config import StoryGateConfig
from storygate.errors import PublishGateError
from storygate.storage.graph_store import GraphStore, create_graph_store

ERROR_STATUS = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "already_published": status.HTTP_409_CONFLICT,
    "publish_gate_failed": status.HTTP_409_CONFLICT,
    "internal_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def configure_logging() -> None:
    """Configure structured JSON logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Build the GraphStore (opening the pool for the postgres backend)
      unless one was injected
    - Wire the TransitionManager

    Shutdown:
    - Close the connection pool if this process opened it
    """
    logger.info("app.startup", version=__version__)

    config = app.state.config
    if config is None:
        config = StoryGateConfig.from_env()
        app.state.config = config

    pool = None
    if app.state.store is None:
        if config.backend == 'postgres':
            pool = init_connection_pool(
                database_url=config.database.database_url,
                min_size=config.database.pool_min_size,
                max_size=config.database.pool_max_size,
                timeout=config.database.pool_timeout
            )
        app.state.store = create_graph_store(config, pool)

    app.state.manager = build_transition_manager(app.state.store, config)

    logger.info("app.ready", store=app.state.store.get_store_name(), platform_id=config.platform_id)

    yield

    logger.info("app.shutdown")
    close_connection_pool(pool)


def create_app(
    config: Optional[StoryGateConfig] = None,
    store: Optional[GraphStore] = None
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        config: Configuration (default: loaded from environment at startup)
        store: Pre-built GraphStore (default: built from config at startup)

    Returns:
        FastAPI app
    """
    configure_logging()

    app = FastAPI(
        title="StoryGate API",
        description="Evidence-gated story publication",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan
    )

    app.state.config = config
    app.state.store = store
    app.state.manager = None
    if config is not None and store is not None:
        app.state.manager = build_transition_manager(store, config)

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next):
        """Add request_id to request state and response headers."""
        request_id = generate_request_id()
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response

    @app.exception_handler(PublishGateError)
    async def publish_gate_exception_handler(request: Request, exc: PublishGateError):
        """Render publish gate outcomes as structured JSON errors."""
        request_id = getattr(request.state, "request_id", "unknown")

        body = exc.to_dict()
        body["request_id"] = request_id

        return JSONResponse(
            status_code=ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
            content={"error": body}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Returns structured JSON error with request_id, never a stack trace."""
        request_id = getattr(request.state, "request_id", "unknown")

        logger.error(
            "unhandled_exception",
            exc_info=exc,
            request_id=request_id,
            path=request.url.path,
            method=request.method
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred",
                    "request_id": request_id
                }
            }
        )

    app.include_router(health.router, tags=["health"])
    app.include_router(stories.router, tags=["stories"])

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": f"StoryGate API v{__version__}",
            "docs": "/docs",
            "health": "/healthz"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storygate.api.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8080")),
        reload=os.getenv("ENV", "production") == "development",
        log_level="info"
    )

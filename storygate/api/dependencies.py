"""
StoryGate - API Dependencies

Shared dependencies for the FastAPI application:
- Database connection pooling
- GraphStore / TransitionManager wiring
- Request ID generation

Application-scoped objects live on app.state, never in module globals.
"""

import uuid
from typing import Any

from fastapi import Request
from psycopg_pool import ConnectionPool
import structlog

from storygate.config import StoryGateConfig
from storygate.core.ids import UlidGenerator
from storygate.gate.outbox import OutboxEmitter
from storygate.gate.transition import TransitionManager
from storygate.storage.graph_store import GraphStore

logger = structlog.get_logger()


def init_connection_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    timeout: float = 10.0
) -> ConnectionPool:
    """
    Initialize database connection pool.

    Pool is created ONCE at application startup.

    Args:
        database_url: Postgres connection URL
        min_size: Minimum pool connections
        max_size: Maximum pool connections
        timeout: Seconds to wait for a free connection

    Returns:
        ConnectionPool instance
    """
    logger.info(
        "database.pool.init",
        min_size=min_size,
        max_size=max_size,
        timeout=timeout
    )

    return ConnectionPool(
        conninfo=database_url,
        min_size=min_size,
        max_size=max_size,
        timeout=timeout,
        open=True
    )


def close_connection_pool(pool: Any) -> None:
    """Close database connection pool."""
    if pool is not None:
        logger.info("database.pool.close")
        pool.close()


def build_transition_manager(store: GraphStore, config: StoryGateConfig) -> TransitionManager:
    """Wire the publish gate for a store and configuration."""
    outbox = OutboxEmitter(
        platform_id=config.platform_id,
        id_generator=UlidGenerator(),
        publication_scope=config.transition.publication_scope
    )
    return TransitionManager(
        store=store,
        outbox=outbox,
        thresholds=config.thresholds
    )


def get_store(request: Request) -> GraphStore:
    """FastAPI dependency: the application's GraphStore."""
    return request.app.state.store


def get_transition_manager(request: Request) -> TransitionManager:
    """FastAPI dependency: the application's TransitionManager."""
    return request.app.state.manager


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def generate_request_id() -> str:
    """
    Generate unique request ID for tracing.

    Returns:
        Request ID (UUID4)
    """
    return f"req_{uuid.uuid4().hex[:12]}"

"""
StoryGate - GraphStore Abstraction

Defines the storage boundary of the publish gate.

DESIGN PRINCIPLES:
1. Every publish attempt runs in ONE short-lived transaction
2. The story row is locked exclusively for the duration of that transaction
3. Reads inside the transaction see a consistent snapshot
4. The outbox insert shares the transaction with the state mutation
5. Non-gating reads (feed, story detail) never take the story lock

GraphStore provides:
- transaction(): unit of work yielding a GraphTransaction
- list_stories(): feed of stories for the platform
- get_story_detail(): story with versions, claims, edges and corrections
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Any, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
import logging

from storygate.core.models import (
    Claim,
    EvidenceEdge,
    GraphSnapshot,
    OutboxEvent,
    Story,
    StoryState,
    StoryVersion,
)

logger = logging.getLogger(__name__)

FEED_DEFAULT_LIMIT = 50
FEED_MAX_LIMIT = 200


@dataclass(frozen=True)
class Correction:
    correction_id: str
    claim_id: str
    reason: str
    created_at: datetime


@dataclass
class StoryDetail:
    """Story with everything the reader-facing detail view shows."""
    story: Story
    versions: List[StoryVersion] = field(default_factory=list)   # newest first
    claims: List[Claim] = field(default_factory=list)
    evidence_edges: List[EvidenceEdge] = field(default_factory=list)
    corrections: List[Correction] = field(default_factory=list)


def clamp_feed_limit(limit: Optional[int]) -> int:
    """Clamp a feed page size to 1..FEED_MAX_LIMIT (default FEED_DEFAULT_LIMIT)."""
    if limit is None:
        return FEED_DEFAULT_LIMIT
    return min(max(int(limit), 1), FEED_MAX_LIMIT)


class GraphTransaction(ABC):
    """
    Unit of work for one publish attempt.

    Obtained from GraphStore.transaction(). Leaving the context normally
    commits; leaving it with an exception rolls back every write.
    """

    @abstractmethod
    def lock_story(self, story_id: str) -> Optional[Story]:
        """
        Acquire the exclusive row lock on a story and re-read it.

        Blocks while another transaction holds the lock on the same story.

        Returns:
            Story as committed by the previous lock holder, or None if not found
        """
        pass

    @abstractmethod
    def get_story(self, story_id: str) -> Optional[Story]:
        """Read a story without locking it."""
        pass

    @abstractmethod
    def get_version(self, story_version_id: str) -> Optional[StoryVersion]:
        pass

    @abstractmethod
    def latest_version_id(self, story_id: str) -> Optional[str]:
        """Most recently created version of the story, or None if it has none."""
        pass

    @abstractmethod
    def load_snapshot(self, story_id: str, story_version_id: str) -> GraphSnapshot:
        """
        Load the claim/evidence subgraph of one version.

        Edge relations are normalized ('context_only' -> 'context').
        """
        pass

    @abstractmethod
    def mark_published(self, story_id: str, updated_at: datetime) -> None:
        """Set state = published and updated_at on a locked story."""
        pass

    @abstractmethod
    def insert_outbox_event(self, event: OutboxEvent) -> None:
        """Append an event row. Rows are never updated after insertion."""
        pass


class GraphStore(ABC):
    """
    Abstract interface for the story/claim/evidence graph.

    Implementations:
    - PostgresGraphStore: System of record (row locks, multi-statement transactions)
    - InMemoryGraphStore: Process-local store for development and tests
    """

    platform_id: str

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        """
        Open a publish transaction.

        Usage:
            with store.transaction() as tx:
                story = tx.lock_story(story_id)
                ...

        Raises:
            StoreError: On storage faults (including lock timeouts)
        """
        pass

    @abstractmethod
    def list_stories(
        self,
        state: Optional[StoryState] = None,
        limit: Optional[int] = None
    ) -> List[Story]:
        """
        List stories for the platform, most recently updated first.

        Args:
            state: Optional state filter
            limit: Page size, clamped to 1..200 (default 50)
        """
        pass

    @abstractmethod
    def get_story_detail(self, story_id: str) -> Optional[StoryDetail]:
        """Story with versions, claims, normalized edges and corrections."""
        pass

    @abstractmethod
    def list_outbox_events(self, story_id: Optional[str] = None) -> List[OutboxEvent]:
        """Outbox rows for the platform in event_id order (optionally for one story)."""
        pass

    @abstractmethod
    def get_store_name(self) -> str:
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """True if the store is reachable and healthy."""
        pass


def create_graph_store(config: Any, pool: Any = None) -> GraphStore:
    """
    Create a GraphStore from configuration.

    Args:
        config: StoryGateConfig
        pool: psycopg_pool.ConnectionPool (required for the postgres backend)

    Returns:
        GraphStore implementation

    Raises:
        ValueError: If the backend is invalid or the pool is missing
    """
    if config.backend == 'postgres':
        from storygate.storage.postgres_store import PostgresGraphStore

        if pool is None:
            raise ValueError("Postgres backend requires a connection pool")

        logger.info("Using PostgresGraphStore (authoritative)")
        return PostgresGraphStore(
            pool,
            platform_id=config.platform_id,
            lock_timeout_ms=config.transition.lock_timeout_ms,
            statement_timeout_ms=config.transition.statement_timeout_ms,
        )

    elif config.backend == 'memory':
        from storygate.storage.memory_store import InMemoryGraphStore

        logger.info("Using InMemoryGraphStore (non-durable)")
        return InMemoryGraphStore(
            platform_id=config.platform_id,
            lock_timeout=config.transition.lock_timeout_ms / 1000.0,
        )

    else:
        raise ValueError(f"Invalid backend: {config.backend}. Must be 'postgres' or 'memory'")

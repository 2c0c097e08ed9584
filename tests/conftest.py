"""
Shared pytest fixtures for the StoryGate test suite.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional, Tuple

import pytest

from storygate.core.models import ClaimType, StoryState, SupportStatus
from storygate.gate.outbox import OutboxEmitter
from storygate.gate.transition import TransitionManager
from storygate.storage.memory_store import InMemoryGraphStore

PLATFORM_ID = 'test-platform'

MIGRATIONS_DIR = Path(__file__).parent.parent / 'db' / 'migrations'


class TickingClock:
    """Deterministic clock: every call advances one second."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class StoryBuilder:
    """Seeds stories and claim/evidence graphs into an InMemoryGraphStore."""

    def __init__(self, store: InMemoryGraphStore):
        self.store = store

    def story(self, title: str = 'Harbour fire', state: StoryState = StoryState.DRAFT):
        story = self.store.add_story(title, state=state)
        version = self.store.add_version(story.story_id, f'# {title}')
        return story, version

    def claim(
        self,
        version,
        text: str,
        status: SupportStatus = SupportStatus.SUPPORTED,
        claim_type: ClaimType = ClaimType.FACTUAL,
        sources: Iterable[Tuple[str, str]] = (),
        relation: str = 'supports'
    ):
        """
        Add a claim with one edge per (source, source_class) pair.

        Each pair gets its own evidence blob.
        """
        claim = self.store.add_claim(
            version.story_version_id, text,
            support_status=status, claim_type=claim_type
        )
        for i, (source, source_class) in enumerate(sources):
            evidence = self.store.add_evidence(
                f's3://evidence/{claim.claim_id}/{i}',
                {'source': source, 'source_class': source_class}
            )
            self.store.add_edge(claim.claim_id, evidence.evidence_id_hash, relation)
        return claim

    def plain_claims(self, version, count: int, status: SupportStatus, primary: bool):
        """Non-high-impact factual claims, each with one supporting source."""
        source_class = 'primary' if primary else 'secondary'
        return [
            self.claim(
                version,
                f'The council discussed agenda item {i}',
                status=status,
                sources=[(f'source-{uuid.uuid4().hex[:6]}', source_class)]
            )
            for i in range(count)
        ]


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store(clock) -> InMemoryGraphStore:
    return InMemoryGraphStore(platform_id=PLATFORM_ID, lock_timeout=2.0, clock=clock)


@pytest.fixture
def builder(store) -> StoryBuilder:
    return StoryBuilder(store)


@pytest.fixture
def outbox() -> OutboxEmitter:
    return OutboxEmitter(platform_id=PLATFORM_ID)


@pytest.fixture
def manager(store, outbox, clock) -> TransitionManager:
    return TransitionManager(store=store, outbox=outbox, clock=clock)


# ----------------------------------------------------------------------
# Postgres (only for tests marked `postgres`)
# ----------------------------------------------------------------------

@pytest.fixture(scope='session')
def db_url() -> str:
    """Get database URL from environment."""
    url = os.getenv('DATABASE_URL')
    if not url:
        pytest.skip('DATABASE_URL not set')
    return url


@pytest.fixture(scope='session')
def db_migrations_applied(db_url: str) -> bool:
    """Apply migrations once per session; skip if Postgres is unreachable."""
    psycopg = pytest.importorskip('psycopg')

    try:
        with psycopg.connect(db_url, connect_timeout=3) as conn:
            for migration_file in sorted(MIGRATIONS_DIR.glob('*.sql')):
                with conn.cursor() as cur:
                    cur.execute(migration_file.read_text(encoding='utf-8'))
            conn.commit()
    except psycopg.OperationalError as e:
        pytest.skip(f'Postgres unavailable: {e}')

    return True


@pytest.fixture
def pg_pool(db_url: str, db_migrations_applied: bool):
    from psycopg_pool import ConnectionPool

    pool = ConnectionPool(conninfo=db_url, min_size=1, max_size=4, open=True)
    yield pool
    pool.close()


@pytest.fixture
def pg_platform_id(pg_pool) -> str:
    """Unique platform per test; rows are deleted afterwards."""
    platform_id = f'test-{uuid.uuid4().hex[:10]}'
    yield platform_id

    with pg_pool.connection() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM event_outbox WHERE platform_id = %s", (platform_id,))
            cur.execute("DELETE FROM corrections WHERE platform_id = %s", (platform_id,))
            cur.execute("""
                DELETE FROM claim_evidence_edges WHERE claim_id IN (
                    SELECT c.claim_id FROM claims c
                    JOIN stories s ON s.story_id = c.story_id
                    WHERE s.platform_id = %s
                )
            """, (platform_id,))
            cur.execute("""
                DELETE FROM claims WHERE story_id IN (
                    SELECT story_id FROM stories WHERE platform_id = %s
                )
            """, (platform_id,))
            cur.execute("""
                DELETE FROM story_versions WHERE story_id IN (
                    SELECT story_id FROM stories WHERE platform_id = %s
                )
            """, (platform_id,))
            cur.execute("DELETE FROM stories WHERE platform_id = %s", (platform_id,))
            # Evidence is shared across platforms; test blobs are namespaced by platform
            cur.execute(
                "DELETE FROM evidence_objects WHERE blob_uri LIKE %s",
                (f's3://{platform_id}/%',)
            )
        conn.commit()

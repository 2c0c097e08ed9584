"""
StoryGate - PostgresGraphStore

Postgres is the SOLE SOURCE OF TRUTH for stories, claims, evidence and the
event outbox.

RESPONSIBILITIES:
- Publish transactions: SELECT ... FOR UPDATE on the story row, snapshot
  reads, state update and outbox insert, committed together
- Transaction-local lock_timeout / statement_timeout so a caller timeout
  aborts and rolls back instead of hanging
- Non-gating reads (feed, story detail) outside the story lock
- Normalization of the legacy 'context_only' relation in SQL

Every query is scoped to the store's platform_id.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional
from datetime import datetime
import logging

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from storygate.core.models import (
    Claim,
    ClaimType,
    EvidenceEdge,
    EvidenceObject,
    GraphSnapshot,
    OutboxEvent,
    Story,
    StoryState,
    StoryVersion,
    SupportStatus,
)
from storygate.errors import StoreError
from storygate.storage.graph_store import (
    Correction,
    GraphStore,
    GraphTransaction,
    StoryDetail,
    clamp_feed_limit,
)

logger = logging.getLogger(__name__)

STORY_COLUMNS = "story_id, platform_id, title, state, created_at, updated_at"

VERSION_COLUMNS = "story_version_id, story_id, body_markdown, disclosure_markdown, created_at"

CLAIM_COLUMNS = (
    "claim_id, story_id, story_version_id, claim_type, text, support_status, created_at"
)

EDGE_COLUMNS = """
    claim_id, evidence_id_hash,
    CASE
        WHEN relation = 'context_only' THEN 'context'
        ELSE relation
    END AS relation,
    strength
"""


def _story_from_row(row: Dict[str, Any]) -> Story:
    return Story(
        story_id=row['story_id'],
        platform_id=row['platform_id'],
        title=row['title'],
        state=StoryState(row['state']),
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


def _version_from_row(row: Dict[str, Any]) -> StoryVersion:
    return StoryVersion(
        story_version_id=row['story_version_id'],
        story_id=row['story_id'],
        body=row['body_markdown'],
        disclosure=row['disclosure_markdown'],
        created_at=row['created_at']
    )


def _claim_from_row(row: Dict[str, Any]) -> Claim:
    return Claim(
        claim_id=row['claim_id'],
        story_id=row['story_id'],
        story_version_id=row['story_version_id'],
        claim_type=ClaimType(row['claim_type']),
        text=row['text'],
        support_status=SupportStatus(row['support_status']),
        created_at=row['created_at']
    )


def _edge_from_row(row: Dict[str, Any]) -> EvidenceEdge:
    strength = row['strength']
    return EvidenceEdge(
        claim_id=row['claim_id'],
        evidence_id_hash=row['evidence_id_hash'],
        relation=row['relation'],
        strength=float(strength) if strength is not None else 0.5
    )


def _evidence_from_row(row: Dict[str, Any]) -> EvidenceObject:
    return EvidenceObject(
        evidence_id_hash=row['evidence_id_hash'],
        blob_uri=row['blob_uri'],
        media_type=row['media_type'],
        provenance=row['provenance'] or {}
    )


class PostgresGraphTransaction(GraphTransaction):
    """GraphTransaction bound to one open psycopg cursor."""

    def __init__(self, cursor: Any, platform_id: str):
        self.cursor = cursor
        self.platform_id = platform_id

    def lock_story(self, story_id: str) -> Optional[Story]:
        self.cursor.execute(f"""
            SELECT {STORY_COLUMNS}
            FROM stories
            WHERE platform_id = %s AND story_id = %s
            FOR UPDATE
        """, (self.platform_id, story_id))

        row = self.cursor.fetchone()
        return _story_from_row(row) if row else None

    def get_story(self, story_id: str) -> Optional[Story]:
        self.cursor.execute(f"""
            SELECT {STORY_COLUMNS}
            FROM stories
            WHERE platform_id = %s AND story_id = %s
        """, (self.platform_id, story_id))

        row = self.cursor.fetchone()
        return _story_from_row(row) if row else None

    def get_version(self, story_version_id: str) -> Optional[StoryVersion]:
        self.cursor.execute("""
            SELECT v.story_version_id, v.story_id, v.body_markdown,
                   v.disclosure_markdown, v.created_at
            FROM story_versions v
            JOIN stories s ON s.story_id = v.story_id
            WHERE v.story_version_id = %s AND s.platform_id = %s
        """, (story_version_id, self.platform_id))

        row = self.cursor.fetchone()
        return _version_from_row(row) if row else None

    def latest_version_id(self, story_id: str) -> Optional[str]:
        self.cursor.execute("""
            SELECT story_version_id
            FROM story_versions
            WHERE story_id = %s
            ORDER BY created_at DESC, story_version_id DESC
            LIMIT 1
        """, (story_id,))

        row = self.cursor.fetchone()
        return row['story_version_id'] if row else None

    def load_snapshot(self, story_id: str, story_version_id: str) -> GraphSnapshot:
        self.cursor.execute(f"""
            SELECT {CLAIM_COLUMNS}
            FROM claims
            WHERE story_id = %s AND story_version_id = %s
            ORDER BY created_at ASC, claim_id ASC
        """, (story_id, story_version_id))
        claims = tuple(_claim_from_row(r) for r in self.cursor.fetchall())

        self.cursor.execute(f"""
            SELECT {EDGE_COLUMNS}
            FROM claim_evidence_edges
            WHERE claim_id IN (
                SELECT claim_id FROM claims
                WHERE story_id = %s AND story_version_id = %s
            )
            ORDER BY created_at ASC, claim_id ASC, evidence_id_hash ASC
        """, (story_id, story_version_id))
        edges = tuple(_edge_from_row(r) for r in self.cursor.fetchall())

        hashes = sorted({e.evidence_id_hash for e in edges})
        evidence: Dict[str, EvidenceObject] = {}
        if hashes:
            self.cursor.execute("""
                SELECT evidence_id_hash, blob_uri, media_type, provenance
                FROM evidence_objects
                WHERE evidence_id_hash = ANY(%s)
            """, (hashes,))
            for row in self.cursor.fetchall():
                ev = _evidence_from_row(row)
                evidence[ev.evidence_id_hash] = ev

        logger.debug(
            f"Loaded snapshot {story_id}@{story_version_id}: "
            f"{len(claims)} claims, {len(edges)} edges, {len(evidence)} evidence objects"
        )

        return GraphSnapshot(
            story_id=story_id,
            story_version_id=story_version_id,
            claims=claims,
            edges=edges,
            evidence=evidence
        )

    def mark_published(self, story_id: str, updated_at: datetime) -> None:
        self.cursor.execute("""
            UPDATE stories
            SET state = 'published', updated_at = %s
            WHERE platform_id = %s AND story_id = %s
            AND state <> 'published'
        """, (updated_at, self.platform_id, story_id))

        if self.cursor.rowcount != 1:
            raise StoreError(
                f"Expected to publish exactly one row for story {story_id}, "
                f"updated {self.cursor.rowcount}"
            )

    def insert_outbox_event(self, event: OutboxEvent) -> None:
        self.cursor.execute("""
            INSERT INTO event_outbox
            (event_id, platform_id, event_type, event_version, payload)
            VALUES (%s, %s, %s, %s, %s)
        """, (
            event.event_id,
            event.platform_id,
            event.event_type,
            event.event_version,
            Jsonb(event.payload)
        ))


class PostgresGraphStore(GraphStore):
    """
    Postgres-based GraphStore (authoritative).

    Tables:
    - stories, story_versions, claims
    - evidence_objects, claim_evidence_edges
    - corrections
    - event_outbox (append-only; delivery is owned by the relay)
    """

    def __init__(
        self,
        pool: Any,
        platform_id: str,
        lock_timeout_ms: int = 5000,
        statement_timeout_ms: int = 15000
    ):
        """
        Initialize Postgres store.

        Args:
            pool: psycopg_pool.ConnectionPool
            platform_id: Platform whose stories this store serves
            lock_timeout_ms: Max wait for the story row lock
            statement_timeout_ms: Max duration of any statement in a publish
        """
        self.pool = pool
        self.platform_id = platform_id
        self.lock_timeout_ms = lock_timeout_ms
        self.statement_timeout_ms = statement_timeout_ms
        logger.debug("PostgresGraphStore initialized")

    @contextmanager
    def transaction(self) -> Iterator[PostgresGraphTransaction]:
        try:
            with self.pool.connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    try:
                        # Transaction-local: reset on commit/rollback
                        cur.execute(
                            "SELECT set_config('lock_timeout', %s, true), "
                            "set_config('statement_timeout', %s, true)",
                            (f"{int(self.lock_timeout_ms)}ms",
                             f"{int(self.statement_timeout_ms)}ms")
                        )
                        yield PostgresGraphTransaction(cur, self.platform_id)
                        conn.commit()
                    except BaseException:
                        conn.rollback()
                        raise
        except psycopg.Error as e:
            logger.error(f"Publish transaction failed: {e}")
            raise StoreError(str(e)) from e

    def list_stories(
        self,
        state: Optional[StoryState] = None,
        limit: Optional[int] = None
    ) -> List[Story]:
        state_value = StoryState(state).value if state else None

        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    SELECT {STORY_COLUMNS}
                    FROM stories
                    WHERE platform_id = %s
                    AND (%s::text IS NULL OR state = %s::text)
                    ORDER BY updated_at DESC NULLS LAST, story_id DESC
                    LIMIT %s
                """, (self.platform_id, state_value, state_value, clamp_feed_limit(limit)))

                return [_story_from_row(r) for r in cur.fetchall()]

    def get_story_detail(self, story_id: str) -> Optional[StoryDetail]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(f"""
                    SELECT {STORY_COLUMNS}
                    FROM stories
                    WHERE platform_id = %s AND story_id = %s
                """, (self.platform_id, story_id))

                row = cur.fetchone()
                if not row:
                    logger.warning(f"Story {story_id} not found")
                    return None

                story = _story_from_row(row)

                cur.execute(f"""
                    SELECT {VERSION_COLUMNS}
                    FROM story_versions
                    WHERE story_id = %s
                    ORDER BY created_at DESC, story_version_id DESC
                """, (story_id,))
                versions = [_version_from_row(r) for r in cur.fetchall()]

                cur.execute(f"""
                    SELECT {CLAIM_COLUMNS}
                    FROM claims
                    WHERE story_id = %s
                    ORDER BY created_at ASC, claim_id ASC
                """, (story_id,))
                claims = [_claim_from_row(r) for r in cur.fetchall()]

                cur.execute(f"""
                    SELECT {EDGE_COLUMNS}
                    FROM claim_evidence_edges
                    WHERE claim_id IN (
                        SELECT claim_id FROM claims WHERE story_id = %s
                    )
                    ORDER BY created_at ASC
                """, (story_id,))
                edges = [_edge_from_row(r) for r in cur.fetchall()]

                cur.execute("""
                    SELECT correction_id, claim_id, reason, created_at
                    FROM corrections
                    WHERE platform_id = %s
                    AND claim_id IN (SELECT claim_id FROM claims WHERE story_id = %s)
                    ORDER BY created_at ASC
                """, (self.platform_id, story_id))
                corrections = [
                    Correction(
                        correction_id=r['correction_id'],
                        claim_id=r['claim_id'],
                        reason=r['reason'],
                        created_at=r['created_at']
                    )
                    for r in cur.fetchall()
                ]

        return StoryDetail(
            story=story,
            versions=versions,
            claims=claims,
            evidence_edges=edges,
            corrections=corrections
        )

    def list_outbox_events(self, story_id: Optional[str] = None) -> List[OutboxEvent]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    SELECT event_id, platform_id, event_type, event_version, payload
                    FROM event_outbox
                    WHERE platform_id = %s
                    AND (%s::text IS NULL OR payload->>'story_id' = %s::text)
                    ORDER BY event_id ASC
                """, (self.platform_id, story_id, story_id))

                return [
                    OutboxEvent(
                        event_id=r['event_id'],
                        platform_id=r['platform_id'],
                        event_type=r['event_type'],
                        event_version=r['event_version'],
                        payload=r['payload']
                    )
                    for r in cur.fetchall()
                ]

    def get_store_name(self) -> str:
        return 'postgres'

    def is_available(self) -> bool:
        """
        Check if Postgres is available.

        Returns:
            True if a pooled connection answers SELECT 1
        """
        try:
            with self.pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
            return True
        except Exception as e:
            logger.error(f"Postgres health check failed: {e}")
            return False

"""
StoryGate - InMemoryGraphStore

Process-local GraphStore for development and tests.

All state lives on the store instance (no module-level maps), so each
application or test owns its own graph.

Transaction semantics match the Postgres store:
- lock_story() takes a per-story exclusive lock (with timeout); other
  stories are unaffected
- writes are staged on the transaction and applied atomically on commit
- any exception inside the transaction discards the staged writes
- readers outside a transaction only ever see committed state
"""

from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple
from datetime import datetime, timezone
import logging
import threading

from storygate.core.classifier import ClaimClassifier, LexiconClassifier
from storygate.core.ids import IdGenerator, UlidGenerator
from storygate.core.models import (
    Claim,
    ClaimType,
    EdgeRelation,
    EvidenceEdge,
    EvidenceObject,
    GraphSnapshot,
    OutboxEvent,
    Story,
    StoryState,
    StoryVersion,
    SupportStatus,
    evidence_id_hash_for,
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

PUBLISHED_EVENT_TYPE = "story.published.v1"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryGraphTransaction(GraphTransaction):
    """Staged unit of work against an InMemoryGraphStore."""

    def __init__(self, store: 'InMemoryGraphStore'):
        self.store = store
        self.held_locks: Dict[str, threading.Lock] = {}
        self.staged_stories: Dict[str, Story] = {}
        self.staged_events: List[OutboxEvent] = []

    def lock_story(self, story_id: str) -> Optional[Story]:
        if story_id not in self.held_locks:
            lock = self.store._story_lock(story_id)
            if not lock.acquire(timeout=self.store.lock_timeout):
                raise StoreError(
                    f"Timed out after {self.store.lock_timeout}s waiting for lock on story {story_id}"
                )
            self.held_locks[story_id] = lock

        return self.get_story(story_id)

    def get_story(self, story_id: str) -> Optional[Story]:
        if story_id in self.staged_stories:
            return replace(self.staged_stories[story_id])
        return self.store._committed_story(story_id)

    def get_version(self, story_version_id: str) -> Optional[StoryVersion]:
        with self.store._data_lock:
            return self.store._versions.get(story_version_id)

    def latest_version_id(self, story_id: str) -> Optional[str]:
        with self.store._data_lock:
            return self.store._latest_version_id(story_id)

    def load_snapshot(self, story_id: str, story_version_id: str) -> GraphSnapshot:
        with self.store._data_lock:
            claims = tuple(
                c for c in self.store._claims.values()
                if c.story_id == story_id and c.story_version_id == story_version_id
            )
            claim_ids = {c.claim_id for c in claims}
            edges = tuple(
                e for e in self.store._edges.values() if e.claim_id in claim_ids
            )
            evidence = {
                e.evidence_id_hash: self.store._evidence[e.evidence_id_hash]
                for e in edges
                if e.evidence_id_hash in self.store._evidence
            }

        return GraphSnapshot(
            story_id=story_id,
            story_version_id=story_version_id,
            claims=claims,
            edges=edges,
            evidence=evidence
        )

    def mark_published(self, story_id: str, updated_at: datetime) -> None:
        if story_id not in self.held_locks:
            raise StoreError(f"Story {story_id} must be locked before it is published")

        story = self.get_story(story_id)
        if story is None or story.state == StoryState.PUBLISHED:
            raise StoreError(f"Expected to publish exactly one row for story {story_id}")

        self.staged_stories[story_id] = replace(
            story, state=StoryState.PUBLISHED, updated_at=updated_at
        )

    def insert_outbox_event(self, event: OutboxEvent) -> None:
        self.staged_events.append(event)

    def release(self) -> None:
        for lock in self.held_locks.values():
            lock.release()
        self.held_locks.clear()


class InMemoryGraphStore(GraphStore):
    """
    In-memory GraphStore.

    Usage:
        store = InMemoryGraphStore(platform_id='local')
        story = store.add_story('Harbour fire')
        version = store.add_version(story.story_id, 'Body ...')
        claim = store.add_claim(version.story_version_id, '12 people were injured',
                                support_status=SupportStatus.SUPPORTED)
        ev = store.add_evidence('s3://bucket/a.pdf', {'source': 'fire-dept',
                                                      'source_class': 'primary'})
        store.add_edge(claim.claim_id, ev.evidence_id_hash, 'supports')
    """

    def __init__(
        self,
        platform_id: str,
        lock_timeout: float = 5.0,
        clock: Optional[Callable[[], datetime]] = None,
        id_generator: Optional[IdGenerator] = None,
        classifier: Optional[ClaimClassifier] = None
    ):
        self.platform_id = platform_id
        self.lock_timeout = lock_timeout
        self.clock = clock or _utcnow
        self.ids = id_generator or UlidGenerator()
        self.classifier = classifier or LexiconClassifier()

        self._data_lock = threading.RLock()
        self._story_locks: Dict[str, threading.Lock] = {}

        self._stories: Dict[str, Story] = {}
        self._versions: Dict[str, StoryVersion] = {}
        self._claims: Dict[str, Claim] = {}
        self._evidence: Dict[str, EvidenceObject] = {}
        self._edges: Dict[Tuple[str, str], EvidenceEdge] = {}
        self._corrections: List[Correction] = []
        self._outbox: List[OutboxEvent] = []

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[InMemoryGraphTransaction]:
        tx = InMemoryGraphTransaction(self)
        try:
            yield tx
            self._commit(tx)
        finally:
            tx.release()

    def _commit(self, tx: InMemoryGraphTransaction) -> None:
        with self._data_lock:
            existing_ids: Set[str] = {e.event_id for e in self._outbox}
            published_stories = {
                e.payload.get('story_id') for e in self._outbox
                if e.event_type == PUBLISHED_EVENT_TYPE
            }

            for event in tx.staged_events:
                if event.event_id in existing_ids:
                    raise StoreError(f"Duplicate outbox event_id {event.event_id}")
                if event.event_type == PUBLISHED_EVENT_TYPE:
                    story_id = event.payload.get('story_id')
                    if story_id in published_stories:
                        raise StoreError(f"Story {story_id} already has a publish event")
                    published_stories.add(story_id)
                existing_ids.add(event.event_id)

            self._stories.update(tx.staged_stories)
            self._outbox.extend(tx.staged_events)

        logger.debug(
            f"Committed {len(tx.staged_stories)} story update(s), "
            f"{len(tx.staged_events)} outbox event(s)"
        )

    def _story_lock(self, story_id: str) -> threading.Lock:
        with self._data_lock:
            lock = self._story_locks.get(story_id)
            if lock is None:
                lock = threading.Lock()
                self._story_locks[story_id] = lock
            return lock

    def _committed_story(self, story_id: str) -> Optional[Story]:
        with self._data_lock:
            story = self._stories.get(story_id)
            return replace(story) if story else None

    def _latest_version_id(self, story_id: str) -> Optional[str]:
        versions = [v for v in self._versions.values() if v.story_id == story_id]
        if not versions:
            return None
        latest = max(versions, key=lambda v: (v.created_at, v.story_version_id))
        return latest.story_version_id

    # ------------------------------------------------------------------
    # Non-gating reads
    # ------------------------------------------------------------------

    def list_stories(
        self,
        state: Optional[StoryState] = None,
        limit: Optional[int] = None
    ) -> List[Story]:
        with self._data_lock:
            stories = [replace(s) for s in self._stories.values()]

        if state:
            state = StoryState(state)
            stories = [s for s in stories if s.state == state]

        stories.sort(
            key=lambda s: (s.updated_at or s.created_at, s.story_id),
            reverse=True
        )
        return stories[:clamp_feed_limit(limit)]

    def get_story_detail(self, story_id: str) -> Optional[StoryDetail]:
        with self._data_lock:
            story = self._stories.get(story_id)
            if story is None:
                logger.warning(f"Story {story_id} not found")
                return None

            versions = sorted(
                (v for v in self._versions.values() if v.story_id == story_id),
                key=lambda v: (v.created_at, v.story_version_id),
                reverse=True
            )
            claims = [c for c in self._claims.values() if c.story_id == story_id]
            claim_ids = {c.claim_id for c in claims}
            edges = [e for e in self._edges.values() if e.claim_id in claim_ids]
            corrections = [c for c in self._corrections if c.claim_id in claim_ids]

            return StoryDetail(
                story=replace(story),
                versions=versions,
                claims=claims,
                evidence_edges=edges,
                corrections=corrections
            )

    def list_outbox_events(self, story_id: Optional[str] = None) -> List[OutboxEvent]:
        with self._data_lock:
            events = list(self._outbox)

        if story_id is not None:
            events = [e for e in events if e.payload.get('story_id') == story_id]
        return sorted(events, key=lambda e: e.event_id)

    def get_store_name(self) -> str:
        return 'memory'

    def is_available(self) -> bool:
        return True

    # ------------------------------------------------------------------
    # Seeding (collaborator surface: story, claim and evidence services)
    # ------------------------------------------------------------------

    def add_story(
        self,
        title: str,
        story_id: Optional[str] = None,
        state: StoryState = StoryState.DRAFT,
        created_at: Optional[datetime] = None
    ) -> Story:
        now = created_at or self.clock()
        story = Story(
            story_id=story_id or self.ids.new_id(),
            platform_id=self.platform_id,
            title=title,
            state=StoryState(state),
            created_at=now,
            updated_at=now
        )
        with self._data_lock:
            if story.story_id in self._stories:
                raise ValueError(f"Story {story.story_id} already exists")
            self._stories[story.story_id] = story
        return replace(story)

    def add_version(
        self,
        story_id: str,
        body: str,
        story_version_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        disclosure: Optional[str] = None
    ) -> StoryVersion:
        version = StoryVersion(
            story_version_id=story_version_id or self.ids.new_id(),
            story_id=story_id,
            body=body,
            created_at=created_at or self.clock(),
            disclosure=disclosure
        )
        with self._data_lock:
            if story_id not in self._stories:
                raise ValueError(f"Story {story_id} does not exist")
            if version.story_version_id in self._versions:
                raise ValueError(f"Version {version.story_version_id} already exists")
            self._versions[version.story_version_id] = version
        return version

    def add_claim(
        self,
        story_version_id: str,
        text: str,
        support_status: SupportStatus = SupportStatus.UNSUPPORTED,
        claim_type: Optional[ClaimType] = None,
        claim_id: Optional[str] = None
    ) -> Claim:
        with self._data_lock:
            version = self._versions.get(story_version_id)
            if version is None:
                raise ValueError(f"Version {story_version_id} does not exist")

            claim = Claim(
                claim_id=claim_id or self.ids.new_id(),
                story_id=version.story_id,
                story_version_id=story_version_id,
                claim_type=ClaimType(claim_type) if claim_type else self.classifier.classify(text),
                text=text,
                support_status=SupportStatus(support_status),
                created_at=self.clock()
            )
            if claim.claim_id in self._claims:
                raise ValueError(f"Claim {claim.claim_id} already exists")
            self._claims[claim.claim_id] = claim
        return claim

    def add_evidence(
        self,
        blob_uri: str,
        provenance: Optional[Dict] = None,
        media_type: str = 'application/octet-stream'
    ) -> EvidenceObject:
        """Register evidence; the same blob_uri always yields the same object."""
        evidence_id_hash = evidence_id_hash_for(blob_uri)
        with self._data_lock:
            existing = self._evidence.get(evidence_id_hash)
            if existing is not None:
                return existing

            evidence = EvidenceObject(
                evidence_id_hash=evidence_id_hash,
                blob_uri=blob_uri,
                media_type=media_type,
                provenance=dict(provenance or {})
            )
            self._evidence[evidence_id_hash] = evidence
        return evidence

    def add_edge(
        self,
        claim_id: str,
        evidence_id_hash: str,
        relation: EdgeRelation = EdgeRelation.SUPPORTS,
        strength: float = 0.5
    ) -> EvidenceEdge:
        edge = EvidenceEdge(
            claim_id=claim_id,
            evidence_id_hash=evidence_id_hash,
            relation=relation,
            strength=strength
        )
        with self._data_lock:
            if claim_id not in self._claims:
                raise ValueError(f"Claim {claim_id} does not exist")
            if evidence_id_hash not in self._evidence:
                raise ValueError(f"Evidence {evidence_id_hash} does not exist")
            self._edges[(claim_id, evidence_id_hash)] = edge
        return edge

    def add_correction(self, claim_id: str, reason: str) -> Correction:
        with self._data_lock:
            if claim_id not in self._claims:
                raise ValueError(f"Claim {claim_id} does not exist")
            correction = Correction(
                correction_id=self.ids.new_id(),
                claim_id=claim_id,
                reason=reason,
                created_at=self.clock()
            )
            self._corrections.append(correction)
        return correction

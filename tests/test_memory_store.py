"""
Tests for InMemoryGraphStore: transactions, locking and non-gating reads.
"""

from datetime import datetime, timezone
import threading

import pytest

from storygate.core.models import (
    ClaimType,
    EdgeRelation,
    OutboxEvent,
    StoryState,
    SupportStatus,
    evidence_id_hash_for,
)
from storygate.errors import StoreError
from storygate.storage.graph_store import FEED_DEFAULT_LIMIT, FEED_MAX_LIMIT, clamp_feed_limit
from storygate.storage.memory_store import InMemoryGraphStore


def published_event(event_id, story_id, platform_id='test-platform'):
    return OutboxEvent(
        event_id=event_id,
        platform_id=platform_id,
        event_type='story.published.v1',
        event_version='v1',
        payload={'story_id': story_id, 'story_version_id': 'v', 'publication_scope': 'local'}
    )


class TestTransactions:

    def test_commit_applies_staged_writes(self, store, builder, clock):
        story, _ = builder.story()

        with store.transaction() as tx:
            tx.lock_story(story.story_id)
            tx.mark_published(story.story_id, clock())
            tx.insert_outbox_event(published_event('E1', story.story_id))

            # Not visible outside the transaction until commit
            assert store.get_story_detail(story.story_id).story.state == StoryState.DRAFT
            assert tx.get_story(story.story_id).state == StoryState.PUBLISHED

        assert store.get_story_detail(story.story_id).story.state == StoryState.PUBLISHED
        assert [e.event_id for e in store.list_outbox_events()] == ['E1']

    def test_exception_discards_staged_writes(self, store, builder, clock):
        story, _ = builder.story()

        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.lock_story(story.story_id)
                tx.mark_published(story.story_id, clock())
                tx.insert_outbox_event(published_event('E1', story.story_id))
                raise RuntimeError("boom")

        assert store.get_story_detail(story.story_id).story.state == StoryState.DRAFT
        assert store.list_outbox_events() == []

    def test_lock_released_after_rollback(self, store, builder):
        story, _ = builder.story()

        with pytest.raises(RuntimeError):
            with store.transaction() as tx:
                tx.lock_story(story.story_id)
                raise RuntimeError("boom")

        with store.transaction() as tx:
            assert tx.lock_story(story.story_id).story_id == story.story_id

    def test_mark_published_requires_lock(self, store, builder, clock):
        story, _ = builder.story()

        with pytest.raises(StoreError):
            with store.transaction() as tx:
                tx.mark_published(story.story_id, clock())

    def test_mark_published_twice_rejected(self, store, builder, clock):
        story, _ = builder.story(state=StoryState.PUBLISHED)

        with pytest.raises(StoreError):
            with store.transaction() as tx:
                tx.lock_story(story.story_id)
                tx.mark_published(story.story_id, clock())

    def test_second_publish_event_rejected_on_commit(self, store, builder):
        story, _ = builder.story()
        with store.transaction() as tx:
            tx.insert_outbox_event(published_event('E1', story.story_id))

        with pytest.raises(StoreError):
            with store.transaction() as tx:
                tx.insert_outbox_event(published_event('E2', story.story_id))

        assert len(store.list_outbox_events(story.story_id)) == 1

    def test_duplicate_event_id_rejected(self, store, builder):
        first, _ = builder.story('A')
        second, _ = builder.story('B')
        with store.transaction() as tx:
            tx.insert_outbox_event(published_event('E1', first.story_id))

        with pytest.raises(StoreError):
            with store.transaction() as tx:
                tx.insert_outbox_event(published_event('E1', second.story_id))

    def test_lock_timeout(self, builder, clock):
        store = InMemoryGraphStore(platform_id='p', lock_timeout=0.05, clock=clock)
        story = store.add_story('Locked')
        held = threading.Event()
        release = threading.Event()

        def hold():
            with store.transaction() as tx:
                tx.lock_story(story.story_id)
                held.set()
                release.wait(5)

        holder = threading.Thread(target=hold)
        holder.start()
        assert held.wait(5)

        try:
            with pytest.raises(StoreError):
                with store.transaction() as tx:
                    tx.lock_story(story.story_id)
        finally:
            release.set()
            holder.join(5)

    def test_lock_is_reentrant_within_transaction(self, store, builder):
        story, _ = builder.story()

        with store.transaction() as tx:
            tx.lock_story(story.story_id)
            assert tx.lock_story(story.story_id) is not None

    def test_lock_unknown_story_returns_none(self, store):
        with store.transaction() as tx:
            assert tx.lock_story('missing') is None


class TestVersions:

    def test_latest_version_by_created_at(self, store, builder):
        story, _ = builder.story()
        latest = store.add_version(story.story_id, 'second')

        with store.transaction() as tx:
            assert tx.latest_version_id(story.story_id) == latest.story_version_id

    def test_latest_version_tie_broken_by_id(self, store):
        story = store.add_story('Tie')
        moment = datetime(2026, 3, 1, tzinfo=timezone.utc)
        store.add_version(story.story_id, 'a', story_version_id='V-A', created_at=moment)
        store.add_version(story.story_id, 'b', story_version_id='V-B', created_at=moment)

        with store.transaction() as tx:
            assert tx.latest_version_id(story.story_id) == 'V-B'

    def test_no_versions(self, store):
        story = store.add_story('Empty')

        with store.transaction() as tx:
            assert tx.latest_version_id(story.story_id) is None

    def test_snapshot_scoped_to_version(self, store, builder):
        story, first = builder.story()
        builder.claim(first, 'Old claim', sources=[('a', 'primary')])
        second = store.add_version(story.story_id, 'second')
        builder.claim(second, 'New claim', sources=[('b', 'primary')])

        with store.transaction() as tx:
            snapshot = tx.load_snapshot(story.story_id, second.story_version_id)

        assert [c.text for c in snapshot.claims] == ['New claim']
        assert len(snapshot.edges) == 1
        assert set(snapshot.evidence) == {snapshot.edges[0].evidence_id_hash}


class TestSeeding:

    def test_claim_type_classified_when_omitted(self, store, builder):
        _, version = builder.story()

        claim = store.add_claim(version.story_version_id, 'Unemployment fell to 4%')

        assert claim.claim_type == ClaimType.STATISTICAL
        assert claim.support_status == SupportStatus.UNSUPPORTED

    def test_evidence_deduplicated_by_blob_uri(self, store):
        first = store.add_evidence('s3://b/doc.pdf', {'source': 'a'})
        second = store.add_evidence('s3://b/doc.pdf', {'source': 'b'})

        assert first is second
        assert first.evidence_id_hash == evidence_id_hash_for('s3://b/doc.pdf')

    def test_edge_requires_existing_nodes(self, store, builder):
        _, version = builder.story()
        claim = store.add_claim(version.story_version_id, 'Text')

        with pytest.raises(ValueError):
            store.add_edge(claim.claim_id, 'missing')

        with pytest.raises(ValueError):
            store.add_edge('missing', store.add_evidence('s3://b/x').evidence_id_hash)

    def test_legacy_relation_normalized(self, store, builder):
        _, version = builder.story()
        claim = store.add_claim(version.story_version_id, 'Text')
        evidence = store.add_evidence('s3://b/x')

        edge = store.add_edge(claim.claim_id, evidence.evidence_id_hash, 'context_only')

        assert edge.relation == EdgeRelation.CONTEXT

    def test_version_requires_story(self, store):
        with pytest.raises(ValueError):
            store.add_version('missing', 'body')


class TestFeed:

    def test_clamp_feed_limit(self):
        assert clamp_feed_limit(None) == FEED_DEFAULT_LIMIT
        assert clamp_feed_limit(0) == 1
        assert clamp_feed_limit(10_000) == FEED_MAX_LIMIT

    def test_newest_first(self, store):
        first = store.add_story('first')
        second = store.add_story('second')

        assert [s.story_id for s in store.list_stories()] == [second.story_id, first.story_id]

    def test_state_filter_and_limit(self, store):
        store.add_story('draft')
        published = [store.add_story(f'p{i}', state=StoryState.PUBLISHED) for i in range(3)]

        stories = store.list_stories(state=StoryState.PUBLISHED, limit=2)

        assert len(stories) == 2
        assert {s.story_id for s in stories} <= {s.story_id for s in published}

    def test_detail(self, store, builder):
        story, version = builder.story()
        claim = builder.claim(version, 'Claim', sources=[('a', 'primary')])
        store.add_correction(claim.claim_id, 'Misattributed quote')

        detail = store.get_story_detail(story.story_id)

        assert detail.story.story_id == story.story_id
        assert [v.story_version_id for v in detail.versions] == [version.story_version_id]
        assert [c.claim_id for c in detail.claims] == [claim.claim_id]
        assert len(detail.evidence_edges) == 1
        assert detail.corrections[0].reason == 'Misattributed quote'

    def test_detail_missing(self, store):
        assert store.get_story_detail('missing') is None

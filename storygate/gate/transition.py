"""
StoryGate - Transition Manager

Runs the publish gate as one atomic unit:

1. Begin a transaction and lock the story row
2. Re-read state under the lock (published -> AlreadyPublished)
3. Resolve the version and aggregate its claim/evidence graph
4. Apply the gate policy (fail -> GateFailed, nothing written)
5. Mark the story published and append the outbox event, then commit

Outcomes:
- PublishResult on success
- StoryNotFound, AlreadyPublished, GateFailed: expected, rolled back
- InternalGateError: storage/transaction fault, rolled back, safe to retry
"""

from typing import Any, Callable, Dict, Optional
from dataclasses import dataclass
from datetime import datetime, timezone

import structlog

from storygate.core.aggregator import GateMetrics, GraphAggregator
from storygate.core.models import StoryState
from storygate.core.policy import GateThresholds, failed_predicates
from storygate.errors import (
    AlreadyPublished,
    GateFailed,
    InternalGateError,
    PublishGateError,
    StoryNotFound,
)
from storygate.gate.outbox import OutboxEmitter
from storygate.storage.graph_store import GraphStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class PublishResult:
    story_id: str
    state: StoryState
    story_version_id: str
    metrics: GateMetrics
    event_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "story_id": self.story_id,
            "state": self.state.value,
            "story_version_id": self.story_version_id,
            "metrics": self.metrics.to_dict(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TransitionManager:
    """
    Orchestrates lock, aggregate, decide, mutate and enqueue.

    Usage:
        manager = TransitionManager(store, OutboxEmitter(platform_id))
        try:
            result = manager.evaluate_and_publish(story_id)
        except GateFailed as e:
            print(e.failed, e.metrics.to_dict())
    """

    def __init__(
        self,
        store: GraphStore,
        outbox: OutboxEmitter,
        thresholds: Optional[GateThresholds] = None,
        aggregator: Optional[GraphAggregator] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.outbox = outbox
        self.thresholds = thresholds or GateThresholds()
        self.aggregator = aggregator or GraphAggregator()
        self.clock = clock or _utcnow

    def evaluate_and_publish(
        self,
        story_id: str,
        story_version_id: Optional[str] = None
    ) -> PublishResult:
        """
        Evaluate the gate for a story version and publish on pass.

        Args:
            story_id: Story to publish
            story_version_id: Version to evaluate (default: most recent)

        Returns:
            PublishResult with the computed metrics

        Raises:
            StoryNotFound: Story or target version does not exist
            AlreadyPublished: Story is already published (no change)
            GateFailed: Gate rejected the version (carries metrics and thresholds)
            InternalGateError: Storage fault; the transaction was rolled back
        """
        log = logger.bind(story_id=story_id, story_version_id=story_version_id)

        try:
            with self.store.transaction() as tx:
                story = tx.lock_story(story_id)

                if story is None:
                    raise StoryNotFound(story_id)

                if story.state == StoryState.PUBLISHED:
                    raise AlreadyPublished(story_id)

                metrics = self.aggregator.aggregate(tx, story_id, story_version_id)
                failed = failed_predicates(metrics, self.thresholds)

                if failed:
                    raise GateFailed(story_id, metrics, self.thresholds, failed)

                tx.mark_published(story_id, self.clock())
                event = self.outbox.emit_story_published(
                    tx, story_id, metrics.story_version_id
                )

        except AlreadyPublished:
            log.info("story.publish.already_published")
            raise
        except GateFailed as e:
            log.info(
                "story.publish.gate_failed",
                failed_predicates=e.failed,
                metrics=e.metrics.to_dict()
            )
            raise
        except PublishGateError as e:
            log.warning("story.publish.rejected", code=e.code, reason=e.message)
            raise
        except Exception as e:
            log.error("story.publish.internal_error", exc_info=e)
            raise InternalGateError() from e

        log.info(
            "story.publish.committed",
            resolved_version_id=metrics.story_version_id,
            event_id=event.event_id,
            total_claims=metrics.total_claims
        )

        return PublishResult(
            story_id=story_id,
            state=StoryState.PUBLISHED,
            story_version_id=metrics.story_version_id,
            metrics=metrics,
            event_id=event.event_id
        )

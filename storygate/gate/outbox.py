"""
StoryGate - Outbox Emitter

Appends story.published.v1 events inside the caller's open transaction.

The insert shares the transaction with the state mutation, so the event
is committed if and only if the story is published. Delivery to
subscribers is owned by the relay that drains event_outbox.
"""

from typing import Any, Optional
import logging

from storygate.core.ids import IdGenerator, UlidGenerator
from storygate.core.models import OutboxEvent

logger = logging.getLogger(__name__)

STORY_PUBLISHED_EVENT = "story.published.v1"
STORY_PUBLISHED_EVENT_VERSION = "v1"


class OutboxEmitter:
    """Builds and appends outbox rows."""

    def __init__(
        self,
        platform_id: str,
        id_generator: Optional[IdGenerator] = None,
        publication_scope: str = "local"
    ):
        self.platform_id = platform_id
        self.ids = id_generator or UlidGenerator()
        self.publication_scope = publication_scope

    def emit_story_published(
        self,
        tx: Any,
        story_id: str,
        story_version_id: str
    ) -> OutboxEvent:
        """
        Append a story.published.v1 event to the open transaction.

        Args:
            tx: Open GraphTransaction (the same one that mutates the story)
            story_id: Published story
            story_version_id: Version the gate evaluated

        Returns:
            The OutboxEvent written
        """
        event = OutboxEvent(
            event_id=self.ids.new_id(),
            platform_id=self.platform_id,
            event_type=STORY_PUBLISHED_EVENT,
            event_version=STORY_PUBLISHED_EVENT_VERSION,
            payload={
                "story_id": story_id,
                "story_version_id": story_version_id,
                "publication_scope": self.publication_scope,
            }
        )

        tx.insert_outbox_event(event)

        logger.debug(f"Outbox event {event.event_id} staged for story {story_id}")
        return event

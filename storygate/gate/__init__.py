"""
StoryGate - Publish Gate

TransitionManager applies the gate decision and the outbox event as one
atomic transaction.
"""

from storygate.gate.outbox import OutboxEmitter, STORY_PUBLISHED_EVENT
from storygate.gate.transition import TransitionManager, PublishResult

__all__ = [
    'OutboxEmitter',
    'STORY_PUBLISHED_EVENT',
    'TransitionManager',
    'PublishResult'
]

"""
StoryGate - Storage

GraphStore is the transactional boundary of the publish gate:
- Postgres as System of Record (row locks, multi-statement transactions)
- In-memory store for development and tests (same transaction semantics)
"""

from storygate.storage.graph_store import (
    GraphStore,
    GraphTransaction,
    StoryDetail,
    Correction,
    create_graph_store
)

__all__ = [
    'GraphStore',
    'GraphTransaction',
    'StoryDetail',
    'Correction',
    'create_graph_store'
]

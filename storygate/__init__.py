"""
StoryGate v1.0

Evidence-gated publication service for narrative stories.

CORE CONTRACTS:
- Publish gate: a story is published only if its claims are corroborated
  by independent, primary evidence and none is contradicted
- Monotonic state: once published, a story never reverts
- Outbox: every publish commits exactly one story.published.v1 event
  in the same transaction as the state change
"""

__version__ = "1.0.0"

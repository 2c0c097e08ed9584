"""
StoryGate core: pure domain logic.

- models: stories, claims and the claim/evidence graph
- classifier: claim typing and high-impact detection
- aggregator: graph metrics for one story version
- policy: pass/fail decision over metrics + thresholds
- ids: sortable unique identifiers
"""

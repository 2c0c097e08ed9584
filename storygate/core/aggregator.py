"""
StoryGate - Graph Aggregator

Scores the claim/evidence subgraph of one story version.

Computed metrics (all scoped to claims of the chosen version):
- total_claims, unsupported_claims, contradicted_claims: counts by support_status
- primary_supported_claims: claims with >=1 'supports' edge to evidence whose
  provenance.source_class == 'primary'
- primary_evidence_ratio: primary_supported_claims / total_claims (0 if no claims)
- unsupported_claim_share: unsupported_claims / total_claims (1 if no claims)
- high_impact_claims: claims the classifier marks as high impact
- high_impact_support: claim_id -> number of distinct independence keys among
  the claim's 'supports' edges
- high_impact_corroborated: high-impact claims with >=2 independent sources
- corroboration_ok: no high-impact claims, or all of them corroborated

compute_metrics() is pure and deterministic. GraphAggregator.aggregate()
resolves the version through an open store transaction so the computation
sees the same snapshot as the surrounding publish.
"""

from typing import Any, Dict, Optional, Tuple
from dataclasses import dataclass
import logging

from storygate.core.classifier import ClaimClassifier, LexiconClassifier
from storygate.core.models import EdgeRelation, GraphSnapshot, SupportStatus
from storygate.errors import StoryNotFound, VersionNotFound

logger = logging.getLogger(__name__)

MIN_INDEPENDENT_SOURCES = 2


@dataclass(frozen=True)
class GateMetrics:
    """Immutable metrics summary for one story version."""
    story_version_id: str
    total_claims: int
    unsupported_claims: int
    contradicted_claims: int
    primary_supported_claims: int
    primary_evidence_ratio: float
    unsupported_claim_share: float
    high_impact_claims: int
    high_impact_corroborated: int
    corroboration_ok: bool
    high_impact_support: Tuple[Tuple[str, int], ...] = ()

    def independent_support_sources(self, claim_id: str) -> Optional[int]:
        """Independent source count for a high-impact claim, None if not high impact."""
        return dict(self.high_impact_support).get(claim_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "story_version_id": self.story_version_id,
            "total_claims": self.total_claims,
            "unsupported_claims": self.unsupported_claims,
            "contradicted_claims": self.contradicted_claims,
            "primary_supported_claims": self.primary_supported_claims,
            "primary_evidence_ratio": self.primary_evidence_ratio,
            "unsupported_claim_share": self.unsupported_claim_share,
            "high_impact_claims": self.high_impact_claims,
            "high_impact_corroborated": self.high_impact_corroborated,
            "corroboration_ok": self.corroboration_ok,
            "high_impact_support": {
                claim_id: count for claim_id, count in self.high_impact_support
            },
        }


def compute_metrics(
    snapshot: GraphSnapshot,
    classifier: Optional[ClaimClassifier] = None
) -> GateMetrics:
    """
    Compute gate metrics for a version snapshot.

    Args:
        snapshot: Claims, edges and evidence of exactly one version
        classifier: High-impact classifier (default: LexiconClassifier)

    Returns:
        GateMetrics
    """
    classifier = classifier or LexiconClassifier()

    claims = [
        c for c in snapshot.claims
        if c.story_version_id == snapshot.story_version_id
    ]
    claim_ids = {c.claim_id for c in claims}

    # supports edges grouped by claim, in snapshot order
    supports: Dict[str, list] = {}
    for edge in snapshot.edges:
        if edge.relation != EdgeRelation.SUPPORTS or edge.claim_id not in claim_ids:
            continue
        evidence = snapshot.evidence.get(edge.evidence_id_hash)
        if evidence is None:
            # Dangling edge: contributes neither primary support nor independence
            continue
        supports.setdefault(edge.claim_id, []).append(evidence)

    total = len(claims)
    unsupported = sum(1 for c in claims if c.support_status == SupportStatus.UNSUPPORTED)
    contradicted = sum(1 for c in claims if c.support_status == SupportStatus.CONTRADICTED)

    primary_supported = sum(
        1 for c in claims
        if any(ev.is_primary for ev in supports.get(c.claim_id, []))
    )

    if total == 0:
        primary_ratio = 0.0
        unsupported_share = 1.0
    else:
        primary_ratio = primary_supported / total
        unsupported_share = unsupported / total

    high_impact_support = []
    for claim in claims:
        if not classifier.is_high_impact(claim):
            continue
        keys = {ev.independence_key for ev in supports.get(claim.claim_id, [])}
        high_impact_support.append((claim.claim_id, len(keys)))

    high_impact = len(high_impact_support)
    corroborated = sum(
        1 for _, count in high_impact_support if count >= MIN_INDEPENDENT_SOURCES
    )

    return GateMetrics(
        story_version_id=snapshot.story_version_id,
        total_claims=total,
        unsupported_claims=unsupported,
        contradicted_claims=contradicted,
        primary_supported_claims=primary_supported,
        primary_evidence_ratio=primary_ratio,
        unsupported_claim_share=unsupported_share,
        high_impact_claims=high_impact,
        high_impact_corroborated=corroborated,
        corroboration_ok=(high_impact == 0 or corroborated == high_impact),
        high_impact_support=tuple(sorted(high_impact_support)),
    )


class GraphAggregator:
    """
    Resolves a story version and computes its metrics.

    Usage:
        aggregator = GraphAggregator()

        with store.transaction() as tx:
            metrics = aggregator.aggregate(tx, story_id)
    """

    def __init__(self, classifier: Optional[ClaimClassifier] = None):
        self.classifier = classifier or LexiconClassifier()

    def resolve_version_id(
        self,
        tx: Any,
        story_id: str,
        story_version_id: Optional[str] = None
    ) -> str:
        """
        Resolve the version to evaluate.

        Raises:
            VersionNotFound: If the explicit version does not exist or belongs
                to another story, or the story has no versions at all
        """
        if story_version_id is not None:
            version = tx.get_version(story_version_id)
            if version is None or version.story_id != story_id:
                raise VersionNotFound(story_id, story_version_id)
            return version.story_version_id

        latest = tx.latest_version_id(story_id)
        if latest is None:
            raise VersionNotFound(story_id, None)
        return latest

    def aggregate(
        self,
        tx: Any,
        story_id: str,
        story_version_id: Optional[str] = None
    ) -> GateMetrics:
        """
        Compute metrics for a story version inside an open transaction.

        Args:
            tx: Open GraphTransaction
            story_id: Story ID
            story_version_id: Explicit version (default: most recent)

        Returns:
            GateMetrics

        Raises:
            StoryNotFound: If the story does not exist
            VersionNotFound: If the target version does not exist
        """
        if tx.get_story(story_id) is None:
            raise StoryNotFound(story_id)

        version_id = self.resolve_version_id(tx, story_id, story_version_id)
        snapshot = tx.load_snapshot(story_id, version_id)
        metrics = compute_metrics(snapshot, self.classifier)

        logger.debug(
            f"Aggregated {story_id}@{version_id}: {metrics.total_claims} claims, "
            f"{metrics.high_impact_claims} high impact"
        )

        return metrics

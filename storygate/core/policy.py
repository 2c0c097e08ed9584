"""
StoryGate - Gate Policy

Pure decision function mapping GateMetrics + thresholds to pass/fail.

    pass = total_claims > 0
         AND contradicted_claims == 0
         AND primary_evidence_ratio >= min_primary_evidence_ratio
         AND unsupported_claim_share <= max_unsupported_claim_share
         AND (require_high_impact_corroboration ? corroboration_ok : true)

A single contradicted claim vetoes publication regardless of the ratios.
"""

from typing import Any, Dict, List
from dataclasses import dataclass, asdict

# Predicate names reported in GateFailed diagnostics
NO_CLAIMS = "no_claims"
CONTRADICTED_CLAIMS = "contradicted_claims"
PRIMARY_EVIDENCE_RATIO = "primary_evidence_ratio"
UNSUPPORTED_CLAIM_SHARE = "unsupported_claim_share"
HIGH_IMPACT_CORROBORATION = "high_impact_corroboration"


@dataclass(frozen=True)
class GateThresholds:
    """Configured gate thresholds (defaults match the editorial policy)."""
    min_primary_evidence_ratio: float = 0.5
    max_unsupported_claim_share: float = 0.10
    require_high_impact_corroboration: bool = True

    def __post_init__(self):
        for name in ('min_primary_evidence_ratio', 'max_unsupported_claim_share'):
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValueError(f"{name} must be within [0, 1], got {value}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def failed_predicates(metrics: Any, thresholds: GateThresholds) -> List[str]:
    """
    Name every gate predicate the metrics fail.

    Args:
        metrics: GateMetrics for one story version
        thresholds: Thresholds to apply

    Returns:
        List of predicate names, empty if the gate passes
    """
    failed = []

    if metrics.total_claims <= 0:
        failed.append(NO_CLAIMS)

    if metrics.contradicted_claims != 0:
        failed.append(CONTRADICTED_CLAIMS)

    if metrics.primary_evidence_ratio < thresholds.min_primary_evidence_ratio:
        failed.append(PRIMARY_EVIDENCE_RATIO)

    if metrics.unsupported_claim_share > thresholds.max_unsupported_claim_share:
        failed.append(UNSUPPORTED_CLAIM_SHARE)

    if thresholds.require_high_impact_corroboration and not metrics.corroboration_ok:
        failed.append(HIGH_IMPACT_CORROBORATION)

    return failed


def decide(metrics: Any, thresholds: GateThresholds) -> bool:
    """True if the story version may be published."""
    return not failed_predicates(metrics, thresholds)

"""
StoryGate - Claim Classifier

Lexicon-based heuristics for claim typing and high-impact detection.

The gate depends only on the ClaimClassifier interface, so these rules can
evolve without touching aggregation or policy code.

High-impact claims:
- every statistical claim
- factual claims matching the risk lexicon (accusation, crime, legal
  action, violence, terrorism, abuse)
- factual claims matching a numeric/monetary pattern
"""

from abc import ABC, abstractmethod
import re

from storygate.core.models import Claim, ClaimType

RISK_LEXICON = (
    'accus', 'illegal', 'fraud', 'crime', 'charged', 'indict', 'lawsuit',
    'killed', 'injur', 'shoot', 'arrest', 'explos', 'terror', 'abuse',
)

RISK_PATTERN = re.compile('(' + '|'.join(RISK_LEXICON) + ')', re.IGNORECASE)
NUMERIC_PATTERN = re.compile(r'(\$|usd|million|billion|percent|%)', re.IGNORECASE)

STATISTICAL_PATTERN = re.compile(
    r'\d+%|\$[\d,]+|million|billion|\d+\s*(people|cases|deaths)',
    re.IGNORECASE
)
ATTRIBUTION_PATTERN = re.compile(
    r'said|according to|stated|announced|reported',
    re.IGNORECASE
)


class ClaimClassifier(ABC):
    """Capability interface used by the graph aggregator."""

    @abstractmethod
    def classify(self, text: str) -> ClaimType:
        """Assign a claim type to a sentence of prose."""

    @abstractmethod
    def is_high_impact(self, claim: Claim) -> bool:
        """True if the claim needs independent corroboration."""


class LexiconClassifier(ClaimClassifier):
    """Default regex/lexicon classifier."""

    def classify(self, text: str) -> ClaimType:
        if STATISTICAL_PATTERN.search(text):
            return ClaimType.STATISTICAL
        if ATTRIBUTION_PATTERN.search(text):
            return ClaimType.ATTRIBUTION
        return ClaimType.FACTUAL

    def is_high_impact(self, claim: Claim) -> bool:
        if claim.claim_type == ClaimType.STATISTICAL:
            return True

        if claim.claim_type != ClaimType.FACTUAL:
            return False

        text = claim.text or ''
        return bool(RISK_PATTERN.search(text) or NUMERIC_PATTERN.search(text))

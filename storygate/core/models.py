"""
StoryGate - Domain Model

Stories, versions, claims and the claim/evidence graph evaluated by the
publish gate.

Edges carry one of three relations: supports, contradicts, context.
The legacy value 'context_only' is an alias for 'context' and is
normalized wherever edges are read.
"""

from typing import Any, Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import hashlib


class StoryState(str, Enum):
    """Story lifecycle. PUBLISHED is terminal."""
    DRAFT = "draft"
    REVIEW = "review"
    PUBLISHED = "published"


class ClaimType(str, Enum):
    FACTUAL = "factual"
    STATISTICAL = "statistical"
    ATTRIBUTION = "attribution"
    INTERPRETATION = "interpretation"


class SupportStatus(str, Enum):
    UNSUPPORTED = "unsupported"
    PARTIALLY_SUPPORTED = "partially_supported"
    SUPPORTED = "supported"
    CONTRADICTED = "contradicted"


class EdgeRelation(str, Enum):
    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    CONTEXT = "context"


class SourceClass(str, Enum):
    """Known provenance source classes. Other values are allowed in provenance."""
    PRIMARY = "primary"
    SECONDARY = "secondary"


LEGACY_RELATION_ALIASES = {
    "context_only": EdgeRelation.CONTEXT,
}


def normalize_relation(value: Any) -> EdgeRelation:
    """
    Normalize a stored edge relation.

    Args:
        value: Relation as stored ('supports', 'context_only', EdgeRelation, ...)

    Returns:
        EdgeRelation

    Raises:
        ValueError: If the relation is unknown
    """
    if isinstance(value, EdgeRelation):
        return value

    raw = str(value).strip().lower()
    if raw in LEGACY_RELATION_ALIASES:
        return LEGACY_RELATION_ALIASES[raw]

    try:
        return EdgeRelation(raw)
    except ValueError:
        raise ValueError(f"Unknown evidence edge relation: {value!r}")


def evidence_id_hash_for(blob_uri: str) -> str:
    """Content-derived evidence identifier (dedup key) for a blob location."""
    return hashlib.sha256(blob_uri.encode("utf-8")).hexdigest()


@dataclass
class Story:
    story_id: str
    platform_id: str
    title: str
    state: StoryState
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def is_published(self) -> bool:
        return self.state == StoryState.PUBLISHED


@dataclass(frozen=True)
class StoryVersion:
    story_version_id: str
    story_id: str
    body: str
    created_at: datetime
    disclosure: Optional[str] = None


@dataclass(frozen=True)
class Claim:
    claim_id: str
    story_id: str
    story_version_id: str
    claim_type: ClaimType
    text: str
    support_status: SupportStatus
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class EvidenceObject:
    """
    Evidence blob reference with provenance.

    provenance keys used by the gate:
    - source_class: 'primary' marks first-hand evidence
    - source / publisher / url: independence key candidates, in that order
    """
    evidence_id_hash: str
    blob_uri: str
    media_type: str
    provenance: Dict[str, Any] = field(default_factory=dict)

    @property
    def source_class(self) -> Optional[str]:
        value = self.provenance.get("source_class")
        return str(value) if value is not None else None

    @property
    def is_primary(self) -> bool:
        return self.source_class == SourceClass.PRIMARY.value

    @property
    def independence_key(self) -> str:
        """Origin used to decide whether two supporting items are independent."""
        for key in ("source", "publisher", "url"):
            value = self.provenance.get(key)
            if value is not None:
                return str(value)
        return self.blob_uri


@dataclass(frozen=True)
class EvidenceEdge:
    claim_id: str
    evidence_id_hash: str
    relation: EdgeRelation
    strength: float = 0.5

    def __post_init__(self):
        object.__setattr__(self, "relation", normalize_relation(self.relation))
        if not (0.0 <= self.strength <= 1.0):
            raise ValueError(f"Edge strength must be within [0, 1], got {self.strength}")


@dataclass(frozen=True)
class OutboxEvent:
    """Durable event row. Written once per successful transition, never mutated."""
    event_id: str
    platform_id: str
    event_type: str
    event_version: str
    payload: Dict[str, Any]


@dataclass(frozen=True)
class GraphSnapshot:
    """
    Claim/evidence subgraph of exactly one story version.

    edges may include any relation; evidence maps evidence_id_hash to the
    objects referenced by those edges.
    """
    story_id: str
    story_version_id: str
    claims: Tuple[Claim, ...]
    edges: Tuple[EvidenceEdge, ...] = ()
    evidence: Dict[str, EvidenceObject] = field(default_factory=dict)

    def edges_for(self, claim_id: str, relation: EdgeRelation) -> List[EvidenceEdge]:
        return [
            e for e in self.edges
            if e.claim_id == claim_id and e.relation == relation
        ]

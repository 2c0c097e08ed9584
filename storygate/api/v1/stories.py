"""
StoryGate API v1 - Story Endpoints

- GET  /v1/feed                      stories for the platform (non-gating read)
- GET  /v1/story/{story_id}          story detail (non-gating read)
- POST /v1/story/{story_id}/publish  run the publish gate

Publish outcomes are raised as PublishGateError subclasses and rendered by
the application's error handler (see storygate.api.main).
"""

from typing import Any, Dict, List, Optional
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel
import structlog

from storygate.api.dependencies import get_request_id, get_store, get_transition_manager
from storygate.core.models import StoryState
from storygate.gate.transition import TransitionManager
from storygate.storage.graph_store import GraphStore

logger = structlog.get_logger()

router = APIRouter(prefix="/v1")


# Pydantic models
class StorySummary(BaseModel):
    story_id: str
    title: str
    state: str
    updated_at: Optional[datetime]


class FeedResponse(BaseModel):
    scope: str
    items: List[StorySummary]


class StoryVersionModel(BaseModel):
    story_version_id: str
    story_id: str
    body_markdown: str
    disclosure_markdown: Optional[str]
    created_at: datetime


class StoryModel(BaseModel):
    story_id: str
    platform_id: str
    title: str
    state: str
    created_at: datetime
    updated_at: Optional[datetime]
    versions: List[StoryVersionModel]


class ClaimModel(BaseModel):
    claim_id: str
    story_id: str
    story_version_id: str
    claim_type: str
    text: str
    support_status: str
    created_at: Optional[datetime]


class EvidenceEdgeModel(BaseModel):
    claim_id: str
    evidence_id_hash: str
    relation: str  # supports, contradicts, context
    strength: float


class CorrectionModel(BaseModel):
    correction_id: str
    claim_id: str
    reason: str
    created_at: datetime


class StoryDetailResponse(BaseModel):
    story: StoryModel
    claims: List[ClaimModel]
    evidence_edges: List[EvidenceEdgeModel]
    corrections: List[CorrectionModel]


class PublishRequest(BaseModel):
    story_version_id: Optional[str] = None


class PublishResponse(BaseModel):
    story_id: str
    state: str
    story_version_id: str
    metrics: Dict[str, Any]


# Endpoints
@router.get("/feed", response_model=FeedResponse)
def feed(
    request: Request,
    scope: str = Query("local", description="Publication scope label"),
    state: Optional[str] = Query(None, description="Filter by state (draft, review, published)"),
    limit: int = Query(50, description="Items to return, clamped to 1..200"),
    store: GraphStore = Depends(get_store)
):
    """
    List stories, most recently updated first.

    Unknown state values are ignored rather than rejected.
    """
    request_id = get_request_id(request)

    state_filter = None
    if state and state in {s.value for s in StoryState}:
        state_filter = StoryState(state)

    logger.info(
        "feed.list",
        request_id=request_id,
        state=state_filter.value if state_filter else None,
        limit=limit
    )

    stories = store.list_stories(state=state_filter, limit=limit)

    return FeedResponse(
        scope=scope,
        items=[
            StorySummary(
                story_id=s.story_id,
                title=s.title,
                state=s.state.value,
                updated_at=s.updated_at
            )
            for s in stories
        ]
    )


@router.get("/story/{story_id}", response_model=StoryDetailResponse)
def get_story(
    request: Request,
    story_id: str,
    store: GraphStore = Depends(get_store)
):
    """
    Story detail: versions (newest first), claims, evidence edges, corrections.

    Raises:
        404: Story not found
    """
    request_id = get_request_id(request)

    logger.info("story.get", request_id=request_id, story_id=story_id)

    detail = store.get_story_detail(story_id)

    if detail is None:
        logger.warning("story.not_found", request_id=request_id, story_id=story_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Story {story_id} not found"
        )

    story = detail.story

    return StoryDetailResponse(
        story=StoryModel(
            story_id=story.story_id,
            platform_id=story.platform_id,
            title=story.title,
            state=story.state.value,
            created_at=story.created_at,
            updated_at=story.updated_at,
            versions=[
                StoryVersionModel(
                    story_version_id=v.story_version_id,
                    story_id=v.story_id,
                    body_markdown=v.body,
                    disclosure_markdown=v.disclosure,
                    created_at=v.created_at
                )
                for v in detail.versions
            ]
        ),
        claims=[
            ClaimModel(
                claim_id=c.claim_id,
                story_id=c.story_id,
                story_version_id=c.story_version_id,
                claim_type=c.claim_type.value,
                text=c.text,
                support_status=c.support_status.value,
                created_at=c.created_at
            )
            for c in detail.claims
        ],
        evidence_edges=[
            EvidenceEdgeModel(
                claim_id=e.claim_id,
                evidence_id_hash=e.evidence_id_hash,
                relation=e.relation.value,
                strength=e.strength
            )
            for e in detail.evidence_edges
        ],
        corrections=[
            CorrectionModel(
                correction_id=c.correction_id,
                claim_id=c.claim_id,
                reason=c.reason,
                created_at=c.created_at
            )
            for c in detail.corrections
        ]
    )


@router.post("/story/{story_id}/publish", response_model=PublishResponse)
def publish_story(
    request: Request,
    story_id: str,
    body: Optional[PublishRequest] = None,
    manager: TransitionManager = Depends(get_transition_manager)
):
    """
    Evaluate the publish gate and publish on pass.

    Body:
        - story_version_id: Version to evaluate (optional, default: latest)

    Returns:
        200 PublishResponse with the gate metrics

    Raises:
        404 not_found, 409 already_published, 409 publish_gate_failed,
        500 internal_error
    """
    request_id = get_request_id(request)
    story_version_id = body.story_version_id if body else None

    logger.info(
        "story.publish",
        request_id=request_id,
        story_id=story_id,
        story_version_id=story_version_id
    )

    result = manager.evaluate_and_publish(story_id, story_version_id)

    return PublishResponse(**result.to_dict())

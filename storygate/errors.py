"""
Publish gate outcomes.

Every non-success outcome of evaluate_and_publish is one of these
exceptions. Each carries a stable `code` used in API error bodies.
Only InternalGateError is a system fault; the others are expected
business outcomes.
"""

from typing import Any, Dict, List, Optional


class PublishGateError(Exception):
    """Base class for publish gate outcomes."""
    code = "publish_gate_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class StoryNotFound(PublishGateError):
    """Story does not exist on this platform."""
    code = "not_found"

    def __init__(self, story_id: str):
        super().__init__(f"story {story_id} not found")
        self.story_id = story_id


class VersionNotFound(StoryNotFound):
    """Target version does not exist (or belongs to another story)."""

    def __init__(self, story_id: str, story_version_id: Optional[str]):
        PublishGateError.__init__(
            self,
            f"story version {story_version_id} not found for story {story_id}"
            if story_version_id else f"story {story_id} has no versions"
        )
        self.story_id = story_id
        self.story_version_id = story_version_id


class AlreadyPublished(PublishGateError):
    """Idempotent conflict: the story is already published."""
    code = "already_published"

    def __init__(self, story_id: str):
        super().__init__(f"story {story_id} already published")
        self.story_id = story_id


class GateFailed(PublishGateError):
    """
    Business-rule rejection.

    Carries the computed metrics, the thresholds applied and the names
    of the predicates that failed.
    """
    code = "publish_gate_failed"

    def __init__(self, story_id: str, metrics: Any, thresholds: Any,
                 failed: Optional[List[str]] = None):
        super().__init__("publish gate failed")
        self.story_id = story_id
        self.metrics = metrics
        self.thresholds = thresholds
        self.failed = list(failed or [])

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["thresholds"] = self.thresholds.to_dict()
        body["metrics"] = self.metrics.to_dict()
        body["failed_predicates"] = self.failed
        return body


class InternalGateError(PublishGateError):
    """Storage or transaction failure. The transaction was rolled back."""
    code = "internal_error"

    def __init__(self, message: str = "unexpected server error"):
        super().__init__(message)


class StoreError(Exception):
    """Raised by graph stores for storage-level faults (e.g. lock timeout)."""

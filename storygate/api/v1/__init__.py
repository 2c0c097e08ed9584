"""
StoryGate API v1 Routers

All story endpoints live under /v1/*
"""

from storygate.api.v1 import health, stories

__all__ = ["health", "stories"]

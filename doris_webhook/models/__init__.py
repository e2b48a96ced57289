# =============================================================================
# Doris Webhook - Models Package
# =============================================================================
"""Pydantic models for request/response validation and Stream Load I/O."""

from .schemas import (
    HealthResponse,
    StreamLoadResult,
    VideoEvent,
    VideoRecord,
    VideoResponse,
)

__all__ = [
    "HealthResponse",
    "StreamLoadResult",
    "VideoEvent",
    "VideoRecord",
    "VideoResponse",
]

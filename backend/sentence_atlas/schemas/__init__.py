"""Convenience exports for API schemas.

Re-exports the pydantic models used across the backend so consumers can import from one module.
"""

from .projection import (
    DoneEvent,
    ErrorEvent,
    ExtractorStatus,
    PointPayload,
    PointsAppendEvent,
    PointsResetEvent,
    ProgressEvent,
    ProjectionRequest,
    RunEvent,
    RunId,
    RunStage,
)

__all__ = [
    "ProjectionRequest",
    "RunId",
    "RunStage",
    "PointPayload",
    "ProgressEvent",
    "PointsResetEvent",
    "PointsAppendEvent",
    "DoneEvent",
    "ErrorEvent",
    "RunEvent",
    "ExtractorStatus",
]

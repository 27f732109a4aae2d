"""Pydantic schemas for projection requests and the events streamed back to callers.

All models serialise with camelCase aliases (``runId``, ``statusText``, ``sentenceIndex``) so the wire
format matches what browser clients send and expect; snake_case field names are accepted on input too.

Classes:
    RunStage: Stage tags carried by progress events.
    ProjectionRequest: Inbound request that starts (and supersedes) a projection run.
    PointPayload: Single projected point tied back to its sentence index.
    ProgressEvent, PointsResetEvent, PointsAppendEvent, DoneEvent, ErrorEvent: Outbound event payloads.

Attributes:
    RunEvent: Discriminated union over all outbound events, keyed by ``type``.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

RunId = Union[int, str]


class RunStage(str, Enum):
    LOADING_MODEL = "loading-model"
    EMBEDDING = "embedding"
    UMAP_FIT = "umap-fit"
    UMAP_TRANSFORM = "umap-transform"
    DONE = "done"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


class ProjectionRequest(_WireModel):
    type: Literal["run"] = "run"
    run_id: RunId
    model_id: Optional[str] = None
    precision_mode: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("precisionMode", "precision_mode", "dtype"),
    )
    sentences: list[str] = Field(default_factory=list)
    embedding_batch_size: Optional[int] = Field(default=None, gt=0)
    target_dim: Optional[int] = Field(default=None, ge=0)
    umap_fit_sample_size: Optional[int] = Field(default=None, ge=1)
    umap_transform_batch_size: Optional[int] = Field(default=None, gt=0)

    @field_validator("sentences", mode="before")
    @classmethod
    def wrap_single_sentence(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("model_id")
    @classmethod
    def normalise_model_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip()
        return text or None

    @field_validator("precision_mode")
    @classmethod
    def normalise_precision_mode(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        text = value.strip().lower()
        return text or None


class PointPayload(_WireModel):
    x: float
    y: float
    sentence_index: int


class ProgressEvent(_WireModel):
    type: Literal["progress"] = "progress"
    run_id: RunId
    stage: RunStage
    status_text: str
    progress: float = Field(ge=0.0, le=1.0)
    embedding_dim: Optional[int] = None
    used_dim: Optional[int] = None


class PointsResetEvent(_WireModel):
    type: Literal["points-reset"] = "points-reset"
    run_id: RunId
    points: list[PointPayload]


class PointsAppendEvent(_WireModel):
    type: Literal["points-append"] = "points-append"
    run_id: RunId
    points: list[PointPayload]


class DoneEvent(_WireModel):
    type: Literal["done"] = "done"
    run_id: RunId
    total_count: int
    elapsed_ms: float


class ErrorEvent(_WireModel):
    type: Literal["error"] = "error"
    run_id: RunId
    message: str


RunEvent = Annotated[
    Union[ProgressEvent, PointsResetEvent, PointsAppendEvent, DoneEvent, ErrorEvent],
    Field(discriminator="type"),
]


class ExtractorStatus(_WireModel):
    model_id: Optional[str] = None
    precision_mode: Optional[str] = None
    active_job: int

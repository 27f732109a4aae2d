import pytest
from pydantic import TypeAdapter, ValidationError

from sentence_atlas.schemas import (
    PointPayload,
    PointsResetEvent,
    ProgressEvent,
    ProjectionRequest,
    RunEvent,
    RunStage,
)
from sentence_atlas.services.events import to_wire


def test_request_accepts_camel_and_snake_case():
    camel = ProjectionRequest.model_validate(
        {"runId": 7, "modelId": " Xenova/model ", "precisionMode": "FP16", "sentences": ["a", "b"], "targetDim": 32}
    )
    snake = ProjectionRequest.model_validate(
        {"run_id": 7, "model_id": "Xenova/model", "precision_mode": "fp16", "sentences": ["a", "b"], "target_dim": 32}
    )
    assert camel == snake
    assert camel.run_id == 7
    assert camel.model_id == "Xenova/model"
    assert camel.precision_mode == "fp16"


def test_request_accepts_dtype_alias():
    request = ProjectionRequest.model_validate({"runId": "r", "dtype": "q8", "sentences": ["x"]})
    assert request.precision_mode == "q8"


def test_single_string_becomes_one_sentence():
    request = ProjectionRequest.model_validate({"runId": "r", "sentences": "hello"})
    assert request.sentences == ["hello"]


def test_blank_model_id_falls_back_to_default():
    request = ProjectionRequest.model_validate({"runId": "r", "modelId": "   ", "sentences": ["x"]})
    assert request.model_id is None


@pytest.mark.parametrize(
    "field,value",
    [("embeddingBatchSize", 0), ("umapTransformBatchSize", 0), ("umapFitSampleSize", 0), ("targetDim", -1)],
)
def test_request_rejects_invalid_sizes(field, value):
    with pytest.raises(ValidationError):
        ProjectionRequest.model_validate({"runId": "r", "sentences": ["x"], field: value})


def test_wire_format_uses_camel_case_and_drops_nulls():
    progress = ProgressEvent(run_id="r", stage=RunStage.EMBEDDING, status_text="Embedding", progress=0.3)
    assert to_wire(progress) == {
        "type": "progress",
        "runId": "r",
        "stage": "embedding",
        "statusText": "Embedding",
        "progress": 0.3,
    }

    reset = PointsResetEvent(run_id="r", points=[PointPayload(x=1.5, y=-2.0, sentence_index=4)])
    assert to_wire(reset)["points"] == [{"x": 1.5, "y": -2.0, "sentenceIndex": 4}]


def test_events_round_trip_through_discriminated_union():
    adapter = TypeAdapter(RunEvent)
    event = adapter.validate_python({"type": "done", "runId": "r", "totalCount": 3, "elapsedMs": 12.5})
    assert event.type == "done"
    assert event.total_count == 3


def test_progress_must_stay_in_unit_interval():
    with pytest.raises(ValidationError):
        ProgressEvent(run_id="r", stage=RunStage.DONE, status_text="", progress=1.5)

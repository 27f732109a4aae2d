import zlib
from typing import Optional

import numpy as np
import pytest

from sentence_atlas.core.config import Settings
from sentence_atlas.schemas import ProjectionRequest
from sentence_atlas.services.extractor import Extractor, ExtractorCache, LoadProgress
from sentence_atlas.services.runs import RunService

EMBED_DIM = 8


class FakeExtractor(Extractor):
    def __init__(self, model_id: str = "fake-model", precision_mode: str = "fp32", dim: int = EMBED_DIM) -> None:
        super().__init__(model_id, precision_mode)
        self.dim = dim
        self.calls: list[list[str]] = []

    def _encode(self, texts: list[str]) -> np.ndarray:
        self.calls.append(list(texts))
        rows = []
        for text in texts:
            rng = np.random.default_rng(zlib.crc32(text.encode("utf-8")))
            rows.append(rng.normal(size=self.dim))
        return np.asarray(rows)


class FakeExtractorFactory:
    def __init__(
        self,
        extractor_cls: type[Extractor] = FakeExtractor,
        *,
        progress_steps: tuple[float, ...] = (50.0, 100.0),
        fail: Optional[Exception] = None,
    ) -> None:
        self.extractor_cls = extractor_cls
        self.progress_steps = progress_steps
        self.fail = fail
        self.loads: list[tuple[str, str]] = []
        self.extractors: list[Extractor] = []

    def __call__(self, model_id: str, precision_mode: str, on_progress) -> Extractor:
        self.loads.append((model_id, precision_mode))
        for step in self.progress_steps:
            on_progress(LoadProgress(progress=step, file="model.safetensors"))
        if self.fail is not None:
            raise self.fail
        extractor = self.extractor_cls(model_id, precision_mode)
        self.extractors.append(extractor)
        return extractor


class FakeReducer:
    def __init__(self, total_count: int) -> None:
        self.total_count = total_count
        self.fit_inputs: list[np.ndarray] = []
        self.transform_inputs: list[np.ndarray] = []
        self._fitted = False

    @property
    def is_fitted(self) -> bool:
        return self._fitted

    def fit(self, vectors: np.ndarray) -> np.ndarray:
        if self._fitted:
            raise RuntimeError("already fitted")
        data = np.asarray(vectors)
        self.fit_inputs.append(data)
        self._fitted = True
        return np.column_stack([np.arange(len(data), dtype=np.float32), np.zeros(len(data), dtype=np.float32)])

    def transform(self, vectors: np.ndarray) -> np.ndarray:
        if not self._fitted:
            raise RuntimeError("not fitted")
        data = np.asarray(vectors)
        self.transform_inputs.append(data)
        return np.ones((len(data), 2), dtype=np.float32)


class ReducerRecorder:
    def __init__(self, reducer_cls: type = FakeReducer) -> None:
        self.reducer_cls = reducer_cls
        self.created: list = []

    def __call__(self, total_count: int):
        reducer = self.reducer_cls(total_count)
        self.created.append(reducer)
        return reducer


class RecordingChannel:
    def __init__(self) -> None:
        self.events: list = []

    def emit(self, event) -> None:
        self.events.append(event)

    @property
    def types(self) -> list[str]:
        return [event.type for event in self.events]

    def of_type(self, event_type: str) -> list:
        return [event for event in self.events if event.type == event_type]


def make_request(sentences, **overrides) -> ProjectionRequest:
    payload = {
        "runId": "run-1",
        "modelId": "fake-model",
        "precisionMode": "fp32",
        "sentences": sentences,
        "embeddingBatchSize": 4,
        "umapFitSampleSize": 5,
        "umapTransformBatchSize": 3,
    }
    payload.update(overrides)
    return ProjectionRequest.model_validate(payload)


def sentences_of(count: int) -> list[str]:
    return [f"sentence number {index}" for index in range(count)]


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture()
def extractor_factory() -> FakeExtractorFactory:
    return FakeExtractorFactory()


@pytest.fixture()
def reducers() -> ReducerRecorder:
    return ReducerRecorder()


@pytest.fixture()
def run_service(extractor_factory, reducers, test_settings):
    service = RunService(
        ExtractorCache(extractor_factory),
        reducer_factory=reducers,
        settings=test_settings,
    )
    yield service
    service.close()

"""Embedding extraction adapters and the process-wide model cache.

Classes:
    LoadProgress: Raw load progress reported by a backend while a model is being prepared.
    EmbeddingOutput: Batch of mean-pooled, L2-normalised vectors plus their native dimensionality.
    Extractor: Base class every embedding backend implements.
    SentenceTransformerExtractor: Local sentence-transformers model with explicit mean pooling.
    OpenAIExtractor: OpenAI embeddings API backend for ``openai:``-prefixed model ids.
    ExtractorCache: Holds at most one loaded extractor, keyed by (model id, precision mode).

Functions:
    normalise_load_progress(value): Map fractional or percentage progress onto [0, 1].
    fetch_model_files(model_id, on_progress): Download a Hub model file by file, reporting each file.
    build_extractor(model_id, precision_mode, on_progress): Default factory choosing a backend by model id.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import httpx
import numpy as np
from huggingface_hub import HfApi, hf_hub_download
from huggingface_hub.utils import filter_repo_objects
from openai import OpenAI

from sentence_atlas.core.config import get_settings
from sentence_atlas.core.errors import ExtractionError

_LOGGER = logging.getLogger(__name__)

OPENAI_MODEL_PREFIX = "openai:"
PRECISION_MODES = ("fp32", "fp16", "bf16", "auto")
# Weights in formats sentence-transformers never loads.
MODEL_IGNORE_PATTERNS = (
    "onnx/*",
    "openvino/*",
    "*.onnx",
    "*.h5",
    "*.ot",
    "*.msgpack",
    "*.tflite",
)


@dataclass(slots=True)
class LoadProgress:
    progress: float
    file: str | None = None


@dataclass(slots=True)
class EmbeddingOutput:
    vectors: np.ndarray
    native_dim: int


LoadProgressCallback = Callable[[LoadProgress], None]
ExtractorFactory = Callable[[str, str, LoadProgressCallback], "Extractor"]


def normalise_load_progress(value: float) -> float:
    """Values above 1 are treated as percentages."""

    fraction = value / 100.0 if value > 1 else value
    return float(min(1.0, max(0.0, fraction)))


def fetch_model_files(
    model_id: str,
    on_progress: LoadProgressCallback,
    *,
    cache_dir: str | None = None,
    api: Any = None,
    download: Callable[..., str] = hf_hub_download,
) -> str:
    """Download a Hub model file by file and return its local snapshot directory.

    Each finished file is reported with its name and the fraction of files fetched so far. Local
    directories are returned unchanged.
    """

    if os.path.isdir(model_id):
        return model_id

    info = (api or HfApi()).model_info(model_id)
    names = [sibling.rfilename for sibling in info.siblings or ()]
    files = list(filter_repo_objects(names, ignore_patterns=MODEL_IGNORE_PATTERNS))
    if any(name.endswith(".safetensors") for name in files):
        files = [name for name in files if not name.endswith(".bin")]
    if not files:
        raise ExtractionError(f"Model {model_id} has no downloadable files.")

    snapshot: Path | None = None
    for position, filename in enumerate(files, start=1):
        local = download(repo_id=model_id, filename=filename, revision=info.sha, cache_dir=cache_dir)
        if snapshot is None:
            snapshot = Path(local).parents[len(Path(filename).parts) - 1]
        on_progress(LoadProgress(progress=position / len(files), file=filename))
    _LOGGER.debug("Fetched %d files for %s into %s", len(files), model_id, snapshot)
    return str(snapshot)


class Extractor(ABC):
    """Embeds batches of sentences into mean-pooled, L2-normalised vectors."""

    def __init__(self, model_id: str, precision_mode: str) -> None:
        self.model_id = model_id
        self.precision_mode = precision_mode

    @abstractmethod
    def _encode(self, texts: list[str]) -> np.ndarray:
        """Return an array of shape ``(len(texts), dim)`` of pooled but not necessarily normalised vectors."""

    def embed(self, texts: Sequence[str]) -> EmbeddingOutput:
        batch = list(texts)
        try:
            vectors = self._encode(batch)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(str(exc) or f"Embedding failed for model {self.model_id}") from exc

        matrix = np.asarray(vectors, dtype=np.float32)
        if matrix.ndim == 1:
            matrix = matrix.reshape(1, -1)
        return EmbeddingOutput(vectors=self.normalize(matrix), native_dim=int(matrix.shape[1]))

    @staticmethod
    def normalize(vectors: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms = np.where(norms == 0, 1, norms)
        return (vectors / norms).astype(np.float32, copy=False)


class SentenceTransformerExtractor(Extractor):
    def __init__(self, model_id: str, precision_mode: str, model: Any) -> None:
        super().__init__(model_id, precision_mode)
        self._model = model

    @classmethod
    def load(
        cls,
        model_id: str,
        precision_mode: str,
        on_progress: LoadProgressCallback,
        *,
        device: str | None = None,
        cache_dir: str | None = None,
    ) -> "SentenceTransformerExtractor":
        if precision_mode not in PRECISION_MODES:
            raise ExtractionError(
                f"Unsupported precision mode '{precision_mode}'. Expected one of: {', '.join(PRECISION_MODES)}"
            )

        import torch
        from sentence_transformers import SentenceTransformer

        dtypes = {
            "fp32": torch.float32,
            "fp16": torch.float16,
            "bf16": torch.bfloat16,
            "auto": "auto",
        }
        on_progress(LoadProgress(progress=0.0))
        local_path = fetch_model_files(model_id, on_progress, cache_dir=cache_dir)
        model = SentenceTransformer(
            local_path,
            device=device,
            cache_folder=cache_dir,
            model_kwargs={"torch_dtype": dtypes[precision_mode]},
        )
        on_progress(LoadProgress(progress=1.0))
        return cls(model_id, precision_mode, model)

    def _encode(self, texts: list[str]) -> np.ndarray:
        import torch

        with torch.no_grad():
            # Token embeddings come back trimmed to each sentence's attention span.
            token_embeddings = self._model.encode(
                texts,
                batch_size=max(1, len(texts)),
                output_value="token_embeddings",
                convert_to_numpy=False,
                show_progress_bar=False,
            )
        pooled = [tokens.float().mean(dim=0).cpu().numpy() for tokens in token_embeddings]
        return np.vstack(pooled)


class OpenAIExtractor(Extractor):
    def __init__(
        self,
        model_id: str,
        precision_mode: str,
        client: Optional[OpenAI] = None,
        *,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(model_id, precision_mode)
        if client is None:
            settings = get_settings()
            api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else None
            if not api_key:
                raise ExtractionError("OpenAI client not configured. Set OPENAI_API_KEY.")
            # No automatic retries.
            client = OpenAI(api_key=api_key, max_retries=0, http_client=http_client)
        self._client = client
        self._remote_model = model_id[len(OPENAI_MODEL_PREFIX):] if model_id.startswith(OPENAI_MODEL_PREFIX) else model_id

    def _encode(self, texts: list[str]) -> np.ndarray:
        # Empty strings are rejected by the API.
        cleaned = [text.strip() or " " for text in texts]
        response = self._client.embeddings.create(model=self._remote_model, input=cleaned)
        ordered = sorted(response.data, key=lambda item: item.index)
        return np.asarray([item.embedding for item in ordered], dtype=np.float32)


def build_extractor(model_id: str, precision_mode: str, on_progress: LoadProgressCallback) -> Extractor:
    if model_id.startswith(OPENAI_MODEL_PREFIX):
        extractor = OpenAIExtractor(model_id, precision_mode)
        on_progress(LoadProgress(progress=1.0))
        return extractor

    settings = get_settings()
    return SentenceTransformerExtractor.load(
        model_id,
        precision_mode,
        on_progress,
        device=settings.embedding_device,
        cache_dir=settings.model_cache_dir,
    )


class ExtractorCache:
    """Keeps the most recently loaded extractor resident for reuse across runs.

    Loading a different (model id, precision mode) evicts the resident extractor first; a failed load
    leaves the cache empty.
    """

    def __init__(self, factory: ExtractorFactory | None = None) -> None:
        self._factory = factory or build_extractor
        self._key: tuple[str, str] | None = None
        self._extractor: Extractor | None = None

    @property
    def resident_key(self) -> tuple[str, str] | None:
        return self._key

    def load(
        self,
        model_id: str,
        precision_mode: str,
        on_progress: Callable[[float, str | None], None] | None = None,
    ) -> Extractor:
        key = (model_id, precision_mode)
        if self._extractor is not None and self._key == key:
            _LOGGER.debug("Reusing resident extractor %s (%s)", model_id, precision_mode)
            return self._extractor

        if self._key is not None:
            _LOGGER.info("Evicting extractor %s (%s)", *self._key)
        self._extractor = None
        self._key = None

        def _report(event: LoadProgress) -> None:
            if on_progress is not None:
                on_progress(normalise_load_progress(event.progress), event.file)

        _LOGGER.info("Loading extractor %s (%s)", model_id, precision_mode)
        try:
            extractor = self._factory(model_id, precision_mode, _report)
        except ExtractionError:
            raise
        except Exception as exc:
            raise ExtractionError(str(exc) or f"Failed to load model {model_id}") from exc

        self._extractor = extractor
        self._key = key
        return extractor

"""Pipeline controller for streaming embedding + UMAP projection runs.

A run embeds its sentences in batches, routes each vector either into the random fit sample or into
the transform queue, fits UMAP as soon as the sample is complete and then drains the queue in fixed
size chunks. Every step is reported through the event channel, and every suspension point is followed
by a check that the run has not been superseded.

Classes:
    RunConfig: Immutable, fully resolved description of one run.
    ProgressTracker: Weighted progress model shared by all stages of a run.
    PipelineController: Executes one run for one job and streams its events.

Functions:
    resolve_used_dim(native_dim, target_dim): Clamp the requested target dimensionality.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Optional

import numpy as np

from sentence_atlas.core.errors import (
    EmptyInputError,
    ExtractionError,
    PipelineError,
    ReductionError,
    RunCancelled,
)
from sentence_atlas.schemas import (
    DoneEvent,
    ErrorEvent,
    PointPayload,
    PointsAppendEvent,
    PointsResetEvent,
    ProgressEvent,
    RunEvent,
    RunId,
    RunStage,
)
from sentence_atlas.services.events import EventChannel
from sentence_atlas.services.extractor import Extractor, ExtractorCache
from sentence_atlas.services.reducer import Reducer
from sentence_atlas.services.sampler import SamplePartition, partition_sample
from sentence_atlas.services.supervisor import RunSupervisor

_LOGGER = logging.getLogger(__name__)

UNKNOWN_ERROR_MESSAGE = "Unknown pipeline error"

LOAD_SPAN = 0.2
EMBED_SPAN = 0.45
FIT_BONUS = 0.1
TRANSFORM_SPAN = 0.25
SINGLE_EMBED_PROGRESS = 0.4

ReducerFactory = Callable[[int], Reducer]


@dataclass(frozen=True, slots=True)
class RunConfig:
    run_id: RunId
    model_id: str
    precision_mode: str
    sentences: tuple[str, ...]
    embedding_batch_size: int
    target_dim: Optional[int]
    umap_fit_sample_size: int
    umap_transform_batch_size: int


def resolve_used_dim(native_dim: int, target_dim: Optional[int]) -> int:
    return max(1, min(native_dim, target_dim or native_dim))


@dataclass(slots=True)
class ProgressTracker:
    total_count: int
    transform_total: int = 0
    processed_count: int = 0
    transformed_count: int = 0
    fit_done: bool = False
    embedding_dim: int = 0
    used_dim: int = 0
    last_value: float = 0.0

    def compute(self) -> float:
        embed_ratio = self.processed_count / self.total_count if self.total_count else 0.0
        transform_ratio = self.transformed_count / self.transform_total if self.transform_total > 0 else 1.0
        fit_bonus = FIT_BONUS if self.fit_done else 0.0
        return min(1.0, LOAD_SPAN + embed_ratio * EMBED_SPAN + fit_bonus + transform_ratio * TRANSFORM_SPAN)

    def advance(self, value: float) -> float:
        self.last_value = max(self.last_value, min(1.0, max(0.0, value)))
        return self.last_value


@dataclass(slots=True)
class _ProjectionState:
    partition: SamplePartition
    reducer: Reducer
    sample_vectors: list[np.ndarray] = field(default_factory=list)
    sample_indices: list[int] = field(default_factory=list)
    queue_vectors: list[np.ndarray] = field(default_factory=list)
    queue_indices: list[int] = field(default_factory=list)


class PipelineController:
    def __init__(
        self,
        config: RunConfig,
        *,
        job_id: int,
        supervisor: RunSupervisor,
        extractors: ExtractorCache,
        reducer_factory: ReducerFactory,
        channel: EventChannel,
        executor: Executor | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._job_id = job_id
        self._supervisor = supervisor
        self._extractors = extractors
        self._reducer_factory = reducer_factory
        self._channel = channel
        self._executor = executor
        self._rng = rng
        self._progress = ProgressTracker(total_count=len(config.sentences))
        self._stage = RunStage.LOADING_MODEL
        self._loop: asyncio.AbstractEventLoop | None = None

    async def run(self) -> None:
        """Execute the run; never raises except for task cancellation."""

        started = time.perf_counter()
        self._loop = asyncio.get_running_loop()
        try:
            await self._execute(started)
        except RunCancelled:
            _LOGGER.info("Run %s (job %d) superseded during %s", self._config.run_id, self._job_id, self._stage.value)
        except Exception as exc:
            if not self._supervisor.is_current(self._job_id):
                _LOGGER.info("Run %s (job %d) failed after being superseded; dropping error", self._config.run_id, self._job_id)
                return
            message = str(exc) or UNKNOWN_ERROR_MESSAGE
            _LOGGER.warning(
                "Run %s failed during %s: %s",
                self._config.run_id,
                self._stage.value,
                message,
                exc_info=not isinstance(exc, PipelineError),
            )
            self._post(ErrorEvent(run_id=self._config.run_id, message=message))

    async def _execute(self, started: float) -> None:
        config = self._config
        if not config.sentences:
            raise EmptyInputError("No sentences provided.")

        _LOGGER.info(
            "Run %s (job %d) started: %d sentences with %s",
            config.run_id,
            self._job_id,
            len(config.sentences),
            config.model_id,
        )

        self._report(RunStage.LOADING_MODEL, f"Loading model {config.model_id}...", 0.0)
        extractor = await self._call(
            self._extractors.load,
            config.model_id,
            config.precision_mode,
            self._threadsafe_load_progress,
        )
        self._checkpoint()

        if len(config.sentences) == 1:
            await self._run_single(extractor, started)
        else:
            await self._run_batched(extractor, started)

    async def _run_single(self, extractor: Extractor, started: float) -> None:
        self._report(RunStage.EMBEDDING, "Embedding 1 sentence...", SINGLE_EMBED_PROGRESS)
        output = await self._call(extractor.embed, [self._config.sentences[0]])
        self._checkpoint()

        self._progress.embedding_dim = output.native_dim
        self._progress.used_dim = resolve_used_dim(output.native_dim, self._config.target_dim)
        self._progress.processed_count = 1

        # A lone point has no neighbours to reduce against.
        self._post(
            PointsResetEvent(
                run_id=self._config.run_id,
                points=[PointPayload(x=0.0, y=0.0, sentence_index=0)],
            )
        )
        self._finish(started)

    async def _run_batched(self, extractor: Extractor, started: float) -> None:
        config = self._config
        total = len(config.sentences)
        partition = partition_sample(total, config.umap_fit_sample_size, self._rng)
        self._progress.transform_total = partition.remainder_count
        state = _ProjectionState(partition=partition, reducer=self._reducer_factory(total))

        batch_size = config.embedding_batch_size
        transform_size = config.umap_transform_batch_size
        total_batches = math.ceil(total / batch_size)

        for batch_index in range(total_batches):
            self._checkpoint()

            start = batch_index * batch_size
            end = min(start + batch_size, total)
            status = f"Embedding batch {batch_index + 1}/{total_batches} ({end}/{total})"
            self._report(RunStage.EMBEDDING, status)

            output = await self._call(extractor.embed, list(config.sentences[start:end]))
            self._checkpoint()

            vectors = self._truncate(output.vectors, output.native_dim, expected_rows=end - start)
            for row, vector in enumerate(vectors):
                index = start + row
                if partition.in_sample(index):
                    state.sample_vectors.append(vector)
                    state.sample_indices.append(index)
                else:
                    state.queue_vectors.append(vector)
                    state.queue_indices.append(index)

            self._progress.processed_count = end
            self._report(RunStage.EMBEDDING, status)

            await self._fit_if_ready(state)
            while state.reducer.is_fitted and len(state.queue_vectors) >= transform_size:
                await self._transform_batch(state, transform_size)

        await self._fit_if_ready(state)
        while state.reducer.is_fitted and state.queue_vectors:
            await self._transform_batch(state, min(transform_size, len(state.queue_vectors)))

        self._checkpoint()
        self._finish(started)

    async def _fit_if_ready(self, state: _ProjectionState) -> None:
        sample_count = state.partition.sample_count
        if state.reducer.is_fitted or len(state.sample_vectors) < sample_count:
            return

        self._report(RunStage.UMAP_FIT, f"Running UMAP fit on random {sample_count} points...")
        if state.sample_vectors:
            sample = np.vstack(state.sample_vectors)
        else:
            sample = np.empty((0, self._progress.used_dim), dtype=np.float32)
        coords = await self._call(state.reducer.fit, sample)
        self._checkpoint()

        points = self._to_points(coords, state.sample_indices)
        self._post(PointsResetEvent(run_id=self._config.run_id, points=points))
        state.sample_vectors.clear()

        self._progress.fit_done = True
        self._report(RunStage.UMAP_FIT, f"UMAP fit completed ({sample_count} points).")
        _LOGGER.debug("Run %s fitted UMAP on %d points", self._config.run_id, sample_count)
        await self._yield()

    async def _transform_batch(self, state: _ProjectionState, size: int) -> None:
        if size <= 0 or not state.queue_vectors:
            return

        batch_vectors = state.queue_vectors[:size]
        batch_indices = state.queue_indices[:size]
        del state.queue_vectors[:size]
        del state.queue_indices[:size]

        transform_total = self._progress.transform_total
        done = self._progress.transformed_count
        self._report(RunStage.UMAP_TRANSFORM, f"UMAP transform ({done + len(batch_indices)}/{transform_total})")

        coords = await self._call(state.reducer.transform, np.vstack(batch_vectors))
        self._checkpoint()

        self._post(PointsAppendEvent(run_id=self._config.run_id, points=self._to_points(coords, batch_indices)))
        self._progress.transformed_count += len(batch_indices)
        self._report(
            RunStage.UMAP_TRANSFORM,
            f"UMAP transform ({self._progress.transformed_count}/{transform_total})",
        )
        await self._yield()

    def _finish(self, started: float) -> None:
        total = len(self._config.sentences)
        noun = "sentence" if total == 1 else "sentences"
        self._report(RunStage.DONE, f"Done. Embedded {total} {noun}.", 1.0)
        self._post(
            DoneEvent(
                run_id=self._config.run_id,
                total_count=total,
                elapsed_ms=(time.perf_counter() - started) * 1000.0,
            )
        )
        _LOGGER.info("Run %s completed: %d sentences", self._config.run_id, total)

    def _truncate(self, vectors: np.ndarray, native_dim: int, *, expected_rows: int) -> np.ndarray:
        if vectors.shape[0] != expected_rows:
            raise ExtractionError(
                f"Extractor returned {vectors.shape[0]} vectors for {expected_rows} sentences."
            )
        if not self._progress.embedding_dim:
            self._progress.embedding_dim = native_dim
            self._progress.used_dim = resolve_used_dim(native_dim, self._config.target_dim)
        elif native_dim != self._progress.embedding_dim:
            raise ExtractionError(
                f"Embedding dimensionality changed mid-run ({self._progress.embedding_dim} -> {native_dim})."
            )
        return np.ascontiguousarray(vectors[:, : self._progress.used_dim], dtype=np.float32)

    @staticmethod
    def _to_points(coords: np.ndarray, indices: list[int]) -> list[PointPayload]:
        matrix = np.asarray(coords, dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[0] != len(indices) or matrix.shape[1] < 2:
            raise ReductionError(
                f"Reducer returned shape {tuple(matrix.shape)} for {len(indices)} vectors."
            )
        return [
            PointPayload(x=float(row[0]), y=float(row[1]), sentence_index=index)
            for row, index in zip(matrix, indices)
        ]

    def _report(self, stage: RunStage, status_text: str, value: float | None = None) -> None:
        self._stage = stage
        progress = self._progress.advance(self._progress.compute() if value is None else value)
        has_dims = bool(self._progress.embedding_dim)
        self._post(
            ProgressEvent(
                run_id=self._config.run_id,
                stage=stage,
                status_text=status_text,
                progress=progress,
                embedding_dim=self._progress.embedding_dim if has_dims else None,
                used_dim=self._progress.used_dim if has_dims else None,
            )
        )

    def _threadsafe_load_progress(self, fraction: float, file: str | None) -> None:
        # Invoked on the executor thread while the model loads.
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._on_load_progress, fraction, file)

    def _on_load_progress(self, fraction: float, file: str | None) -> None:
        if not self._supervisor.is_current(self._job_id):
            return
        status = f"Loading model file: {file}" if file else "Loading model assets..."
        self._report(RunStage.LOADING_MODEL, status, min(LOAD_SPAN, fraction * LOAD_SPAN))

    def _post(self, event: RunEvent) -> None:
        self._channel.emit(event)

    def _checkpoint(self) -> None:
        self._supervisor.ensure_current(self._job_id)

    async def _yield(self) -> None:
        await asyncio.sleep(0)
        self._checkpoint()

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = self._loop or asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(func, *args))

"""High level orchestration for projection runs.

Classes:
    RunService: Owns the process-wide supervisor, extractor cache and execution context, resolves
        requests into immutable run configurations and starts pipeline controllers for them.
"""

from __future__ import annotations

import asyncio
import logging
import random
from concurrent.futures import ThreadPoolExecutor

from sentence_atlas.core.config import Settings, get_settings
from sentence_atlas.schemas import ExtractorStatus, ProjectionRequest
from sentence_atlas.services.events import EventChannel
from sentence_atlas.services.extractor import ExtractorCache
from sentence_atlas.services.pipeline import PipelineController, ReducerFactory, RunConfig
from sentence_atlas.services.reducer import UMAPReducer
from sentence_atlas.services.supervisor import RunSupervisor

_LOGGER = logging.getLogger(__name__)


class RunService:
    def __init__(
        self,
        extractor_cache: ExtractorCache | None = None,
        *,
        reducer_factory: ReducerFactory | None = None,
        supervisor: RunSupervisor | None = None,
        settings: Settings | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._extractors = extractor_cache or ExtractorCache()
        self._reducer_factory = reducer_factory or self._default_reducer
        self._supervisor = supervisor or RunSupervisor()
        self._rng = rng
        # Every blocking extractor/reducer call is serialised through this single worker.
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="projection-worker")
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def supervisor(self) -> RunSupervisor:
        return self._supervisor

    def _default_reducer(self, total_count: int) -> UMAPReducer:
        return UMAPReducer(total_count, random_state=self._settings.umap_random_state)

    def resolve_config(self, request: ProjectionRequest) -> RunConfig:
        settings = self._settings
        target_dim = request.target_dim if request.target_dim is not None else settings.default_target_dim
        return RunConfig(
            run_id=request.run_id,
            model_id=request.model_id or settings.default_model_id,
            precision_mode=request.precision_mode or settings.default_precision_mode,
            sentences=tuple(request.sentences),
            embedding_batch_size=max(1, request.embedding_batch_size or settings.default_embedding_batch_size),
            target_dim=target_dim or None,
            umap_fit_sample_size=max(
                1, request.umap_fit_sample_size or settings.default_umap_fit_sample_size
            ),
            umap_transform_batch_size=max(
                1, request.umap_transform_batch_size or settings.default_umap_transform_batch_size
            ),
        )

    def start_run(self, request: ProjectionRequest, channel: EventChannel) -> asyncio.Task[None]:
        """Supersede any in-flight run and schedule a new one reporting into ``channel``."""

        job_id = self._supervisor.start()
        config = self.resolve_config(request)
        controller = PipelineController(
            config,
            job_id=job_id,
            supervisor=self._supervisor,
            extractors=self._extractors,
            reducer_factory=self._reducer_factory,
            channel=channel,
            executor=self._executor,
            rng=self._rng,
        )
        _LOGGER.debug("Scheduling run %s as job %d", config.run_id, job_id)
        task = asyncio.create_task(controller.run(), name=f"projection-job-{job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def abandon(self, job_id: int) -> None:
        if self._supervisor.abandon(job_id):
            _LOGGER.info("Abandoned job %d", job_id)

    def status(self) -> ExtractorStatus:
        key = self._extractors.resident_key
        return ExtractorStatus(
            model_id=key[0] if key else None,
            precision_mode=key[1] if key else None,
            active_job=self._supervisor.active_job,
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

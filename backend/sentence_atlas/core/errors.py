"""Error taxonomy for projection runs.

Classes:
    PipelineError: Base class for failures reported to the caller as a terminal error event.
    EmptyInputError: Raised when a run carries no sentences.
    ExtractionError: Raised when loading the embedding model or running inference fails.
    ReductionError: Raised when the UMAP fit or transform fails.
    RunCancelled: Internal signal raised at a checkpoint once a newer run has started.
"""

from __future__ import annotations


class PipelineError(Exception):
    pass


class EmptyInputError(PipelineError, ValueError):
    pass


class ExtractionError(PipelineError):
    pass


class ReductionError(PipelineError):
    pass


class RunCancelled(Exception):
    """Never surfaced to callers; a superseded run stops without emitting anything."""

    def __init__(self, job_id: int) -> None:
        super().__init__(f"job {job_id} superseded")
        self.job_id = job_id

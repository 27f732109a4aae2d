"""Service layer exports.

Expose the run orchestration entry point and the pipeline building blocks for easy importing.
"""

from .events import EventChannel, QueueEventChannel, to_wire
from .extractor import Extractor, ExtractorCache
from .pipeline import PipelineController, RunConfig
from .reducer import UMAPReducer
from .runs import RunService
from .supervisor import RunSupervisor

__all__ = [
    "EventChannel",
    "QueueEventChannel",
    "to_wire",
    "Extractor",
    "ExtractorCache",
    "PipelineController",
    "RunConfig",
    "UMAPReducer",
    "RunService",
    "RunSupervisor",
]

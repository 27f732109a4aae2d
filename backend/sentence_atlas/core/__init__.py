"""Configuration and error primitives shared across the service layer."""

from .config import Settings, get_settings
from .errors import EmptyInputError, ExtractionError, PipelineError, ReductionError, RunCancelled

__all__ = [
    "Settings",
    "get_settings",
    "PipelineError",
    "EmptyInputError",
    "ExtractionError",
    "ReductionError",
    "RunCancelled",
]

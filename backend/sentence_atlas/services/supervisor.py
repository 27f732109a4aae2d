"""Process-wide run supervision.

Classes:
    RunSupervisor: Issues job identities and answers whether a job is still the current one.
"""

from __future__ import annotations

from sentence_atlas.core.errors import RunCancelled


class RunSupervisor:
    """Tracks the most recently started job.

    Starting a job implicitly supersedes every older one; there is no explicit cancel. The counter is
    only read and written from the event loop thread, so increments and comparisons need no lock.
    """

    def __init__(self) -> None:
        self._active_job = 0

    @property
    def active_job(self) -> int:
        return self._active_job

    def start(self) -> int:
        self._active_job += 1
        return self._active_job

    def is_current(self, job_id: int) -> bool:
        return job_id == self._active_job

    def ensure_current(self, job_id: int) -> None:
        if not self.is_current(job_id):
            raise RunCancelled(job_id)

    def abandon(self, job_id: int) -> bool:
        """Stop ``job_id`` at its next checkpoint if it is still current."""

        if not self.is_current(job_id):
            return False
        self._active_job += 1
        return True

# services/batch_store.py
import logging
import threading
from collections import deque
from typing import List, Optional

from models import BatchJob, JobStatus
from services.errors import ConflictError

logger = logging.getLogger(__name__)


class BatchJobStore:
    """
    Holds the "current job" slot and the history of completed runs.

    The slot is taken with acquire() and handed back with release(); both go through
    one lock, so two callers can't both see an idle slot and start a run.
    History is newest-first and capped, the oldest entry is evicted on overflow.
    """

    def __init__(self, history_limit: int = 100):
        self._lock = threading.Lock()
        self._current: Optional[BatchJob] = None
        self._history = deque(maxlen=history_limit)
        self._superseded_failures = deque(maxlen=history_limit)

    def get_current_job(self) -> Optional[BatchJob]:
        return self._current

    def set_current_job(self, job: Optional[BatchJob]):
        with self._lock:
            self._current = job
            if job is not None and job.status == JobStatus.COMPLETED:
                self._history.appendleft(job)
                self._current = None

    def acquire(self, job: BatchJob, force: bool = False):
        """Make `job` current. Raises ConflictError if another job is running and force is off."""
        with self._lock:
            current = self._current
            if current is not None and current.status == JobStatus.RUNNING:
                if not force:
                    raise ConflictError(current.id)
                logger.warning(f"Forcing batch job {job.id} while {current.id} is still running")
            self._current = job

    def release(self, job: BatchJob):
        """
        Record a finished job.

        Completed jobs go to history and free the slot, as long as the slot still holds
        them (a forced run may have taken it over). Failed jobs stay current so their
        error remains visible until the next run starts. A failed job whose slot was
        taken by a forced run is kept in the superseded-failures log instead.
        """
        with self._lock:
            if job.status == JobStatus.COMPLETED:
                self._history.appendleft(job)
                if self._current is job:
                    self._current = None
            elif job.status == JobStatus.FAILED and self._current is not job:
                self._superseded_failures.appendleft(job)
                logger.warning(f"Batch job {job.id} failed after being superseded: {job.error}")

    def get_superseded_failures(self, limit: int = 10) -> List[BatchJob]:
        """Failed jobs that were no longer current when they finished, newest first."""
        with self._lock:
            return list(self._superseded_failures)[:limit]

    def get_job_history(self, limit: int = 10) -> List[BatchJob]:
        with self._lock:
            return list(self._history)[:limit]

    def clear(self):
        with self._lock:
            self._history.clear()
            self._superseded_failures.clear()
            self._current = None
        logger.info('Cleared batch job history')

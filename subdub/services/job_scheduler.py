"""Job store and scheduler: bounded concurrent execution of pending jobs."""

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Deque, Dict, Iterable, List, Optional

from ..exceptions import ConfigurationError
from ..models.job import EventType, Job, JobConfig, JobEvent, JobStatus, status_counts
from .error_handler import ErrorHandler
from .events import CancellationToken, EventStream
from .pipeline_executor import PipelineExecutor


logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 3


class JobStore:
    """Single owner of the job set.

    Every mutation goes through one lock; readers receive copies. Terminal
    statuses are sticky: once a job is succeeded, failed or cancelled, no
    later update may change its status.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: Dict[str, Job] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def add(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job.copy()

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.copy() if job else None

    def jobs(self) -> List[Job]:
        with self._lock:
            return [job.copy() for job in self._jobs.values()]

    def remove(self, job_id: str) -> bool:
        with self._lock:
            return self._jobs.pop(job_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._jobs.clear()

    def move(self, job_id: str, index: int) -> bool:
        """Reorder ``job_id`` to position ``index`` (clamped) in the job order."""
        with self._lock:
            if job_id not in self._jobs:
                return False
            order = [key for key in self._jobs if key != job_id]
            order.insert(max(0, min(index, len(order))), job_id)
            self._jobs = {key: self._jobs[key] for key in order}
            return True

    def update(self, job_id: str, mutate: Callable[[Job], None]) -> Optional[Job]:
        """Apply ``mutate`` to a non-terminal job; returns the updated copy or None."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return None
            mutate(job)
            return job.copy()

    def mark_running(self, job_id: str) -> Optional[Job]:
        def start(job: Job) -> None:
            job.status = JobStatus.RUNNING
            job.started_at = datetime.now()
        return self.update(job_id, start)

    def mark_finished(self, job_id: str, status: JobStatus, error: Optional[str] = None) -> Optional[Job]:
        return self.update(job_id, lambda job: job.mark_finished(status, error))

    def apply_event(self, event: JobEvent) -> bool:
        """Fold an executor event into the store. Returns False if the event was stale."""
        if event.job_id is None:
            return True

        with self._lock:
            job = self._jobs.get(event.job_id)
            if job is None:
                return False

            if job.is_terminal:
                return False

            if event.step is not None:
                job.current_step = event.step
            if event.progress is not None:
                job.progress = event.progress
            if event.type is EventType.FINISHED and event.status and event.status.is_terminal:
                job.mark_finished(event.status, event.error)
            elif job.status is JobStatus.PENDING:
                job.status = JobStatus.RUNNING
            return True

    def record_result(self, result: Job) -> bool:
        """Store the executor's final job. Returns True if this result finished the job.

        A job that is already terminal keeps its status; the result only
        replaces it when the statuses agree.
        """
        with self._lock:
            job = self._jobs.get(result.id)
            if job is None:
                return False
            if job.is_terminal:
                if job.status is result.status:
                    self._jobs[result.id] = result.copy()
                return False
            self._jobs[result.id] = result.copy()
            return True


class JobScheduler:
    """Runs pending jobs through a ``PipelineExecutor`` with bounded concurrency.

    ``start`` snapshots the pending jobs into a FIFO and launches up to
    ``max_concurrent`` of them; each job that finishes frees its slot for the
    next FIFO entry. A slot is held until the executor actually returns, so a
    cancelled job still counts against the ceiling until its in-flight call
    completes.
    """

    def __init__(
        self,
        executor: PipelineExecutor,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        error_handler: Optional[ErrorHandler] = None
    ):
        self.executor = executor
        self.max_concurrent = max_concurrent
        self.error_handler = error_handler or ErrorHandler()
        self.store = JobStore()
        self.events = EventStream()

        self._lock = threading.RLock()
        self._queue: Deque[str] = deque()
        self._active: Dict[str, CancellationToken] = {}
        self._pool: Optional[ThreadPoolExecutor] = None
        self._processing = False
        self._idle = threading.Event()
        self._idle.set()

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._processing

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    def submit(self, jobs: Iterable[Job]) -> List[str]:
        """Add jobs to the store. Jobs added while processing wait for the next ``start``."""
        job_ids = []
        for job in jobs:
            self.store.add(job)
            job_ids.append(job.id)
        logger.info(f"Submitted {len(job_ids)} job(s)")
        self._publish_queue_changed()
        return job_ids

    def start(self, max_concurrent: Optional[int] = None) -> bool:
        """Begin processing every pending job. Returns False if nothing was started.

        Raises:
            ConfigurationError: If ``max_concurrent`` is less than 1
        """
        limit = max_concurrent if max_concurrent is not None else self.max_concurrent
        if limit < 1:
            raise ConfigurationError(f"max_concurrent must be at least 1, got {limit}")

        with self._lock:
            if self._processing:
                logger.warning("Scheduler is already processing")
                return False

            pending = [job.id for job in self.store.jobs() if job.status is JobStatus.PENDING]
            if not pending:
                logger.info("No pending jobs to process")
                return False

            self.max_concurrent = limit
            self._queue = deque(pending)
            self._processing = True
            self._idle.clear()
            self._pool = ThreadPoolExecutor(max_workers=limit, thread_name_prefix="subdub-job")

        logger.info(f"Processing {len(pending)} job(s) with up to {limit} concurrent")
        self._publish_queue_changed()
        self._launch_available()
        return True

    def stop(self) -> None:
        """Cancel active jobs and empty the FIFO. Queued jobs stay pending."""
        with self._lock:
            self._queue.clear()
            active = list(self._active)

        for job_id in active:
            self.cancel(job_id)

        logger.info(f"Stopped processing, cancelled {len(active)} active job(s)")
        self._launch_available()

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending or running job. Returns False if it was not cancellable."""
        with self._lock:
            token = self._active.get(job_id)
            if token is not None:
                token.cancel()

        job = self.store.mark_finished(job_id, JobStatus.CANCELLED)
        if job is None:
            return False

        logger.info(f"Job {job_id} cancelled ({job.file_name})")
        self.events.publish(JobEvent(
            type=EventType.FINISHED,
            job_id=job_id,
            step=job.current_step,
            progress=job.progress,
            status=JobStatus.CANCELLED,
            message="Job cancelled",
        ))
        return True

    def remove(self, job_id: str) -> bool:
        """Remove a job, cancelling it first if it has not finished."""
        self.cancel(job_id)
        with self._lock:
            if job_id in self._queue:
                self._queue.remove(job_id)
        removed = self.store.remove(job_id)
        if removed:
            self._publish_queue_changed()
        return removed

    def remove_finished(self) -> int:
        finished = [job.id for job in self.store.jobs() if job.is_terminal]
        for job_id in finished:
            self.store.remove(job_id)
        if finished:
            self._publish_queue_changed()
        return len(finished)

    def remove_all(self) -> None:
        self.stop()
        self.store.clear()
        self._publish_queue_changed()

    def move(self, job_id: str, index: int) -> bool:
        """Move a pending job to ``index`` in the job order (and the FIFO, if queued)."""
        job = self.store.get(job_id)
        if job is None or job.status is not JobStatus.PENDING:
            return False

        self.store.move(job_id, index)
        with self._lock:
            if job_id in self._queue:
                queued = set(self._queue)
                self._queue = deque(queued_job.id for queued_job in self.store.jobs() if queued_job.id in queued)
        self._publish_queue_changed()
        return True

    def update_pending_config(self, config: JobConfig) -> int:
        """Apply ``config`` to every pending job. Returns the number of jobs updated.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        config.validate()
        updated = 0
        for job in self.store.jobs():
            if job.status is not JobStatus.PENDING:
                continue
            if self.store.update(job.id, lambda stored: setattr(stored, 'config', config)):
                updated += 1
        return updated

    def get(self, job_id: str) -> Optional[Job]:
        return self.store.get(job_id)

    def jobs(self) -> List[Job]:
        return self.store.jobs()

    def counts(self) -> Dict[JobStatus, int]:
        return status_counts(self.store.jobs())

    def overall_progress(self) -> float:
        """Mean over all jobs: terminal jobs count 1.0, running their own progress, pending 0.0."""
        jobs = self.store.jobs()
        if not jobs:
            return 0.0

        total = 0.0
        for job in jobs:
            if job.is_terminal:
                total += 1.0
            elif job.status is JobStatus.RUNNING:
                total += job.progress
        return total / len(jobs)

    def success_rate(self) -> float:
        """Succeeded jobs as a fraction of finished jobs."""
        counts = self.counts()
        finished = counts[JobStatus.SUCCEEDED] + counts[JobStatus.FAILED] + counts[JobStatus.CANCELLED]
        if finished == 0:
            return 0.0
        return counts[JobStatus.SUCCEEDED] / finished

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the scheduler is idle. Returns False on timeout."""
        return self._idle.wait(timeout)

    def _launch_available(self) -> None:
        went_idle = False
        with self._lock:
            while self._processing and self._queue and len(self._active) < self.max_concurrent:
                job_id = self._queue.popleft()
                job = self.store.mark_running(job_id)
                if job is None or job.status is not JobStatus.RUNNING:
                    # Cancelled or removed while queued
                    continue

                token = CancellationToken(job_id)
                self._active[job_id] = token
                logger.info(f"Launching job {job_id} ({job.file_name})")
                self._pool.submit(self._run_job, job, token)

            if self._processing and not self._queue and not self._active:
                self._processing = False
                self._pool.shutdown(wait=False)
                self._pool = None
                went_idle = True

        if went_idle:
            logger.info("Queue finished")
            self._publish_queue_changed()
            self._idle.set()

    def _run_job(self, job: Job, token: CancellationToken) -> None:
        try:
            result = self.executor.run(job, token, self._sink)
            if self.store.record_result(result):
                self.events.publish(JobEvent(
                    type=EventType.FINISHED,
                    job_id=result.id,
                    step=result.current_step,
                    progress=result.progress,
                    status=result.status,
                    message=f"Job {result.status.value}",
                    error=result.error,
                ))
                if result.status is JobStatus.FAILED:
                    self.error_handler.log_job_failure(result)
        except Exception as e:  # noqa: BLE001
            logger.exception(f"Executor crashed for job {job.id}")
            failed = self.store.mark_finished(job.id, JobStatus.FAILED, f"Unexpected error: {e}")
            if failed:
                self.events.publish(JobEvent(
                    type=EventType.FINISHED,
                    job_id=failed.id,
                    step=failed.current_step,
                    progress=failed.progress,
                    status=JobStatus.FAILED,
                    message="Job failed",
                    error=failed.error,
                ))
                self.error_handler.log_job_failure(failed)
        finally:
            with self._lock:
                self._active.pop(job.id, None)
            self._launch_available()

    def _sink(self, event: JobEvent) -> None:
        if event.type is EventType.FINISHED:
            # Published by _run_job once the full result is recorded
            return
        if self.store.apply_event(event):
            self.events.publish(event)

    def _publish_queue_changed(self) -> None:
        counts = self.counts()
        self.events.publish(JobEvent(
            type=EventType.QUEUE_CHANGED,
            message=", ".join(f"{status.value}: {count}" for status, count in counts.items() if count),
        ))

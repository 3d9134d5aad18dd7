# === NAVMAP v1 ===
# {
#   "module": "CloudPost.scheduler",
#   "purpose": "Bounded worker pool running one job per command file",
#   "sections": [
#     {"id": "scheduler", "name": "Scheduler", "anchor": "#class-scheduler", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Bounded worker pool running one job per command file.

**Architecture:**

    Scheduler.run(jobs)
      ├─ ThreadPoolExecutor(max_workers=workers): one future per job
      ├─ shutdown of intake once every job is submitted
      ├─ wait(timeout=ceiling): all jobs, or PoolTimeoutError
      └─ RunSummary: results in submission order

Jobs never share mutable state; the only shared object is the store client,
which is thread-safe. Jobs from different files run concurrently and carry no
ordering guarantee relative to each other.
"""

from __future__ import annotations

import logging
import time
from concurrent import futures
from typing import Iterable, List, Optional, Protocol

from CloudPost.config.models import DEFAULT_POOL_TIMEOUT_S
from CloudPost.errors import ErrorKind, PoolTimeoutError
from CloudPost.models import JobResult
from CloudPost.summary import RunSummary

__all__ = ["Job", "Scheduler"]

logger = logging.getLogger(__name__)


class Job(Protocol):
    name: str

    def run(self) -> JobResult: ...


class Scheduler:
    """Runs jobs on a fixed-size thread pool and aggregates their results.

    Attributes:
        workers: Pool size
        timeout_seconds: Ceiling for all outstanding jobs to finish
    """

    def __init__(
        self,
        workers: int = 1,
        *,
        timeout_seconds: float = DEFAULT_POOL_TIMEOUT_S,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.workers = workers
        self.timeout_seconds = timeout_seconds

    def run(self, jobs: Iterable[Job]) -> RunSummary:
        """Run every job and wait for all of them.

        Raises:
            PoolTimeoutError: If jobs are still running after ``timeout_seconds``
        """
        job_list = list(jobs)
        logger.info(f"Starting {len(job_list)} job(s) on {self.workers} worker(s)")
        started = time.monotonic()

        executor = futures.ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix="cloudpost-worker"
        )
        submitted = [(job, executor.submit(job.run)) for job in job_list]
        executor.shutdown(wait=False)

        _, not_done = futures.wait(
            [future for _, future in submitted], timeout=self.timeout_seconds
        )
        if not_done:
            executor.shutdown(wait=False, cancel_futures=True)
            logger.error(
                "Execution of jobs exceeded the %gs ceiling; %d job(s) unfinished",
                self.timeout_seconds,
                len(not_done),
            )
            raise PoolTimeoutError(self.timeout_seconds, pending=len(not_done))
        executor.shutdown(wait=True)

        results: List[JobResult] = []
        for job, future in submitted:
            results.append(self._collect(job, future))

        logger.info(
            f"{len(results)} files indexed in {time.monotonic() - started:.1f}s",
        )
        return RunSummary(results)

    @staticmethod
    def _collect(job: Job, future: "futures.Future[JobResult]") -> JobResult:
        error: Optional[BaseException] = future.exception()
        if error is None:
            return future.result()
        # Jobs capture their own failures; anything reaching here is a bug in a job.
        logger.exception("Unexpected error in job %s", job.name, exc_info=error)
        return JobResult(
            source=job.name,
            posted=0,
            success=False,
            error=error,
            error_kind=ErrorKind.UNEXPECTED,
        )

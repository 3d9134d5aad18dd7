# === NAVMAP v1 ===
# {
#   "module": "CloudPost.job",
#   "purpose": "Run one command file through parser, batch assembler and dispatcher",
#   "sections": [
#     {"id": "ingestjob", "name": "IngestJob", "anchor": "#class-ingestjob", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Job execution for a single command file.

An :class:`IngestJob` binds one :class:`~CloudPost.sources.CommandSource` to a
parser → batch assembler → dispatcher pipeline and runs it start to finish on
the calling thread:

    open source
      ↓
    parse unit ──→ assembler.offer() ──(full batch)──→ dispatcher.submit()
      ↓ (end of stream)
    assembler.finish()
      ↓
    optional throttle delay

Any failure ends the job early and is returned inside the
:class:`~CloudPost.models.JobResult`; nothing propagates to sibling jobs.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from CloudPost.batching import DEFAULT_BATCH_SIZE, BatchAssembler
from CloudPost.config.models import RetryPolicy
from CloudPost.dispatch import DEFAULT_COMMIT_WITHIN_SECONDS, Dispatcher, StoreClient
from CloudPost.errors import classify_error, describe_error
from CloudPost.loader import iter_commands
from CloudPost.models import JobResult
from CloudPost.sources import CommandSource

__all__ = ["IngestJob"]

LOGGER = logging.getLogger(__name__)


class IngestJob:
    """Posts every operation of one source file, in file order.

    Attributes:
        source: File this job is bound to
        client: Shared store client
        batch_size: Maximum operations per submission unit
        commit_within_seconds: Commit-within hint for every unit
        delay_seconds: Pause after a successful run (throttling)
        retry_policy: Retry budget for transient failures
    """

    def __init__(
        self,
        source: CommandSource,
        client: StoreClient,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        commit_within_seconds: int = DEFAULT_COMMIT_WITHIN_SECONDS,
        delay_seconds: float = 0,
        retry_policy: Optional[RetryPolicy] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.source = source
        self.client = client
        self.batch_size = batch_size
        self.commit_within_seconds = commit_within_seconds
        self.delay_seconds = delay_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logger or LOGGER
        self._sleep = sleep

    @property
    def name(self) -> str:
        return self.source.name

    def run(self) -> JobResult:
        """Execute the job and report its outcome; never raises for job-level errors."""
        started = time.monotonic()
        dispatcher = Dispatcher(
            self.client,
            retry_policy=self.retry_policy,
            commit_within_seconds=self.commit_within_seconds,
            source=self.name,
            logger=self.logger,
            sleep=self._sleep,
        )
        assembler = BatchAssembler(dispatcher, self.batch_size)

        self.logger.info("READing file %s", self.name, extra={"source": self.name})
        try:
            with self.source.open() as stream:
                for unit in iter_commands(stream, source=self.name, logger=self.logger):
                    assembler.offer(unit)
                assembler.finish()
        except Exception as exc:
            self.logger.error(
                "[error posting file %s] : %s",
                self.name,
                describe_error(exc),
                extra={
                    "source": self.name,
                    "error_kind": classify_error(exc).value,
                    "posted": assembler.posted,
                },
            )
            return JobResult(
                source=self.name,
                posted=assembler.posted,
                success=False,
                error=exc,
                error_kind=classify_error(exc),
                duration_s=time.monotonic() - started,
            )

        self.logger.info(
            "Done POSTing all %d updates from %s",
            assembler.posted,
            self.name,
            extra={"source": self.name, "posted": assembler.posted},
        )
        if self.delay_seconds > 0:
            self._sleep(self.delay_seconds)

        return JobResult(
            source=self.name,
            posted=assembler.posted,
            success=True,
            duration_s=time.monotonic() - started,
        )

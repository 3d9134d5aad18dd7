# === NAVMAP v1 ===
# {
#   "module": "CloudPost.runner",
#   "purpose": "Run orchestration from configuration: discover, post, commit",
#   "sections": [
#     {"id": "build-jobs", "name": "build_jobs", "anchor": "function-build-jobs", "kind": "function"},
#     {"id": "post-files", "name": "post_files", "anchor": "function-post-files", "kind": "function"}
#   ]
# }
# === /NAVMAP ===
"""Execution harness for a posting run.

Responsibilities
----------------
- Resolve the requested paths into command sources
- Build one :class:`~CloudPost.job.IngestJob` per source from :class:`PostConfig`
- Run them on the :class:`~CloudPost.scheduler.Scheduler`
- Issue the end-of-run commit/optimize when configured

Design Principles
-----------------
- Explicit dependency injection: the store client is created by the caller and
  outlives the run
- A failed commit or optimize is reported but does not undo posted work
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

from CloudPost.config.models import PostConfig
from CloudPost.dispatch import StoreClient
from CloudPost.job import IngestJob
from CloudPost.scheduler import Scheduler
from CloudPost.sources import CommandSource, discover_sources
from CloudPost.summary import RunSummary

__all__ = ["build_jobs", "post_files"]

_LOGGER = logging.getLogger(__name__)


def build_jobs(
    sources: Sequence[CommandSource],
    client: StoreClient,
    config: PostConfig,
    *,
    logger: Optional[logging.Logger] = None,
) -> List[IngestJob]:
    return [
        IngestJob(
            source,
            client,
            batch_size=config.batch_size,
            commit_within_seconds=config.commit_within_s,
            delay_seconds=config.delay_s,
            retry_policy=config.retry,
            logger=logger,
        )
        for source in sources
    ]


def _finalize(client: Any, config: PostConfig) -> None:
    for enabled, action in ((config.commit, "commit"), (config.optimize, "optimize")):
        if not enabled:
            continue
        operation = getattr(client, action, None)
        if operation is None:
            _LOGGER.warning("Store client does not support %s; skipped", action)
            continue
        try:
            operation()
        except Exception as exc:
            _LOGGER.warning("Exception running %s: %s", action.upper(), exc)


def post_files(
    paths: Iterable[str | Path],
    config: PostConfig,
    client: StoreClient,
    *,
    logger: Optional[logging.Logger] = None,
) -> RunSummary:
    """Post every command file found under ``paths``.

    Args:
        paths: Files, directories or glob patterns
        config: Validated run configuration
        client: Thread-safe store client shared by all workers
        logger: Logger handed to every job

    Returns:
        Aggregated :class:`RunSummary`

    Raises:
        PoolTimeoutError: If the run exceeds ``config.pool_timeout_s``
    """
    sources = discover_sources(paths, config.file_types)
    _LOGGER.info(
        "Posting %d file(s)",
        len(sources),
        extra={"run_id": config.run_id, "workers": config.workers},
    )

    jobs = build_jobs(sources, client, config, logger=logger)
    scheduler = Scheduler(config.workers, timeout_seconds=config.pool_timeout_s)
    summary = scheduler.run(jobs)

    _finalize(client, config)
    return summary

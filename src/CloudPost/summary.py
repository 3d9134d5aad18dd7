"""Run summary builders.

Responsibilities
----------------
- Provide the :class:`RunSummary` dataclass that aggregates the
  :class:`~CloudPost.models.JobResult` of every file in a run for downstream
  consumers (CLI, tests).
- Assemble structured summary payloads via :func:`build_summary_record`, ready
  to be logged or written as JSON.

Design Notes
------------
- ``total_posted`` counts every operation the store accepted, including the
  batches a failed file managed to flush before its error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from CloudPost.errors import describe_error
from CloudPost.models import JobResult

__all__ = ["RunSummary", "build_summary_record"]


@dataclass
class RunSummary:
    """Aggregated outcome of a run."""

    results: List[JobResult] = field(default_factory=list)

    @property
    def files_processed(self) -> int:
        return len(self.results)

    @property
    def total_posted(self) -> int:
        return sum(result.posted for result in self.results)

    @property
    def succeeded(self) -> List[JobResult]:
        return [result for result in self.results if result.success]

    @property
    def failed(self) -> List[JobResult]:
        return [result for result in self.results if not result.success]

    @property
    def failed_files(self) -> List[Tuple[str, Optional[BaseException]]]:
        return [(result.source, result.error) for result in self.failed]

    @property
    def ok(self) -> bool:
        return not self.failed


def build_summary_record(
    summary: RunSummary,
    *,
    run_id: Optional[str] = None,
    elapsed_s: Optional[float] = None,
) -> Dict[str, Any]:
    """Assemble the structured run summary record."""

    kind_totals: Dict[str, int] = {}
    for result in summary.failed:
        kind = result.error_kind.value if result.error_kind else "unknown"
        kind_totals[kind] = kind_totals.get(kind, 0) + 1

    return {
        "run_id": run_id,
        "files_processed": summary.files_processed,
        "files_failed": len(summary.failed),
        "total_posted": summary.total_posted,
        "elapsed_s": elapsed_s,
        "error_kind_totals": kind_totals,
        "failures": [
            {
                "source": result.source,
                "posted": result.posted,
                "error_kind": result.error_kind.value if result.error_kind else None,
                "error": describe_error(result.error) if result.error else None,
            }
            for result in summary.failed
        ],
    }

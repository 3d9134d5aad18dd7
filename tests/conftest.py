# === NAVMAP v1 ===
# {
#   "module": "tests.conftest",
#   "purpose": "Shared pytest fixtures for the CloudPost suite",
#   "sections": [
#     {"id": "recordingclient", "name": "RecordingClient", "anchor": "class-recordingclient", "kind": "class"},
#     {"id": "write-xml", "name": "write_xml", "anchor": "function-write-xml", "kind": "fixture"}
#   ]
# }
# === /NAVMAP ===

"""
Pytest Configuration

Shared fakes and fixtures: an in-memory, thread-safe store client that records
every submitted unit, a scripted failure queue for retry tests, and helpers
that write command files into ``tmp_path``.
"""

from __future__ import annotations

import copy
import threading
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from CloudPost.config import RetryPolicy
from CloudPost.models import SubmissionUnit


class RecordingClient:
    """Thread-safe fake store client.

    ``failures`` is a queue of exceptions raised by successive ``submit`` calls
    before falling back to success.
    """

    def __init__(self, failures: Optional[List[BaseException]] = None) -> None:
        self.units: List[SubmissionUnit] = []
        self.calls = 0
        self.commits = 0
        self.optimizes = 0
        self.failures = list(failures or [])
        self._lock = threading.Lock()

    def submit(self, unit: SubmissionUnit) -> None:
        with self._lock:
            self.calls += 1
            if self.failures:
                raise self.failures.pop(0)
            self.units.append(copy.deepcopy(unit))

    def commit(self) -> None:
        self.commits += 1

    def optimize(self) -> None:
        self.optimizes += 1

    @property
    def delete_ids(self) -> List[List[str]]:
        return [list(unit.delete_ids) for unit in self.units]

    @property
    def total_operations(self) -> int:
        return sum(unit.operation_count for unit in self.units)


@pytest.fixture
def client() -> RecordingClient:
    return RecordingClient()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy without waits."""
    return RetryPolicy(max_attempts=3, wait_seconds=0)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def record_sleep(sleeps: List[float]) -> Callable[[float], None]:
    return sleeps.append


@pytest.fixture
def write_xml(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write ``content`` to ``tmp_path/name`` and return the path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


def docs_xml(count: int, *, start: int = 1) -> str:
    """Render an ``add`` file with ``count`` single-field documents."""
    body = "".join(
        f'<doc><field name="id">{i}</field></doc>' for i in range(start, start + count)
    )
    return f"<add>{body}</add>"

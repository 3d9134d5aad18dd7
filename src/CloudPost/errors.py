# === NAVMAP v1 ===
# {
#   "module": "CloudPost.errors",
#   "purpose": "Error taxonomy for parsing, dispatching and scheduling command files.",
#   "sections": [
#     {"id": "cloudposterror", "name": "CloudPostError", "anchor": "class-cloudposterror", "kind": "class"},
#     {"id": "errorkind", "name": "ErrorKind", "anchor": "class-errorkind", "kind": "enum"},
#     {"id": "classify-error", "name": "classify_error", "anchor": "function-classify-error", "kind": "function"},
#     {"id": "describe-error", "name": "describe_error", "anchor": "function-describe-error", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy for parsing, dispatching and scheduling command files.

Responsibilities
----------------
- Define lightweight exception types that retain the offending element, source
  file, or retry budget so that job results and console summaries can report
  failures without re-deriving context.
- Provide :class:`ErrorKind` and :func:`classify_error` so that a failure
  captured by a job travels upwards as an explicit value instead of an
  in-flight exception.

Design Notes
------------
- Parser and dispatcher errors are scoped to a single job. Only
  :class:`PoolTimeoutError` is fatal for a whole run.
- The module has no third-party imports so it can be used from retry hooks and
  error paths.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = (
    "CloudPostError",
    "MalformedInputError",
    "UnsupportedElementError",
    "SourceReadError",
    "FatalSubmissionError",
    "RetryExhaustedError",
    "PoolTimeoutError",
    "ErrorKind",
    "classify_error",
    "describe_error",
)


class CloudPostError(Exception):
    """Base class for all CloudPost failures."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} (in {self.source})"
        return self.message


class MalformedInputError(CloudPostError):
    """Raised when a command stream contains an invalid child element or value."""

    def __init__(
        self,
        message: str,
        *,
        source: Optional[str] = None,
        element: Optional[str] = None,
    ) -> None:
        super().__init__(message, source=source)
        self.element = element


class UnsupportedElementError(CloudPostError):
    """Raised for command elements other than ``add``/``delete`` (commit, optimize, ...)."""

    def __init__(self, element: str, *, source: Optional[str] = None) -> None:
        super().__init__(f"Found unsupported element '{element}'", source=source)
        self.element = element


class SourceReadError(CloudPostError):
    """Raised when a source file cannot be opened or unwrapped into an XML stream."""


class FatalSubmissionError(CloudPostError):
    """Raised when the remote store rejects a submission for a non-transient reason."""


class RetryExhaustedError(CloudPostError):
    """Raised when transient failures persist past the retry budget."""

    def __init__(self, attempts: int, *, source: Optional[str] = None) -> None:
        super().__init__(
            f"No more retries available after {attempts} attempt(s)", source=source
        )
        self.attempts = attempts


class PoolTimeoutError(CloudPostError):
    """Raised when outstanding jobs exceed the scheduling ceiling."""

    def __init__(self, timeout_seconds: float, *, pending: int = 0) -> None:
        super().__init__(
            f"{pending} job(s) still running after {timeout_seconds:g}s scheduling ceiling"
        )
        self.timeout_seconds = timeout_seconds
        self.pending = pending


class ErrorKind(str, Enum):
    """Stable identifiers for job-terminating failures."""

    MALFORMED_INPUT = "malformed_input"
    UNSUPPORTED_ELEMENT = "unsupported_element"
    SOURCE_READ = "source_read"
    FATAL_SUBMISSION = "fatal_submission"
    RETRY_EXHAUSTED = "retry_exhausted"
    UNEXPECTED = "unexpected"


_KIND_BY_TYPE = (
    (MalformedInputError, ErrorKind.MALFORMED_INPUT),
    (UnsupportedElementError, ErrorKind.UNSUPPORTED_ELEMENT),
    (SourceReadError, ErrorKind.SOURCE_READ),
    (FatalSubmissionError, ErrorKind.FATAL_SUBMISSION),
    (RetryExhaustedError, ErrorKind.RETRY_EXHAUSTED),
)


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an exception captured by a job onto its :class:`ErrorKind`."""

    for exc_type, kind in _KIND_BY_TYPE:
        if isinstance(exc, exc_type):
            return kind
    return ErrorKind.UNEXPECTED


def describe_error(exc: BaseException) -> str:
    """Return a one-line description including the root cause, if any."""

    text = str(exc) or type(exc).__name__
    cause = exc.__cause__
    if cause is not None:
        text = f"{text}: {type(cause).__name__}: {cause}"
    return text

# === NAVMAP v1 ===
# {
#   "module": "CloudPost.dispatch",
#   "purpose": "Submission of units to the remote store with failure classification and retries",
#   "sections": [
#     {"id": "storeclient", "name": "StoreClient", "anchor": "class-storeclient", "kind": "class"},
#     {"id": "is-transient", "name": "is_transient", "anchor": "function-is-transient", "kind": "function"},
#     {"id": "build-retrying", "name": "build_retrying", "anchor": "function-build-retrying", "kind": "function"},
#     {"id": "dispatcher", "name": "Dispatcher", "anchor": "class-dispatcher", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Submission of units to the remote store with failure classification and retries.

Provides:
- Transient failure classification over the explicit exception cause chain
- A Tenacity controller with an attempt budget and a fixed wait
- :class:`Dispatcher`, which stamps the commit-within hint and submits a unit

Transient failures (connection refused or reset, connect timeout, no response,
unresolvable host, unreachable network) are retried with the identical
unit. Anything else is a rejection of the request and fails immediately.
"""

from __future__ import annotations

import errno
import logging
import socket
import time
from typing import Any, Callable, Iterator, Optional, Protocol

import httpx
import tenacity
from tenacity import RetryCallState, RetryError, retry_if_exception

from CloudPost.config.models import RetryPolicy
from CloudPost.errors import FatalSubmissionError, RetryExhaustedError
from CloudPost.models import SubmissionUnit

__all__ = [
    "DEFAULT_COMMIT_WITHIN_SECONDS",
    "TRANSIENT_EXCEPTIONS",
    "NON_TRANSIENT_EXCEPTIONS",
    "StoreClient",
    "iter_causes",
    "is_transient",
    "build_retrying",
    "Dispatcher",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMIT_WITHIN_SECONDS = 120

TRANSIENT_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.RemoteProtocolError,
    httpx.NetworkError,
    ConnectionError,
    TimeoutError,
    socket.gaierror,
    socket.herror,
)

# Checked before TRANSIENT_EXCEPTIONS: the store may already have applied the
# request, and httpx chains ReadTimeout onto a socket TimeoutError.
NON_TRANSIENT_EXCEPTIONS = (
    httpx.ReadTimeout,
    httpx.HTTPStatusError,
)

_TRANSIENT_ERRNOS = frozenset(
    {errno.ENETUNREACH, errno.ENETDOWN, errno.EHOSTUNREACH, errno.ETIMEDOUT}
)


class StoreClient(Protocol):
    """Anything able to send a :class:`SubmissionUnit` to the document store.

    Implementations are shared by all workers and must be thread-safe.
    """

    def submit(self, unit: SubmissionUnit) -> Any: ...


def iter_causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` followed by its explicit ``raise ... from`` causes.

    Implicit ``__context__`` is not followed: an error raised while handling a
    connection failure is not itself a connection failure.
    """
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__


def _is_socket_error(exc: BaseException) -> bool:
    return isinstance(exc, OSError) and exc.errno in _TRANSIENT_ERRNOS


def is_transient(exc: BaseException) -> bool:
    """Classify a submission failure by the first recognised error in its cause chain.

    Returns True for connection-level failures (refused, reset, connect
    timeout, unresolvable host, unreachable network) and False for read
    timeouts, HTTP error statuses and anything unrecognised.
    """
    for cause in iter_causes(exc):
        if isinstance(cause, NON_TRANSIENT_EXCEPTIONS):
            return False
        if isinstance(cause, TRANSIENT_EXCEPTIONS) or _is_socket_error(cause):
            return True
    return False


def build_retrying(
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    before_sleep: Optional[Callable[[RetryCallState], None]] = None,
) -> tenacity.Retrying:
    """Build a Tenacity controller retrying transient failures only.

    Args:
        policy: Attempt budget and fixed wait between attempts
        sleep: Sleep function (tests pass a recorder)
        before_sleep: Optional hook run before each wait

    Returns:
        Configured Tenacity Retrying controller. Non-transient exceptions
        propagate unchanged; exhaustion raises :class:`tenacity.RetryError`.
    """
    return tenacity.Retrying(
        retry=retry_if_exception(is_transient),
        stop=tenacity.stop_after_attempt(policy.max_attempts),
        wait=tenacity.wait_fixed(policy.wait_seconds),
        sleep=sleep,
        before_sleep=before_sleep,
        reraise=False,
    )


class Dispatcher:
    """Sends submission units for one job through a shared store client.

    Attributes:
        client: Shared, thread-safe store client
        retry_policy: Attempt budget and wait between attempts
        commit_within_seconds: Commit-within hint applied to every unit
        source: Name of the file being posted, for messages
        attempts: Total submit attempts made, including retries
    """

    def __init__(
        self,
        client: StoreClient,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        commit_within_seconds: int = DEFAULT_COMMIT_WITHIN_SECONDS,
        source: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.retry_policy = retry_policy or RetryPolicy()
        self.commit_within_seconds = commit_within_seconds
        self.source = source
        self.logger = logger or LOGGER
        self.attempts = 0
        self._sleep = sleep

    def submit(self, unit: SubmissionUnit) -> int:
        """Send ``unit`` and return the number of operations it carried.

        Raises:
            RetryExhaustedError: Transient failures outlasted the retry budget
            FatalSubmissionError: The store rejected the unit
        """
        if unit.is_empty:
            return 0
        unit.commit_within_ms = self.commit_within_seconds * 1000
        count = unit.operation_count

        retrying = build_retrying(
            self.retry_policy, sleep=self._sleep, before_sleep=self._log_retry
        )
        try:
            for attempt in retrying:
                with attempt:
                    self.attempts += 1
                    self.client.submit(unit)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            self.logger.error(
                "Giving up on batch of %d updates from %s: %s",
                count,
                self.source,
                last_error,
                extra={"source": self.source, "attempts": exc.last_attempt.attempt_number},
            )
            raise RetryExhaustedError(
                exc.last_attempt.attempt_number, source=self.source
            ) from last_error
        except Exception as exc:
            raise FatalSubmissionError(
                f"Submission rejected: {type(exc).__name__}: {exc}", source=self.source
            ) from exc

        self.logger.info(
            "Successfully POSTed a batch with %d updates from %s",
            count,
            self.source,
            extra={"source": self.source, "operations": count},
        )
        return count

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        wait_s = retry_state.next_action.sleep if retry_state.next_action else 0.0
        self.logger.warning(
            "ERROR: %s ... Sleeping for %.0f seconds before re-try (attempt %d of %d)",
            error,
            wait_s,
            retry_state.attempt_number,
            self.retry_policy.max_attempts,
            extra={"source": self.source, "attempt": retry_state.attempt_number},
        )

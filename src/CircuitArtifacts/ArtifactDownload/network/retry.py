"""Retry policy: Tenacity-based exponential backoff for artifact fetches.

Each fetch runs under :func:`run_with_retry`. Attempt ``k`` (0-indexed) that
fails with a retryable error is followed by a delay of ``2**k * base_delay``
seconds plus, with jitter enabled, a uniform value in ``[0, base_delay)``.
Delays are uncapped unless ``max_delay`` is set. A policy with
``max_attempts=5`` performs at most six calls.

An error is retryable when it carries a status in
:data:`~CircuitArtifacts.ArtifactDownload.constants.RETRYABLE_STATUS_CODES`,
or when it is a network-level failure without any status code (timeouts,
refused connections, DNS failures). Everything else is terminal on the spot.

Retry sleeps wait on a
:class:`~CircuitArtifacts.ArtifactDownload.cancellation.CancellationToken`,
so shutting the downloader down interrupts them with
:class:`~CircuitArtifacts.ArtifactDownload.errors.FetchCancelled`.

Example:
    >>> policy = RetryPolicy(max_attempts=2, base_delay=0.0, jitter=False)
    >>> run_with_retry(lambda: b"ok", policy)
    b'ok'
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

import httpx
from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from ..cancellation import CancellationToken
from ..constants import RETRYABLE_STATUS_CODES
from ..errors import (
    ArtifactDownloadError,
    FetchCancelled,
    RetryableFetchError,
    TerminalFetchError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "RetryPolicy",
    "compute_backoff_delay",
    "status_code_of",
    "is_retryable_error",
    "error_for_status",
    "run_with_retry",
]


# ============================================================================
# Classification
# ============================================================================


def status_code_of(exc: BaseException) -> Optional[int]:
    """Return the HTTP status attached to ``exc``, if any."""

    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable_error(exc: BaseException) -> bool:
    """Default retry predicate.

    Status-bearing errors are retried only for 429/503/504. Status-less errors
    are retried when they are network-level failures.
    """

    if isinstance(exc, (TerminalFetchError, FetchCancelled)):
        return False

    status = status_code_of(exc)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES

    if isinstance(exc, RetryableFetchError):
        return True
    if isinstance(exc, httpx.UnsupportedProtocol):
        return False
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return True
    return False


def error_for_status(response: httpx.Response, *, url: Optional[str] = None) -> None:
    """Raise the fetch error matching a non-2xx ``response``."""

    if response.is_success:
        return
    status = response.status_code
    target = url or str(response.request.url)
    message = f"HTTP {status} from {target}"
    if status in RETRYABLE_STATUS_CODES:
        raise RetryableFetchError(message, status_code=status, url=target)
    raise TerminalFetchError(message, status_code=status, url=target)


# ============================================================================
# Policy
# ============================================================================


def compute_backoff_delay(
    retry_index: int,
    base_delay: float,
    *,
    jitter: bool = True,
    max_delay: Optional[float] = None,
) -> float:
    """Delay before retry ``retry_index`` (0 for the first retry)."""

    delay = (2**retry_index) * base_delay
    if jitter and base_delay > 0:
        delay += random.random() * base_delay
    if max_delay is not None:
        delay = min(delay, max_delay)
    return max(delay, 0.0)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff parameters shared by all fetches of a downloader.

    Attributes:
        max_attempts: Retries allowed after the first call.
        base_delay: Base delay in seconds.
        jitter: Whether to add uniform ``[0, base_delay)`` jitter.
        max_delay: Optional cap on any single delay; ``None`` means uncapped.
        is_retryable: Predicate deciding whether a failure is worth retrying.
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    jitter: bool = True
    max_delay: Optional[float] = None
    is_retryable: Callable[[BaseException], bool] = field(
        default=is_retryable_error, compare=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    @property
    def total_calls(self) -> int:
        return self.max_attempts + 1

    def delay_for(self, retry_index: int) -> float:
        return compute_backoff_delay(
            retry_index, self.base_delay, jitter=self.jitter, max_delay=self.max_delay
        )


class _PolicyWait(wait_base):
    """Tenacity wait strategy delegating to :meth:`RetryPolicy.delay_for`."""

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self._policy.delay_for(max(retry_state.attempt_number, 1) - 1)
        setattr(retry_state.retry_object, "_artifact_retry_delay", delay)
        return delay


# ============================================================================
# Execution
# ============================================================================


def run_with_retry(
    operation: Callable[[], T],
    policy: Optional[RetryPolicy] = None,
    *,
    kind: Optional[str] = None,
    variant: Optional[str] = None,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[Callable[[float], None]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Execute ``operation`` under ``policy``.

    Args:
        operation: Zero-argument callable performing one attempt.
        policy: Backoff parameters; defaults to ``RetryPolicy()``.
        kind: Artifact name attached to errors and log records.
        variant: Variant attached to errors and log records.
        cancel_token: Token whose cancellation aborts pending retries.
        sleep: Replacement sleep function (tests record delays with it).
        on_retry: Callback invoked as ``(attempt, error, delay)`` before each sleep.

    Returns:
        The value returned by the first successful attempt.

    Raises:
        TerminalFetchError: On a non-retryable failure or once retries are
            exhausted; the last underlying error is chained as the cause.
        FetchCancelled: If ``cancel_token`` is cancelled before or between attempts.
        ArtifactDownloadError: Non-retryable package errors propagate unchanged
            apart from attached context.
    """

    policy = policy or RetryPolicy()
    attempts = 0

    def _attempt() -> T:
        nonlocal attempts
        if cancel_token is not None and cancel_token.is_cancelled():
            raise FetchCancelled("fetch cancelled before attempt")
        attempts += 1
        return operation()

    def _sleep(delay: float) -> None:
        if sleep is not None:
            sleep(delay)
            cancelled = cancel_token is not None and cancel_token.is_cancelled()
        elif cancel_token is not None:
            cancelled = cancel_token.wait(delay)
        else:
            time.sleep(delay)
            cancelled = False
        if cancelled:
            raise FetchCancelled("fetch cancelled while waiting to retry")

    def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        delay = getattr(retry_state.retry_object, "_artifact_retry_delay", 0.0)
        logger.warning(
            "retrying artifact fetch",
            extra={
                "stage": "retry",
                "variant": variant,
                "artifact": kind,
                "attempt": retry_state.attempt_number,
                "delay": round(delay, 3),
                "status": status_code_of(exc) if exc is not None else None,
                "error": str(exc),
            },
        )
        if on_retry is not None and exc is not None:
            on_retry(retry_state.attempt_number, exc, delay)

    controller = Retrying(
        retry=retry_if_exception(policy.is_retryable),
        wait=_PolicyWait(policy),
        stop=stop_after_attempt(policy.total_calls),
        sleep=_sleep,
        reraise=False,
        before_sleep=_before_sleep,
    )

    try:
        return controller(_attempt)
    except RetryError as exhausted:
        last = exhausted.last_attempt.exception()
        error = TerminalFetchError(
            f"retries exhausted after {attempts} attempts: {last}",
            status_code=status_code_of(last) if last is not None else None,
            url=getattr(last, "url", None),
            attempt_count=attempts,
        )
        raise error.with_context(kind=kind, variant=variant) from last
    except ArtifactDownloadError as exc:
        raise exc.with_context(kind=kind, variant=variant, attempt_count=attempts)
    except Exception as exc:
        error = TerminalFetchError(
            f"fetch failed: {exc}",
            status_code=status_code_of(exc),
            attempt_count=attempts,
        )
        raise error.with_context(kind=kind, variant=variant) from exc

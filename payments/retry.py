"""
Caller-side retry policy for gateway operations.

Gateways never retry on their own. Callers that know a repeat is safe (widget
serialisation, or pay/verify with idempotency keys enabled) wrap the call
with ``call_with_retry``. Only transient failures are retried: timeouts,
transport errors, HTTP 429 and 5xx. Invalid state, missing fields and 4xx
rejections are raised on the first attempt.
"""

from collections.abc import Callable
from typing import TypeVar

import structlog
import tenacity

from payments.errors import AuthenticationError, GatewayRequestError

log = structlog.get_logger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, GatewayRequestError):
        return exc.retryable
    if isinstance(exc, AuthenticationError):
        # Bad credentials come back as 401; only unanswered exchanges are worth repeating
        return exc.status_code is None or exc.status_code >= 500
    return False


def _log_retry(state: tenacity.RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    log.warning(
        "payment.retry",
        attempt=state.attempt_number,
        error=str(exc) if exc else None,
    )


def retrying(
    attempts: int = 3, min_wait: float = 1, max_wait: float = 8
) -> tenacity.Retrying:
    return tenacity.Retrying(
        stop=tenacity.stop_after_attempt(max(attempts, 1)),
        wait=tenacity.wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=tenacity.retry_if_exception(is_transient),
        before_sleep=_log_retry,
        reraise=True,
    )


def call_with_retry(
    fn: Callable[..., T],
    *args,
    attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 8,
    **kwargs,
) -> T:
    return retrying(attempts, min_wait=min_wait, max_wait=max_wait)(fn, *args, **kwargs)

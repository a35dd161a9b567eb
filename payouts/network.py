"""
Resilient HTTP requests.

Every network call in the package goes through `fetch_with_retry`, which retries
transport failures and a configurable set of status codes with exponential
backoff and jitter:

    delay_n = min(max_delay, initial_delay * backoff_multiplier ** n + jitter)

with `jitter` drawn uniformly from [0, jitter) seconds. A non-retryable status
(a 404) is handed straight back to the caller; any other `requests` failure
(a malformed url, a missing schema) is raised as `NetworkError` without retrying.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import requests

from payouts.errors import NetworkError, RetryExhausted

logger = logging.getLogger(__name__)

OnRetry = Callable[[int, float, Exception], None]

# transport level failures, always worth another attempt
RETRYABLE_EXCEPTIONS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
    requests.exceptions.ContentDecodingError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """
    :param `max_retries`: attempts after the first one
    :param `initial_delay`: seconds to wait before the first retry
    :param `max_delay`: cap on any single wait, in seconds
    :param `on_retry`: called as on_retry(attempt, delay, error) before each wait
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.2
    retryable_statuses: frozenset[int] = field(
        default_factory=lambda: frozenset({408, 429, 500, 502, 503, 504})
    )
    timeout: float = 30.0
    on_retry: Optional[OnRetry] = None

    def delay(self, retry_number: int) -> float:
        jitter = random.random() * self.jitter
        return min(
            self.max_delay,
            self.initial_delay * self.backoff_multiplier**retry_number + jitter,
        )


DEFAULT_RETRY_POLICY = RetryPolicy()


def _notify(policy: RetryPolicy, attempt: int, delay: float, error: Exception) -> None:
    logger.warning(
        "Retrying request (attempt %d) in %.2fs after error: %s", attempt, delay, error
    )
    if policy.on_retry is None:
        return
    try:
        policy.on_retry(attempt, delay, error)
    except Exception:
        # observers must never change the outcome of the request
        logger.exception("on_retry callback raised")


def fetch_with_retry(
    url: str,
    method: str = "GET",
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    **request_kwargs: Any,
) -> requests.Response:
    """
    Send a request, retrying on transport errors and retryable statuses.
    Returns the first response whose status is not retryable; raises
    `RetryExhausted` carrying the last error once all attempts are used.
    """
    request_kwargs.setdefault("timeout", policy.timeout)
    last_error: Exception = NetworkError(f"No attempt made to {url}")

    for attempt in range(policy.max_retries + 1):
        try:
            response = requests.request(method, url, **request_kwargs)
            if response.status_code not in policy.retryable_statuses:
                return response
            last_error = requests.HTTPError(
                f"HTTP {response.status_code} from {url}", response=response
            )
        except RETRYABLE_EXCEPTIONS as e:
            last_error = e
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        if attempt == policy.max_retries:
            break

        delay = policy.delay(attempt)
        _notify(policy, attempt + 1, delay, last_error)
        time.sleep(delay)

    raise RetryExhausted(last_error, policy.max_retries + 1)


def fetch_bytes_with_retry(
    url: str, policy: RetryPolicy = DEFAULT_RETRY_POLICY, **request_kwargs: Any
) -> bytes:
    response = fetch_with_retry(url, "GET", policy, **request_kwargs)
    if not response.ok:
        raise NetworkError(f"HTTP {response.status_code} fetching {url}")
    return response.content


def fetch_json_with_retry(
    url: str,
    method: str = "GET",
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    **request_kwargs: Any,
) -> Any:
    response = fetch_with_retry(url, method, policy, **request_kwargs)
    if not response.ok:
        raise NetworkError(f"HTTP {response.status_code} from {url}")
    try:
        return response.json()
    except ValueError as e:
        raise NetworkError(f"Invalid JSON body from {url}") from e

"""Client-side rate limiting for the Kubernetes and Equinix Metal APIs."""

from __future__ import annotations

import os
import threading
import time
from functools import wraps
from typing import Any, Callable, TypeVar

import httpx
from kubernetes.client.exceptions import ApiException

from .. import metrics

_F = TypeVar("_F", bound=Callable[..., Any])


class _Throttle:
    """Spaces calls at least 1/rate seconds apart across all handler threads."""

    def __init__(self, rate_per_second: float):
        self.rate = rate_per_second
        self.last_call = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        # Reserve the next slot under the lock, then sleep without holding it
        with self._lock:
            now = time.time()
            slot = max(now, self.last_call + 1.0 / self.rate)
            self.last_call = slot
        if slot > now:
            time.sleep(slot - now)

    def __call__(self, func: _F) -> _F:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            self.wait()
            return func(*args, **kwargs)

        return wrapper  # type: ignore


_k8s_throttle = _Throttle(float(os.getenv("K8S_RATE_LIMIT_PER_SECOND", "10.0")))
_metal_throttle = _Throttle(float(os.getenv("METAL_RATE_LIMIT_PER_SECOND", "5.0")))


def rate_limit_k8s(func: _F) -> _F:
    """Wrap a Kubernetes API call so it respects K8S_RATE_LIMIT_PER_SECOND."""
    return _k8s_throttle(func)


def rate_limit_metal(func: _F) -> _F:
    """Wrap a Metal API call so it respects METAL_RATE_LIMIT_PER_SECOND."""
    return _metal_throttle(func)


def is_rate_limit_error(e: Exception) -> bool:
    """Check whether an exception from either API signals rate limiting.

    Args:
        e: Exception raised by the Kubernetes client or httpx

    Returns:
        True for HTTP 429 (and 503 mentioning a rate limit)
    """
    if isinstance(e, ApiException):
        return e.status == 429 or (e.status == 503 and "rate limit" in str(e).lower())
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code == 429
    return False


def handle_rate_limit_error(e: Exception, attempt: int = 0, max_retries: int = 3) -> bool:
    """Check if an API exception is a rate limit error and back off.

    Args:
        e: API exception
        attempt: Retries the caller already made for this call
        max_retries: Maximum number of retries

    Returns:
        True if the caller should retry, False otherwise
    """
    if not is_rate_limit_error(e):
        return False

    api_type = "k8s" if isinstance(e, ApiException) else "metal"
    metrics.rate_limit_hits_total.labels(api_type=api_type).inc()
    if attempt >= max_retries:
        return False
    # Exponential backoff: 1s, 2s, 4s
    time.sleep(2**attempt)
    return True

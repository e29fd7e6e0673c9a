"""Reconciliation context and correlation ID propagation."""

from __future__ import annotations

import contextvars
import os
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Any, Iterator

from .errors import ReconcileCancelledError

_DEFAULT_TIMEOUT = float(os.getenv("RECONCILE_TIMEOUT_SECONDS", "120.0"))

# Context variable for storing correlation ID
correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


class ReconcileContext:
    """Deadline and cancellation signal for one reconciliation pass.

    Every remote call made on behalf of a pass checks the context first and
    bounds its own timeout by the time remaining.
    """

    def __init__(
        self,
        timeout: float | None = None,
        corr_id: str | None = None,
        cancel_event: threading.Event | None = None,
    ):
        self.correlation_id = corr_id or uuid.uuid4().hex
        self.deadline = time.monotonic() + (timeout if timeout is not None else _DEFAULT_TIMEOUT)
        self._cancelled = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Signal cancellation to everything using this context."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float:
        """Seconds left before the deadline (never negative)."""
        return max(0.0, self.deadline - time.monotonic())

    def expired(self) -> bool:
        return self.cancelled or self.remaining() <= 0.0

    def check(self) -> None:
        """Raise if the pass was cancelled or ran past its deadline.

        Raises:
            ReconcileCancelledError: If the context is no longer usable
        """
        if self.cancelled:
            raise ReconcileCancelledError("context cancelled")
        if self.remaining() <= 0.0:
            raise ReconcileCancelledError("context deadline exceeded")

    def timeout(self, default: float) -> float:
        """Bound a per-request timeout by the time remaining."""
        self.check()
        return min(default, self.remaining())


def set_correlation_id(corr_id: str) -> None:
    """Set the correlation ID in the current context.

    Args:
        corr_id: Correlation ID to set
    """
    correlation_id.set(corr_id)


def get_correlation_id() -> str | None:
    """Get the correlation ID from the current context.

    Returns:
        Correlation ID if set, None otherwise
    """
    return correlation_id.get()


@contextmanager
def with_correlation_id(corr_id: str) -> Iterator[str]:
    """Context manager to set a correlation ID for the duration of a block.

    Args:
        corr_id: Correlation ID to use

    Yields:
        The correlation ID
    """
    token = correlation_id.set(corr_id)
    try:
        yield corr_id
    finally:
        correlation_id.reset(token)


def get_context_dict(additional: dict[str, Any] | None = None) -> dict[str, Any]:
    """Get a dictionary of context values.

    Args:
        additional: Additional key-value pairs to include

    Returns:
        Dictionary with context values including correlation_id
    """
    ctx = {}

    corr_id = get_correlation_id()
    if corr_id:
        ctx["correlation_id"] = corr_id

    if additional:
        ctx.update(additional)

    return ctx

"""Utility functions for the Metal Device Operator."""

from .cache import (
    get_cached_object,
    invalidate_cache,
    make_cache_key,
    set_cached_object,
)
from .conditions import (
    Condition,
    find_condition,
    set_condition,
    update_condition,
)
from .context import (
    ReconcileContext,
    get_context_dict,
    get_correlation_id,
    set_correlation_id,
    with_correlation_id,
)
from .errors import ErrorKind, ReconcileCancelledError, ReconcileError, wrap_error
from .events import emit_event
from .rate_limit import handle_rate_limit_error, rate_limit_k8s, rate_limit_metal
from .secrets import get_secret_value

__all__ = [
    "Condition",
    "ErrorKind",
    "ReconcileCancelledError",
    "ReconcileContext",
    "ReconcileError",
    "wrap_error",
    "update_condition",
    "set_condition",
    "find_condition",
    "emit_event",
    "get_secret_value",
    "get_cached_object",
    "set_cached_object",
    "invalidate_cache",
    "make_cache_key",
    "rate_limit_k8s",
    "rate_limit_metal",
    "handle_rate_limit_error",
    "set_correlation_id",
    "get_correlation_id",
    "with_correlation_id",
    "get_context_dict",
]

"""Shared plumbing for the Device and ProviderConfig handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TypeVar

import kopf

from .. import metrics
from ..logging import log_resource_event
from ..utils.errors import ErrorKind, ReconcileError, sanitize_exception
from ..utils.events import emit_reconcile_failed, emit_reconcile_started

_T = TypeVar("_T")

CONTROLLER_NAME = "metal-device-operator"

# Delay before kopf retries a pass that failed with a ReconcileError
RETRY_DELAY_SECONDS = 30


class BaseHandler:
    """Finalizers, structured logging, metrics and error translation for one kind."""

    def __init__(self, kind: str, finalizer: str):
        """Initialize base handler.

        Args:
            kind: Kind handled (e.g., "Device", "ProviderConfig")
            finalizer: Finalizer this handler owns on its resources
        """
        self.kind = kind
        self.finalizer = finalizer
        self.logger = logging.getLogger(__name__)

    def _log(self, level: int, meta: dict[str, Any], message: str, event: str, reason: str, **fields: Any) -> None:
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=meta.get("name", "unknown"),
            namespace=meta.get("namespace") or "",
            uid=meta.get("uid", "unknown"),
            event=event,
            reason=reason,
            message=message,
            level=level,
            **fields,
        )

    def log_info(self, meta: dict[str, Any], message: str, event: str = "info", reason: str = "Info", **fields: Any) -> None:
        self._log(logging.INFO, meta, message, event, reason, **fields)

    def log_warning(
        self, meta: dict[str, Any], message: str, event: str = "warning", reason: str = "Warning", **fields: Any
    ) -> None:
        self._log(logging.WARNING, meta, message, event, reason, **fields)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **fields: Any,
    ) -> None:
        """Log an error, adding the sanitized error and, for ReconcileErrors, its chain of kinds."""
        if error is not None:
            fields["error"] = sanitize_exception(error)
            fields["error_type"] = _error_type(error)
            if isinstance(error, ReconcileError):
                fields["error_chain"] = [kind.name for kind in error.kinds()]
        self._log(logging.ERROR, meta, message, event, reason, **fields)

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        finalizers = list(meta.get("finalizers", []))
        if self.finalizer not in finalizers:
            patch.metadata["finalizers"] = finalizers + [self.finalizer]

    def remove_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        finalizers = list(meta.get("finalizers", []))
        if self.finalizer in finalizers:
            finalizers.remove(self.finalizer)
            patch.metadata["finalizers"] = finalizers or None

    def reconcile_with_metrics(
        self,
        body: Any,
        meta: dict[str, Any],
        reconcile_fn: Callable[[], _T],
    ) -> _T:
        """Run reconcile_fn with events, metrics and kopf error translation.

        A ReconcileError becomes kopf.TemporaryError so kopf runs the pass
        again after RETRY_DELAY_SECONDS; NOT_SUPPORTED_KIND can never succeed
        and becomes kopf.PermanentError. Anything else propagates unchanged.

        Args:
            body: Resource body, used as the event target
            meta: Resource metadata, used for logging
            reconcile_fn: The pass to run

        Returns:
            Whatever reconcile_fn returns
        """
        emit_reconcile_started(body)
        metrics.reconcile_total.labels(kind=self.kind, result="started").inc()

        start_time = time.time()
        try:
            result = reconcile_fn()
        except Exception as e:
            message = sanitize_exception(e)
            metrics.error_total.labels(kind=self.kind, error_type=_error_type(e)).inc()
            metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
            self.log_error(meta, "Reconciliation failed", error=e, reason="ReconciliationFailed")
            emit_reconcile_failed(body, f"Reconciliation failed: {message}")
            if not isinstance(e, ReconcileError):
                raise
            if e.kind == ErrorKind.NOT_SUPPORTED_KIND:
                raise kopf.PermanentError(message) from e
            raise kopf.TemporaryError(message, delay=RETRY_DELAY_SECONDS) from e
        finally:
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(time.time() - start_time)

        metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
        return result

    def update_resource_status(
        self,
        patch: kopf.Patch,
        meta: dict[str, Any],
        ready: bool,
        status_data: dict[str, Any] | None = None,
    ) -> None:
        """Patch status with observedGeneration plus status_data and count the outcome."""
        metrics.resource_status_total.labels(kind=self.kind, status="ready" if ready else "not_ready").inc()
        patch.status.update({"observedGeneration": meta.get("generation", 0), **(status_data or {})})


def _error_type(error: BaseException) -> str:
    """Metric label for an error: the outermost kind for ReconcileErrors."""
    if isinstance(error, ReconcileError):
        return error.kind.name
    return type(error).__name__

"""Handler for ProviderConfig CRD."""

from __future__ import annotations

from typing import Any, Callable

import kopf
from kubernetes import client

from .. import metrics
from ..constants import KIND_PROVIDER_CONFIG, PROVIDER_API_GROUP_VERSION, PROVIDER_CONFIG_FINALIZER
from ..services.metal.models import Credentials
from ..tracing import trace_span
from ..utils.cache import invalidate_cache, make_cache_key
from ..utils.conditions import set_auth_valid_condition, set_ready_condition
from ..utils.credentials import ProviderConfigUsageTracker, extract_credentials
from ..utils.errors import sanitize_exception
from ..utils.events import emit_validate_failed, emit_validate_succeeded
from .base import BaseHandler
from .shared import get_k8s_clients

# Delay before re-checking whether a ProviderConfig is still in use
IN_USE_RETRY_DELAY_SECONDS = 30


class ProviderConfigHandler(BaseHandler):
    """Handler for ProviderConfig resources."""

    def __init__(
        self,
        clients_factory: Callable[[], tuple[client.CustomObjectsApi, client.CoreV1Api]] = get_k8s_clients,
    ):
        """Initialize provider config handler."""
        super().__init__(KIND_PROVIDER_CONFIG, PROVIDER_CONFIG_FINALIZER)
        self.clients_factory = clients_factory

    def reconcile(
        self,
        body: Any,
        spec: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Reconcile ProviderConfig resource."""
        name = meta.get("name", "unknown")
        invalidate_cache(make_cache_key(KIND_PROVIDER_CONFIG, name))

        with trace_span("reconcile_provider_config", kind=KIND_PROVIDER_CONFIG, attributes={"provider_config.name": name}):
            _, core_api = self.clients_factory()
            conditions = [dict(cond) for cond in status.get("conditions", [])]

            try:
                credentials = Credentials.from_bytes(extract_credentials(core_api, spec.get("credentials") or {}))
                auth_valid = True
                auth_message = "Credentials are readable"
                if not credentials.project_id:
                    auth_message = "Credentials are readable but carry no projectID"
                emit_validate_succeeded(body)
                metrics.provider_config_validation_total.labels(provider_config=name, status="valid").inc()
            except Exception as e:
                auth_valid = False
                sanitized_error = sanitize_exception(e)
                auth_message = f"Credentials are invalid: {sanitized_error}"
                metrics.error_total.labels(kind=KIND_PROVIDER_CONFIG, error_type=type(e).__name__).inc()
                metrics.provider_config_validation_total.labels(provider_config=name, status="invalid").inc()
                self.log_error(meta, auth_message, error=e, reason="AuthFailed")
                emit_validate_failed(body, auth_message)

            conditions = set_auth_valid_condition(conditions, auth_valid, auth_message, meta.get("generation"))
            ready_message = "ProviderConfig is ready" if auth_valid else "ProviderConfig is not ready"
            conditions = set_ready_condition(conditions, auth_valid, ready_message, meta.get("generation"))

            self.update_resource_status(patch, meta, auth_valid, {"conditions": conditions})

    def delete(
        self,
        meta: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Handle ProviderConfig deletion, blocking it while resources still use it.

        Raises:
            kopf.TemporaryError: While usages referencing the config exist
        """
        name = meta.get("name", "unknown")
        custom_api, _ = self.clients_factory()
        usages = ProviderConfigUsageTracker(custom_api).list_usages(name)
        if usages:
            message = f"ProviderConfig is still used by {len(usages)} resource(s)"
            self.log_warning(meta, message, event="deletion", reason="InUse")
            raise kopf.TemporaryError(message, delay=IN_USE_RETRY_DELAY_SECONDS)

        self.log_info(meta, "ProviderConfig is being deleted", event="deletion", reason="Deletion")
        invalidate_cache(make_cache_key(KIND_PROVIDER_CONFIG, name))
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = ProviderConfigHandler()


@kopf.on.create(PROVIDER_API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
@kopf.on.update(PROVIDER_API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
@kopf.on.resume(PROVIDER_API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
def handle_provider_config(
    body: kopf.Body,
    spec: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle ProviderConfig resource reconciliation."""
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(body, meta, lambda: _handler.reconcile(body, spec, meta, status, patch))


@kopf.on.delete(PROVIDER_API_GROUP_VERSION, KIND_PROVIDER_CONFIG)
def handle_provider_config_delete(
    meta: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle ProviderConfig resource deletion."""
    _handler.delete(meta, patch)

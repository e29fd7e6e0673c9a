"""ProviderConfig resolution, usage tracking and credential extraction."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

from kubernetes import client

from .. import metrics
from ..constants import (
    API_GROUP_VERSION,
    CREDENTIALS_SOURCE_SECRET,
    FIELD_MANAGER,
    KIND_DEVICE,
    KIND_PROVIDER_CONFIG,
    KIND_PROVIDER_CONFIG_USAGE,
    LABEL_MANAGED_BY,
    LABEL_PROVIDER_CONFIG,
    LABEL_RESOURCE_UID,
    PLURAL_PROVIDER_CONFIG_USAGES,
    PLURAL_PROVIDER_CONFIGS,
    PROVIDER_API_GROUP,
    PROVIDER_API_GROUP_VERSION,
    PROVIDER_API_VERSION,
)
from .cache import get_cached_object, make_cache_key, set_cached_object
from .errors import ErrorKind, ReconcileError, wrap_error
from .rate_limit import handle_rate_limit_error, rate_limit_k8s
from .secrets import get_secret_value

if TYPE_CHECKING:
    from ..models import DeclaredDevice

logger = logging.getLogger(__name__)


def get_provider_config_with_cache(api: client.CustomObjectsApi, name: str, attempt: int = 0) -> dict[str, Any]:
    """Get a cluster-scoped ProviderConfig with caching.

    Args:
        api: Kubernetes CustomObjectsApi instance
        name: Name of the ProviderConfig
        attempt: Rate-limit retries already made for this lookup

    Returns:
        ProviderConfig object

    Raises:
        client.exceptions.ApiException: If not found or on API error
    """
    cache_key = make_cache_key(KIND_PROVIDER_CONFIG, name)
    cached = get_cached_object(cache_key)

    if cached is not None:
        metrics.api_call_total.labels(api_type="k8s", operation="get_provider_config", result="cache_hit").inc()
        return cached

    start_time = time.time()
    try:
        provider_config = rate_limit_k8s(api.get_cluster_custom_object)(
            group=PROVIDER_API_GROUP,
            version=PROVIDER_API_VERSION,
            plural=PLURAL_PROVIDER_CONFIGS,
            name=name,
        )
        metrics.api_call_total.labels(api_type="k8s", operation="get_provider_config", result="success").inc()
        set_cached_object(cache_key, provider_config)
        return provider_config
    except Exception as e:
        metrics.api_call_total.labels(api_type="k8s", operation="get_provider_config", result="error").inc()
        if handle_rate_limit_error(e, attempt):
            return get_provider_config_with_cache(api, name, attempt + 1)
        raise
    finally:
        duration = time.time() - start_time
        metrics.api_call_duration_seconds.labels(api_type="k8s", operation="get_provider_config").observe(duration)


class ProviderConfigUsageTracker:
    """Records which managed resources use which ProviderConfig.

    A ProviderConfig must not be deleted while usages referencing it exist.
    """

    def __init__(self, api: client.CustomObjectsApi):
        self.api = api

    @staticmethod
    def usage_name(device: DeclaredDevice) -> str:
        return device.uid or f"{device.namespace or 'cluster'}.{device.name}"

    def track(self, device: DeclaredDevice) -> None:
        """Create or refresh the usage record for a device.

        Raises:
            client.exceptions.ApiException: On API failure
        """
        name = self.usage_name(device)
        resource_ref = {"apiVersion": API_GROUP_VERSION, "kind": KIND_DEVICE, "name": device.name}
        if device.namespace:
            resource_ref["namespace"] = device.namespace
        body = {
            "apiVersion": PROVIDER_API_GROUP_VERSION,
            "kind": KIND_PROVIDER_CONFIG_USAGE,
            "metadata": {
                "name": name,
                "labels": {
                    LABEL_MANAGED_BY: FIELD_MANAGER,
                    LABEL_PROVIDER_CONFIG: device.provider_config_ref,
                    LABEL_RESOURCE_UID: device.uid,
                },
            },
            "providerConfigRef": {"name": device.provider_config_ref},
            "resourceRef": resource_ref,
        }
        try:
            rate_limit_k8s(self.api.create_cluster_custom_object)(
                group=PROVIDER_API_GROUP,
                version=PROVIDER_API_VERSION,
                plural=PLURAL_PROVIDER_CONFIG_USAGES,
                body=body,
                field_manager=FIELD_MANAGER,
            )
        except client.exceptions.ApiException as e:
            if e.status != 409:
                raise
            rate_limit_k8s(self.api.patch_cluster_custom_object)(
                group=PROVIDER_API_GROUP,
                version=PROVIDER_API_VERSION,
                plural=PLURAL_PROVIDER_CONFIG_USAGES,
                name=name,
                body=body,
            )

    def release(self, device: DeclaredDevice) -> None:
        """Remove the usage record of a device, ignoring already removed ones."""
        try:
            rate_limit_k8s(self.api.delete_cluster_custom_object)(
                group=PROVIDER_API_GROUP,
                version=PROVIDER_API_VERSION,
                plural=PLURAL_PROVIDER_CONFIG_USAGES,
                name=self.usage_name(device),
            )
        except client.exceptions.ApiException as e:
            if e.status != 404:
                raise

    def list_usages(self, provider_config_name: str) -> list[dict[str, Any]]:
        """List usage records referencing a ProviderConfig."""
        result = rate_limit_k8s(self.api.list_cluster_custom_object)(
            group=PROVIDER_API_GROUP,
            version=PROVIDER_API_VERSION,
            plural=PLURAL_PROVIDER_CONFIG_USAGES,
            label_selector=f"{LABEL_PROVIDER_CONFIG}={provider_config_name}",
        )
        return list(result.get("items", []))


def extract_credentials(core_api: client.CoreV1Api, credentials_spec: dict[str, Any]) -> bytes:
    """Read the credential bytes a ProviderConfig points at.

    Raises:
        ReconcileError: GET_CREDENTIALS wrapping GET_CREDENTIALS_SECRET or
            SECRET_KEY_NOT_SPECIFIED
    """
    source = credentials_spec.get("source", CREDENTIALS_SOURCE_SECRET)
    if source != CREDENTIALS_SOURCE_SECRET:
        raise wrap_error(ErrorKind.GET_CREDENTIALS, ValueError(f"unsupported credentials source {source!r}"))

    secret_ref = credentials_spec.get("secretRef") or {}
    if not secret_ref.get("name") or not secret_ref.get("key"):
        raise wrap_error(ErrorKind.GET_CREDENTIALS, ReconcileError(ErrorKind.SECRET_KEY_NOT_SPECIFIED))

    try:
        return get_secret_value(
            core_api,
            secret_ref.get("namespace", "default"),
            secret_ref["name"],
            secret_ref["key"],
        )
    except Exception as e:
        raise wrap_error(ErrorKind.GET_CREDENTIALS, wrap_error(ErrorKind.GET_CREDENTIALS_SECRET, e))


def resolve_credentials(
    device: DeclaredDevice,
    custom_api: client.CustomObjectsApi,
    core_api: client.CoreV1Api,
    tracker: ProviderConfigUsageTracker,
) -> bytes:
    """Resolve the credentials a device's ProviderConfig references.

    Every failure is reported as GET_PROVIDER_CONFIG_SECRET wrapping the
    stage that failed.

    Args:
        device: Device whose providerConfigRef is resolved
        custom_api: Client for ProviderConfig objects
        core_api: Client for Secrets
        tracker: Records the device's use of the ProviderConfig

    Returns:
        Raw credential bytes
    """
    try:
        provider_config = get_provider_config_with_cache(custom_api, device.provider_config_ref)
    except Exception as e:
        raise wrap_error(
            ErrorKind.GET_PROVIDER_CONFIG_SECRET, wrap_error(ErrorKind.GET_PROVIDER_CONFIG, e)
        )

    try:
        tracker.track(device)
    except Exception as e:
        raise wrap_error(
            ErrorKind.GET_PROVIDER_CONFIG_SECRET, wrap_error(ErrorKind.APPLY_PROVIDER_CONFIG_USAGE, e)
        )

    credentials_spec = (provider_config.get("spec") or {}).get("credentials") or {}
    try:
        return extract_credentials(core_api, credentials_spec)
    except ReconcileError as e:
        raise wrap_error(ErrorKind.GET_PROVIDER_CONFIG_SECRET, e)

"""Shared utilities for handlers."""

from __future__ import annotations

import os

from kubernetes import client, config

from ..reconcilers.connecter import DeviceConnecter
from ..utils.context import ReconcileContext, get_correlation_id

_config_loaded = False


def load_k8s_config() -> None:
    """Load in-cluster config, falling back to the local kubeconfig."""
    global _config_loaded
    if _config_loaded:
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    _config_loaded = True


def get_k8s_clients() -> tuple[client.CustomObjectsApi, client.CoreV1Api]:
    """Get Kubernetes API clients.

    Returns:
        Tuple of (CustomObjectsApi, CoreV1Api)
    """
    load_k8s_config()
    return client.CustomObjectsApi(), client.CoreV1Api()


def get_connecter() -> DeviceConnecter:
    """Build a DeviceConnecter bound to the cluster's API clients."""
    custom_api, core_api = get_k8s_clients()
    return DeviceConnecter(custom_api, core_api)


def new_reconcile_context() -> ReconcileContext:
    """Start a reconciliation context bounded by RECONCILE_TIMEOUT_SECONDS."""
    timeout = float(os.getenv("RECONCILE_TIMEOUT_SECONDS", "120.0"))
    return ReconcileContext(timeout=timeout, corr_id=get_correlation_id())

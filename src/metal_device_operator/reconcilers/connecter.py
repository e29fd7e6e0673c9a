"""Connecter binding declared Devices to an authenticated Metal client."""

from __future__ import annotations

import logging
from typing import Any, Callable

from kubernetes import client

from ..builders.client import create_client_from_credentials
from ..constants import KIND_DEVICE
from ..models import as_device
from ..services.metal.base import DeviceClient
from ..tracing import trace_span
from ..utils.context import ReconcileContext
from ..utils.credentials import ProviderConfigUsageTracker, resolve_credentials
from ..utils.errors import ErrorKind, wrap_error
from .device import ExternalDevice

logger = logging.getLogger(__name__)

# Builds a device client from the raw credentials of a ProviderConfig
NewClientFn = Callable[[ReconcileContext, bytes], DeviceClient]


class DeviceConnecter:
    """Produces an ExternalDevice for a declared Device.

    Args:
        custom_api: Client for ProviderConfig and ProviderConfigUsage objects
        core_api: Client for credential Secrets
        tracker: Usage tracker (defaults to one using custom_api)
        new_client_fn: Factory building the device client
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        core_api: client.CoreV1Api,
        tracker: ProviderConfigUsageTracker | None = None,
        new_client_fn: NewClientFn = create_client_from_credentials,
    ):
        self.custom_api = custom_api
        self.core_api = core_api
        self.tracker = tracker or ProviderConfigUsageTracker(custom_api)
        self.new_client_fn = new_client_fn

    def connect(self, ctx: ReconcileContext, resource: Any) -> ExternalDevice:
        """Resolve credentials for a Device and bind a client to them.

        Raises:
            ReconcileError: NOT_SUPPORTED_KIND, GET_PROVIDER_CONFIG_SECRET or NEW_CLIENT
        """
        device = as_device(resource)
        with trace_span("connect_device", kind=KIND_DEVICE, attributes={"provider_config": device.provider_config_ref}):
            ctx.check()
            credentials = resolve_credentials(device, self.custom_api, self.core_api, self.tracker)
            try:
                device_client = self.new_client_fn(ctx, credentials)
            except Exception as e:
                raise wrap_error(ErrorKind.NEW_CLIENT, e)
            logger.debug(f"Connected {device.name} using ProviderConfig {device.provider_config_ref}")
            return ExternalDevice(device_client)

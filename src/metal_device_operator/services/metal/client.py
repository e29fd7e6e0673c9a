"""Equinix Metal REST API device client."""

from __future__ import annotations

import logging
import os
import time
from typing import Any

import httpx

from ... import metrics
from ...utils.context import ReconcileContext
from ...utils.errors import ReconcileCancelledError
from ...utils.rate_limit import is_rate_limit_error, rate_limit_metal
from .base import DeviceNotFoundError, MetalAPIError
from .models import (
    Credentials,
    DeviceCreateRequest,
    DeviceUpdateRequest,
    NetworkType,
    Port,
    RemoteDevice,
)
from .network import device_network_type

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.equinix.com/metal/v1"
USER_AGENT = "metal-device-operator"

# Addresses requested when a bond is converted to layer 3
DEFAULT_LAYER3_IPS = [
    {"address_family": 4, "public": True},
    {"address_family": 4, "public": False},
    {"address_family": 6, "public": True},
]


class MetalDeviceClient:
    """Device client bound to one set of credentials and one reconcile context."""

    def __init__(
        self,
        credentials: Credentials,
        ctx: ReconcileContext | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the Metal device client.

        Args:
            credentials: API key and default project
            ctx: Context bounding every request of this client
            base_url: API base URL (defaults to METAL_API_URL or the public API)
            timeout: Per-request timeout in seconds (defaults to METAL_API_TIMEOUT_SECONDS)
            transport: Optional httpx transport, used by tests
        """
        self.credentials = credentials
        self.ctx = ctx
        self.base_url = base_url or os.getenv("METAL_API_URL", DEFAULT_API_URL)
        self.timeout = timeout or float(os.getenv("METAL_API_TIMEOUT_SECONDS", "30.0"))
        self.client = httpx.Client(
            base_url=self.base_url,
            headers={
                "X-Auth-Token": credentials.api_key,
                "Accept": "application/json",
                "User-Agent": USER_AGENT,
            },
            transport=transport,
        )

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> MetalDeviceClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        device_id: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        if self.ctx is not None:
            self.ctx.check()

        @rate_limit_metal
        def send() -> httpx.Response:
            # Bounded by the time left once the throttle lets the request through
            timeout = self.ctx.timeout(self.timeout) if self.ctx is not None else self.timeout
            return self.client.request(method, path, timeout=timeout, **kwargs)

        start_time = time.time()
        try:
            response = send()
            response.raise_for_status()
            metrics.api_call_total.labels(api_type="metal", operation=operation, result="success").inc()
            return response
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code == 404 and device_id is not None:
                metrics.api_call_total.labels(api_type="metal", operation=operation, result="not_found").inc()
                raise DeviceNotFoundError(device_id) from e
            metrics.api_call_total.labels(api_type="metal", operation=operation, result="error").inc()
            if is_rate_limit_error(e):
                metrics.rate_limit_hits_total.labels(api_type="metal").inc()
            raise MetalAPIError(
                f"{operation} failed with HTTP {status_code}: {_error_detail(e.response)}",
                status_code=status_code,
            ) from e
        except httpx.TimeoutException as e:
            metrics.api_call_total.labels(api_type="metal", operation=operation, result="timeout").inc()
            if self.ctx is not None and self.ctx.expired():
                raise ReconcileCancelledError("context deadline exceeded") from e
            raise MetalAPIError(f"{operation} timed out") from e
        except httpx.HTTPError as e:
            metrics.api_call_total.labels(api_type="metal", operation=operation, result="error").inc()
            raise MetalAPIError(f"{operation} failed: {e}") from e
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="metal", operation=operation).observe(duration)

    def get(self, device_id: str) -> RemoteDevice:
        """Fetch a device."""
        response = self._request("GET", f"/devices/{device_id}", "get_device", device_id=device_id)
        return RemoteDevice.from_api(response.json())

    def create(self, request: DeviceCreateRequest) -> RemoteDevice:
        """Provision a new device in the request's project."""
        response = self._request(
            "POST",
            f"/projects/{request.project_id}/devices",
            "create_device",
            json=request.to_api(),
        )
        device = RemoteDevice.from_api(response.json())
        logger.info(f"Created device {device.id} in project {request.project_id}")
        return device

    def update(self, device_id: str, request: DeviceUpdateRequest) -> RemoteDevice:
        """Patch the changed attributes of a device."""
        response = self._request(
            "PUT",
            f"/devices/{device_id}",
            "update_device",
            device_id=device_id,
            json=request.to_api(),
        )
        return RemoteDevice.from_api(response.json())

    def delete(self, device_id: str, force: bool = False) -> None:
        """Delete a device."""
        self._request(
            "DELETE",
            f"/devices/{device_id}",
            "delete_device",
            device_id=device_id,
            params={"force_delete": str(force).lower()},
        )
        logger.info(f"Deleted device {device_id}")

    def project_id(self) -> str:
        """Project the bound credentials provision devices in."""
        return self.credentials.project_id

    def _port_action(self, port: Port, action: str, body: dict[str, Any] | None = None) -> None:
        self._request("POST", f"/ports/{port.id}/{action}", f"port_{action.replace('/', '_')}", json=body or {})

    def convert_network_type(self, device_id: str, network_type: NetworkType) -> RemoteDevice:
        """Reconfigure bonding and port layers until the device reaches a network type.

        Returns:
            The device as reported after the conversion
        """
        device = self.get(device_id)
        current = device_network_type(device)
        if current == network_type:
            return device

        bond = _bond_port(device)
        if bond is None:
            raise MetalAPIError(f"device {device_id} has no bond port to convert")
        second = _second_port(device, bond)

        logger.info(f"Converting device {device_id} from {current.value} to {network_type.value}")
        if network_type in (NetworkType.L3, NetworkType.HYBRID):
            if current == NetworkType.L2_INDIVIDUAL:
                self._port_action(bond, "bond", {"bulk_enable": True})
            if current in (NetworkType.L2_INDIVIDUAL, NetworkType.L2_BONDED):
                self._port_action(bond, "convert/layer-3", {"request_ips": DEFAULT_LAYER3_IPS})
            if second is not None:
                if network_type == NetworkType.HYBRID:
                    self._port_action(second, "disbond")
                elif current == NetworkType.HYBRID:
                    self._port_action(second, "bond")
        else:
            if current in (NetworkType.L3, NetworkType.HYBRID):
                self._port_action(bond, "convert/layer-2")
            if network_type == NetworkType.L2_BONDED:
                if current in (NetworkType.L2_INDIVIDUAL, NetworkType.HYBRID):
                    self._port_action(bond, "bond", {"bulk_enable": True})
            else:
                self._port_action(bond, "disbond", {"bulk_disable": True})

        return self.get(device_id)


def _bond_port(device: RemoteDevice) -> Port | None:
    bonds = [port for port in device.ports if port.is_bond]
    for port in bonds:
        if port.name == "bond0":
            return port
    return bonds[0] if bonds else None


def _second_port(device: RemoteDevice, bond: Port) -> Port | None:
    """The physical port split out of the bond in hybrid mode (eth1)."""
    physical = [port for port in device.ports if not port.is_bond]
    for port in physical:
        if port.name == "eth1":
            return port
    members = [port for port in physical if port.bond_name in (None, bond.name)]
    return members[-1] if len(members) > 1 else None


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        return "; ".join(str(err) for err in errors)
    return str(body)[:200]

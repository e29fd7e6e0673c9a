"""Base Metal device client interface."""

from __future__ import annotations

from typing import Protocol

from .models import DeviceCreateRequest, DeviceUpdateRequest, NetworkType, RemoteDevice


class MetalAPIError(Exception):
    """A Metal API request failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class DeviceNotFoundError(MetalAPIError):
    """The requested device does not exist (HTTP 404)."""

    def __init__(self, device_id: str):
        super().__init__(f"device {device_id!r} not found", status_code=404)
        self.device_id = device_id


class DeviceClient(Protocol):
    """Protocol defining the device operations a reconciler relies on."""

    def get(self, device_id: str) -> RemoteDevice:
        """Fetch a device.

        Raises:
            DeviceNotFoundError: If the device does not exist
        """
        ...

    def create(self, request: DeviceCreateRequest) -> RemoteDevice:
        """Provision a new device."""
        ...

    def update(self, device_id: str, request: DeviceUpdateRequest) -> RemoteDevice:
        """Patch the changed attributes of a device."""
        ...

    def convert_network_type(self, device_id: str, network_type: NetworkType) -> RemoteDevice:
        """Reconfigure ports and bonding to reach the given network type."""
        ...

    def delete(self, device_id: str, force: bool = False) -> None:
        """Delete a device.

        Raises:
            DeviceNotFoundError: If the device does not exist
        """
        ...

    def project_id(self) -> str:
        """Project the bound credentials provision devices in."""
        ...

    def close(self) -> None:
        """Release the connections held by the client."""
        ...

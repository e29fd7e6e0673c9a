"""Builders translating Device specs into Metal API requests."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from ..models import DeclaredDevice, DeviceParameters
from ..services.metal.models import DeviceCreateRequest, DeviceUpdateRequest, NetworkType, RemoteDevice

# Spec fields that can be changed on an existing device. The RemoteDevice
# attribute of the same name holds the observed value.
MUTABLE_FIELDS = (
    "hostname",
    "billing_cycle",
    "user_data",
    "ipxe_script_url",
    "always_pxe",
    "locked",
)


def create_device_request(device: DeclaredDevice, project_id: str) -> DeviceCreateRequest:
    """Create a device create request from a declared Device.

    Args:
        device: Declared device
        project_id: Project the device is provisioned in

    Returns:
        Create request for the Metal API
    """
    spec = device.spec
    return DeviceCreateRequest(
        project_id=project_id,
        hostname=spec.hostname,
        plan=spec.plan,
        metro=spec.metro,
        facility=list(spec.facility) if spec.facility else None,
        operating_system=spec.operating_system,
        billing_cycle=spec.billing_cycle,
        user_data=spec.user_data,
        ipxe_script_url=spec.ipxe_script_url,
        always_pxe=spec.always_pxe,
        locked=spec.locked,
        tags=list(spec.tags) if spec.tags else None,
    )


def drifted_fields(spec: DeviceParameters, remote: RemoteDevice) -> list[str]:
    """Return the declared mutable fields whose value differs from the remote device."""
    drifted = []
    for name in MUTABLE_FIELDS:
        desired = getattr(spec, name)
        if desired is not None and desired != getattr(remote, name):
            drifted.append(name)
    return drifted


def update_device_request(spec: DeviceParameters, remote: RemoteDevice) -> DeviceUpdateRequest:
    """Create an update request carrying only the drifted fields."""
    changes: dict[str, Any] = {name: getattr(spec, name) for name in drifted_fields(spec, remote)}
    return DeviceUpdateRequest(**changes)


def late_initialize(
    spec: DeviceParameters,
    remote: RemoteDevice,
    network_type: NetworkType | None = None,
) -> tuple[DeviceParameters, list[str]]:
    """Fill unset spec fields from the observed device.

    Empty remote strings are not copied. The network type is only filled
    when one is given.

    Returns:
        The new parameters and the names of the fields that were filled
    """
    filled: dict[str, Any] = {}
    for name in MUTABLE_FIELDS:
        if getattr(spec, name) is not None:
            continue
        value = getattr(remote, name)
        if isinstance(value, str) and not value:
            continue
        filled[name] = value

    if spec.network_type is None and network_type is not None:
        filled["network_type"] = network_type

    if not filled:
        return spec, []
    return replace(spec, **filled), sorted(filled)

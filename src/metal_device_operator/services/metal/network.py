"""Network topology classification for Metal devices."""

from __future__ import annotations

from typing import Iterable

from ...constants import STATE_PROVISIONING, STATE_QUEUED
from .models import IPAssignment, NetworkType, Port, RemoteDevice

# States in which the API does not report a settled network type yet
FORMING_STATES = frozenset({STATE_PROVISIONING, STATE_QUEUED})


def resolve_network_type(
    ports: Iterable[Port],
    ip_assignments: Iterable[IPAssignment],
) -> NetworkType:
    """Classify a device's network topology from its ports and IP assignments.

    Physical ports in a bond together with a management IP mean layer3, or
    hybrid when some physical port was taken out of the bond. Bonded ports
    without a management IP mean layer2-bonded. Anything else, including no
    port data at all, is layer2-individual.

    Args:
        ports: Device network ports
        ip_assignments: Device IP address assignments

    Returns:
        The resolved network type
    """
    physical = [port for port in ports if not port.is_bond]
    bonded = [port for port in physical if port.bonded]
    individual = [port for port in physical if not port.bonded]
    has_management_ip = any(ip.management for ip in ip_assignments)

    if not bonded:
        return NetworkType.L2_INDIVIDUAL
    if has_management_ip:
        return NetworkType.HYBRID if individual else NetworkType.L3
    if individual:
        # Layer 2 with mixed bonding is not a mode the API can place a device in
        return NetworkType.L2_INDIVIDUAL
    return NetworkType.L2_BONDED


def is_forming(device: RemoteDevice) -> bool:
    """Whether the device is still being provisioned, whatever the state's case."""
    return device.state.lower() in FORMING_STATES


def device_network_type(device: RemoteDevice) -> NetworkType:
    """Network type of a remote device.

    While the device is still forming the reported value is unreliable, so
    the type is derived from ports and IP assignments. Afterwards the
    API-reported value wins when present.
    """
    if not is_forming(device):
        reported = NetworkType.parse(device.network_type)
        if reported is not None:
            return reported
    return resolve_network_type(device.ports, device.ip_assignments)

"""Models for Equinix Metal device operations."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Any

from ...constants import CREDENTIAL_API_KEY, CREDENTIAL_PROJECT_ID

PORT_TYPE_PHYSICAL = "NetworkPort"
PORT_TYPE_BOND = "NetworkBondPort"


class NetworkType(str, enum.Enum):
    """Network topology modes a device can be placed in."""

    L2_INDIVIDUAL = "layer2-individual"
    L2_BONDED = "layer2-bonded"
    L3 = "layer3"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: str | None) -> NetworkType | None:
        """Parse an API or spec value; unknown and empty values give None."""
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class Port:
    """A device network port."""

    id: str = ""
    name: str = ""
    type: str = PORT_TYPE_PHYSICAL
    bonded: bool = False
    bond_name: str | None = None
    network_type: str | None = None

    @property
    def is_bond(self) -> bool:
        return self.type == PORT_TYPE_BOND

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Port:
        bond = data.get("bond") or {}
        return cls(
            id=data.get("id", ""),
            name=data.get("name", ""),
            type=data.get("type", PORT_TYPE_PHYSICAL),
            bonded=bool((data.get("data") or {}).get("bonded", False)),
            bond_name=bond.get("name"),
            network_type=data.get("network_type"),
        )


@dataclass(frozen=True)
class IPAssignment:
    """An IP address assigned to a device."""

    address: str = ""
    management: bool = False
    public: bool = False
    address_family: int = 4

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> IPAssignment:
        return cls(
            address=data.get("address", ""),
            management=bool(data.get("management", False)),
            public=bool(data.get("public", False)),
            address_family=int(data.get("address_family", 4)),
        )


@dataclass(frozen=True)
class RemoteDevice:
    """Read-only snapshot of a device as reported by the Metal API."""

    id: str = ""
    state: str = ""
    provision_percentage: float = 0.0
    always_pxe: bool = False
    hostname: str = ""
    billing_cycle: str = ""
    user_data: str = ""
    ipxe_script_url: str = ""
    locked: bool = False
    network_type: str = ""
    ports: tuple[Port, ...] = ()
    ip_assignments: tuple[IPAssignment, ...] = ()

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> RemoteDevice:
        """Build a snapshot from a Metal API device document."""
        return cls(
            id=data.get("id", ""),
            state=data.get("state", ""),
            provision_percentage=float(data.get("provisioning_percentage") or 0.0),
            always_pxe=bool(data.get("always_pxe", False)),
            hostname=data.get("hostname") or "",
            billing_cycle=data.get("billing_cycle") or "",
            user_data=data.get("userdata") or "",
            ipxe_script_url=data.get("ipxe_script_url") or "",
            locked=bool(data.get("locked", False)),
            network_type=data.get("network_type") or "",
            ports=tuple(Port.from_api(p) for p in data.get("network_ports") or []),
            ip_assignments=tuple(IPAssignment.from_api(ip) for ip in data.get("ip_addresses") or []),
        )


@dataclass(frozen=True)
class DeviceCreateRequest:
    """Parameters for provisioning a new device."""

    project_id: str
    hostname: str | None = None
    plan: str | None = None
    metro: str | None = None
    facility: list[str] | None = None
    operating_system: str | None = None
    billing_cycle: str | None = None
    user_data: str | None = None
    ipxe_script_url: str | None = None
    always_pxe: bool | None = None
    locked: bool | None = None
    tags: list[str] | None = None

    def to_api(self) -> dict[str, Any]:
        body = {
            "hostname": self.hostname,
            "plan": self.plan,
            "metro": self.metro,
            "facility": self.facility,
            "operating_system": self.operating_system,
            "billing_cycle": self.billing_cycle,
            "userdata": self.user_data,
            "ipxe_script_url": self.ipxe_script_url,
            "always_pxe": self.always_pxe,
            "locked": self.locked,
            "tags": self.tags,
        }
        return {key: value for key, value in body.items() if value is not None}


@dataclass(frozen=True)
class DeviceUpdateRequest:
    """Changed attributes of an existing device; None means unchanged."""

    hostname: str | None = None
    billing_cycle: str | None = None
    user_data: str | None = None
    ipxe_script_url: str | None = None
    always_pxe: bool | None = None
    locked: bool | None = None

    def to_api(self) -> dict[str, Any]:
        body = {
            "hostname": self.hostname,
            "billing_cycle": self.billing_cycle,
            "userdata": self.user_data,
            "ipxe_script_url": self.ipxe_script_url,
            "always_pxe": self.always_pxe,
            "locked": self.locked,
        }
        return {key: value for key, value in body.items() if value is not None}

    def is_empty(self) -> bool:
        return not self.to_api()


@dataclass(frozen=True)
class Credentials:
    """Metal API credentials read from a ProviderConfig secret."""

    api_key: str
    project_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_bytes(cls, data: bytes) -> Credentials:
        """Parse the JSON credentials document.

        Raises:
            ValueError: If the document is not JSON or lacks an API key
        """
        try:
            doc = json.loads(data)
        except (TypeError, ValueError) as e:
            raise ValueError("credentials are not valid JSON") from e
        if not isinstance(doc, dict) or not doc.get(CREDENTIAL_API_KEY):
            raise ValueError(f"credentials must contain '{CREDENTIAL_API_KEY}'")
        known = {CREDENTIAL_API_KEY, CREDENTIAL_PROJECT_ID}
        return cls(
            api_key=doc[CREDENTIAL_API_KEY],
            project_id=doc.get(CREDENTIAL_PROJECT_ID, ""),
            extra={k: v for k, v in doc.items() if k not in known},
        )

    def __repr__(self) -> str:
        return f"Credentials(api_key='***', project_id={self.project_id!r})"

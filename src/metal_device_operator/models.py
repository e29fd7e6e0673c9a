"""Declared Device resource model."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Mapping

from .constants import (
    ANNOTATION_EXTERNAL_NAME,
    API_GROUP,
    COND_READY,
    DEFAULT_PROVIDER_CONFIG,
    KIND_DEVICE,
)
from .services.metal.models import NetworkType
from .utils.conditions import Condition, find_condition
from .utils.errors import ErrorKind, ReconcileError

# spec.forProvider keys, by DeviceParameters field
_SPEC_KEYS = {
    "hostname": "hostname",
    "plan": "plan",
    "metro": "metro",
    "facility": "facility",
    "operating_system": "operatingSystem",
    "billing_cycle": "billingCycle",
    "user_data": "userdata",
    "ipxe_script_url": "ipxeScriptUrl",
    "always_pxe": "alwaysPXE",
    "network_type": "networkType",
    "locked": "locked",
    "tags": "tags",
}


@dataclass(frozen=True)
class DeviceParameters:
    """Desired device settings (spec.forProvider). None means unset."""

    hostname: str | None = None
    plan: str | None = None
    metro: str | None = None
    facility: tuple[str, ...] | None = None
    operating_system: str | None = None
    billing_cycle: str | None = None
    user_data: str | None = None
    ipxe_script_url: str | None = None
    always_pxe: bool | None = None
    network_type: NetworkType | None = None
    locked: bool | None = None
    tags: tuple[str, ...] | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceParameters:
        values: dict[str, Any] = {}
        for name, key in _SPEC_KEYS.items():
            value = data.get(key)
            if value is None:
                continue
            if name in ("facility", "tags"):
                value = tuple([value] if isinstance(value, str) else value)
            elif name == "network_type":
                value = NetworkType(value)
            values[name] = value
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for name, key in _SPEC_KEYS.items():
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, tuple):
                value = list(value)
            elif isinstance(value, NetworkType):
                value = value.value
            data[key] = value
        return data


@dataclass(frozen=True)
class DeviceObservation:
    """Provider-side state of the device (status.atProvider)."""

    id: str = ""
    state: str = ""
    provision_percentage: Decimal = Decimal(0)
    network_type: NetworkType | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceObservation:
        return cls(
            id=data.get("id") or "",
            state=data.get("state") or "",
            provision_percentage=Decimal(str(data.get("provisionPercentage") or 0)),
            network_type=NetworkType.parse(data.get("networkType")),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "state": self.state,
            "provisionPercentage": str(self.provision_percentage),
        }
        if self.network_type is not None:
            data["networkType"] = self.network_type.value
        return data


@dataclass(frozen=True)
class DeviceStatus:
    """Reconciler-owned status of a Device."""

    at_provider: DeviceObservation = field(default_factory=DeviceObservation)
    condition: Condition | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceStatus:
        return cls(
            at_provider=DeviceObservation.from_dict(data.get("atProvider") or {}),
            condition=find_condition(list(data.get("conditions") or []), COND_READY),
        )


@dataclass(frozen=True)
class DeclaredDevice:
    """Immutable snapshot of a Device custom resource.

    Reconciler operations never modify a snapshot; they return a new one
    that the caller persists.
    """

    name: str
    namespace: str | None = None
    uid: str = ""
    generation: int = 0
    annotations: Mapping[str, str] = field(default_factory=dict)
    provider_config_ref: str = DEFAULT_PROVIDER_CONFIG
    spec: DeviceParameters = field(default_factory=DeviceParameters)
    status: DeviceStatus = field(default_factory=DeviceStatus)

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> DeclaredDevice:
        """Parse a Device custom resource body."""
        meta = body.get("metadata") or {}
        spec = body.get("spec") or {}
        provider_ref = spec.get("providerConfigRef") or {}
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace"),
            uid=meta.get("uid", ""),
            generation=meta.get("generation", 0),
            annotations=dict(meta.get("annotations") or {}),
            provider_config_ref=provider_ref.get("name") or DEFAULT_PROVIDER_CONFIG,
            spec=DeviceParameters.from_dict(spec.get("forProvider") or {}),
            status=DeviceStatus.from_dict(body.get("status") or {}),
        )

    @property
    def meta(self) -> dict[str, Any]:
        """Metadata mapping in the shape handlers log and emit events with."""
        return {
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.uid,
            "generation": self.generation,
        }

    @property
    def external_id(self) -> str:
        """ID of the remote device, or an empty string if not yet created."""
        return self.status.at_provider.id or self.annotations.get(ANNOTATION_EXTERNAL_NAME, "")

    @property
    def condition(self) -> Condition | None:
        return self.status.condition

    def with_condition(self, condition: Condition) -> DeclaredDevice:
        return replace(self, status=replace(self.status, condition=condition))

    def with_observation(self, observation: DeviceObservation) -> DeclaredDevice:
        """Replace status.atProvider, keeping an already known ID."""
        if not observation.id:
            observation = replace(observation, id=self.status.at_provider.id)
        return replace(self, status=replace(self.status, at_provider=observation))

    def with_external_id(self, device_id: str) -> DeclaredDevice:
        if not device_id:
            return self
        at_provider = replace(self.status.at_provider, id=device_id)
        return replace(self, status=replace(self.status, at_provider=at_provider))

    def with_spec(self, spec: DeviceParameters) -> DeclaredDevice:
        return replace(self, spec=spec)


def as_device(resource: Any) -> DeclaredDevice:
    """Narrow a managed resource to a DeclaredDevice.

    Accepts an existing snapshot or a Device custom resource body.

    Raises:
        ReconcileError: NOT_SUPPORTED_KIND for anything else
    """
    if isinstance(resource, DeclaredDevice):
        return resource
    if isinstance(resource, Mapping):
        api_version = resource.get("apiVersion") or ""
        if resource.get("kind") == KIND_DEVICE and api_version.split("/")[0] == API_GROUP:
            return DeclaredDevice.from_body(resource)
    raise ReconcileError(ErrorKind.NOT_SUPPORTED_KIND)

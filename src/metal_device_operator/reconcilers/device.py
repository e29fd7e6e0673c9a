"""External reconciler for Equinix Metal devices."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .. import metrics
from ..builders.device import create_device_request, drifted_fields, late_initialize, update_device_request
from ..constants import KIND_DEVICE
from ..models import DeclaredDevice, DeviceObservation, as_device
from ..services.metal.base import DeviceClient, DeviceNotFoundError
from ..services.metal.models import NetworkType
from ..services.metal.network import device_network_type, is_forming
from ..tracing import add_span_attribute, trace_span
from ..utils import conditions
from ..utils.context import ReconcileContext
from ..utils.errors import ErrorKind, wrap_error
from .state import map_device_state

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalObservation:
    """Result of observing the remote device."""

    resource_exists: bool
    device: DeclaredDevice
    resource_up_to_date: bool = False
    resource_late_initialized: bool = False
    late_initialized_fields: tuple[str, ...] = ()
    drifted_fields: tuple[str, ...] = ()
    connection_details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExternalCreation:
    """Result of creating the remote device."""

    device: DeclaredDevice
    connection_details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExternalUpdate:
    """Result of updating the remote device."""

    device: DeclaredDevice
    network_type_converted: bool = False
    updated_fields: tuple[str, ...] = ()
    connection_details: dict[str, Any] = field(default_factory=dict)


class ExternalDevice:
    """Reconciles declared Devices against the Metal API through a bound client.

    Operations never modify the resource they are given; they return a new
    DeclaredDevice snapshot for the caller to persist.
    """

    def __init__(self, client: DeviceClient):
        self.client = client

    def close(self) -> None:
        """Close the bound client."""
        self.client.close()

    def observe(self, ctx: ReconcileContext, resource: Any) -> ExternalObservation:
        """Observe the remote device and refresh status from it.

        Raises:
            ReconcileError: NOT_SUPPORTED_KIND or GET_DEVICE
        """
        device = as_device(resource)
        with trace_span("observe_device", kind=KIND_DEVICE, attributes={"device.name": device.name}):
            device_id = device.external_id
            if not device_id:
                return ExternalObservation(resource_exists=False, device=device)

            ctx.check()
            try:
                remote = self.client.get(device_id)
            except DeviceNotFoundError:
                logger.info(f"Device {device_id} of {device.name} not found")
                return ExternalObservation(resource_exists=False, device=device)
            except Exception as e:
                raise wrap_error(ErrorKind.GET_DEVICE, e)

            state, condition = map_device_state(remote.state)
            forming = is_forming(remote)
            network_type = device_network_type(remote)
            add_span_attribute("device.state", state)

            observation = DeviceObservation(
                id=device_id,
                state=state,
                provision_percentage=Decimal(str(round(remote.provision_percentage, 6))),
                network_type=network_type,
            )

            spec, filled = late_initialize(device.spec, remote, None if forming else network_type)
            drifted = drifted_fields(spec, remote)
            if not forming and spec.network_type is not None and spec.network_type != network_type:
                drifted.append("network_type")
            for name in drifted:
                metrics.drift_detected_total.labels(kind=KIND_DEVICE, field=name).inc()

            observed = device.with_spec(spec).with_observation(observation).with_condition(condition)
            return ExternalObservation(
                resource_exists=True,
                device=observed,
                resource_up_to_date=not drifted,
                resource_late_initialized=bool(filled),
                late_initialized_fields=tuple(filled),
                drifted_fields=tuple(drifted),
            )

    def create(self, ctx: ReconcileContext, resource: Any) -> ExternalCreation:
        """Provision the remote device.

        The Creating condition is set before the remote call, so the snapshot
        carried by a failure still records the attempt.

        Raises:
            ReconcileError: NOT_SUPPORTED_KIND or CREATE_DEVICE
        """
        device = as_device(resource).with_condition(conditions.creating())
        with trace_span("create_device", kind=KIND_DEVICE, attributes={"device.name": device.name}):
            try:
                ctx.check()
                request = create_device_request(device, self.client.project_id())
                remote = self.client.create(request)
            except Exception as e:
                metrics.device_operations_total.labels(operation="create", result="error").inc()
                raise wrap_error(ErrorKind.CREATE_DEVICE, e, device=device)

            metrics.device_operations_total.labels(operation="create", result="success").inc()
            add_span_attribute("device.id", remote.id)
            return ExternalCreation(device=device.with_external_id(remote.id))

    def update(self, ctx: ReconcileContext, resource: Any) -> ExternalUpdate:
        """Bring the remote device in line with the declared spec.

        The network type conversion and the attribute update are attempted
        independently; the first failure is raised once both were tried.
        Partial success is not rolled back.

        Raises:
            ReconcileError: NOT_SUPPORTED_KIND, GET_DEVICE or UPDATE_DEVICE
        """
        device = as_device(resource)
        device_id = device.external_id
        with trace_span("update_device", kind=KIND_DEVICE, attributes={"device.name": device.name, "device.id": device_id}):
            ctx.check()
            try:
                remote = self.client.get(device_id)
            except Exception as e:
                raise wrap_error(ErrorKind.GET_DEVICE, e)

            errors: list[BaseException] = []
            converted = False
            desired_type = device.spec.network_type
            # Ports of a forming device are not settled, so conversion waits for it
            convertible = desired_type is not None and not is_forming(remote)
            if convertible and desired_type != device_network_type(remote):
                try:
                    ctx.check()
                    self.client.convert_network_type(device_id, NetworkType(desired_type))
                    converted = True
                    metrics.device_operations_total.labels(operation="convert_network_type", result="success").inc()
                except Exception as e:
                    metrics.device_operations_total.labels(operation="convert_network_type", result="error").inc()
                    errors.append(e)

            request = update_device_request(device.spec, remote)
            updated: tuple[str, ...] = ()
            if not request.is_empty():
                try:
                    ctx.check()
                    self.client.update(device_id, request)
                    updated = tuple(drifted_fields(device.spec, remote))
                    metrics.device_operations_total.labels(operation="update", result="success").inc()
                except Exception as e:
                    metrics.device_operations_total.labels(operation="update", result="error").inc()
                    errors.append(e)

            if errors:
                raise wrap_error(ErrorKind.UPDATE_DEVICE, errors[0])

            return ExternalUpdate(device=device, network_type_converted=converted, updated_fields=updated)

    def delete(self, ctx: ReconcileContext, resource: Any) -> DeclaredDevice:
        """Delete the remote device.

        A device that no longer exists counts as deleted. The Deleting
        condition is set before the remote call.

        Returns:
            The snapshot to persist

        Raises:
            ReconcileError: NOT_SUPPORTED_KIND or DELETE_DEVICE
        """
        device = as_device(resource).with_condition(conditions.deleting())
        device_id = device.external_id
        if not device_id:
            return device

        with trace_span("delete_device", kind=KIND_DEVICE, attributes={"device.name": device.name, "device.id": device_id}):
            try:
                ctx.check()
                self.client.delete(device_id, force=False)
            except DeviceNotFoundError:
                logger.info(f"Device {device_id} already deleted")
            except Exception as e:
                metrics.device_operations_total.labels(operation="delete", result="error").inc()
                raise wrap_error(ErrorKind.DELETE_DEVICE, e, device=device)

            metrics.device_operations_total.labels(operation="delete", result="success").inc()
            return device

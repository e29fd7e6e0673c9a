"""Tests for the external device reconciler."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import Mock

import pytest

from metal_device_operator.constants import ANNOTATION_EXTERNAL_NAME
from metal_device_operator.models import DeclaredDevice, DeviceObservation, DeviceParameters, DeviceStatus
from metal_device_operator.reconcilers.device import ExternalDevice
from metal_device_operator.services.metal.base import DeviceNotFoundError, MetalAPIError
from metal_device_operator.services.metal.models import (
    PORT_TYPE_BOND,
    DeviceUpdateRequest,
    IPAssignment,
    NetworkType,
    Port,
    RemoteDevice,
)
from metal_device_operator.utils import conditions
from metal_device_operator.utils.context import ReconcileContext
from metal_device_operator.utils.errors import ErrorKind, ReconcileCancelledError, ReconcileError

DEVICE_ID = "2f4a1b4e-6c1d-4b8e-9d1e-5a3c0f1b2e7d"

BOND0 = Port(id="bond0-id", name="bond0", type=PORT_TYPE_BOND, bonded=True)
ETH0 = Port(id="eth0-id", name="eth0", bonded=True, bond_name="bond0")
ETH1_UNBONDED = Port(id="eth1-id", name="eth1", bonded=False)
MANAGEMENT_IP = IPAssignment(address="10.0.0.2", management=True)

HYBRID_PORTS = (BOND0, ETH0, ETH1_UNBONDED)


def declared(device_id: str = DEVICE_ID, **params) -> DeclaredDevice:
    device = DeclaredDevice(name="web-1", namespace="apps", uid="uid-1", spec=DeviceParameters(**params))
    return device.with_external_id(device_id)


def remote(**fields) -> RemoteDevice:
    fields.setdefault("id", DEVICE_ID)
    return RemoteDevice(**fields)


@pytest.fixture
def ctx():
    return ReconcileContext(timeout=60)


@pytest.fixture
def client():
    mock_client = Mock()
    mock_client.project_id.return_value = "proj-1"
    return mock_client


class TestObserve:
    """Test cases for ExternalDevice.observe."""

    def test_active_device_up_to_date(self, ctx, client):
        client.get.return_value = remote(state="active", provision_percentage=100.0, always_pxe=True)
        device = declared(always_pxe=True)

        observation = ExternalDevice(client).observe(ctx, device)

        assert observation.resource_exists is True
        assert observation.resource_up_to_date is True
        assert observation.connection_details == {}
        observed = observation.device
        assert observed.condition == conditions.available()
        assert observed.status.at_provider.state == "active"
        assert observed.status.at_provider.provision_percentage == Decimal("100")
        assert observed.status.at_provider.network_type == NetworkType.L2_INDIVIDUAL
        assert observed.external_id == DEVICE_ID
        client.get.assert_called_once_with(DEVICE_ID)

    def test_active_device_pxe_drift(self, ctx, client):
        client.get.return_value = remote(state="active", provision_percentage=100.0, always_pxe=False)

        observation = ExternalDevice(client).observe(ctx, declared(always_pxe=True))

        assert observation.resource_exists is True
        assert observation.resource_up_to_date is False
        assert observation.drifted_fields == ("always_pxe",)
        assert observation.device.condition == conditions.available()

    def test_provisioning_device_is_creating(self, ctx, client):
        client.get.return_value = remote(state="provisioning", provision_percentage=50.0, always_pxe=True)

        observation = ExternalDevice(client).observe(ctx, declared(always_pxe=True))

        assert observation.device.condition == conditions.creating()
        assert observation.device.status.at_provider.provision_percentage == Decimal("50")
        assert observation.resource_up_to_date is True

    def test_capitalized_provisioning_state_uses_resolver(self, ctx, client):
        client.get.return_value = remote(state="Provisioning", network_type="layer3")

        observation = ExternalDevice(client).observe(ctx, declared(network_type=NetworkType.L3))

        assert observation.device.condition == conditions.creating()
        assert observation.device.status.at_provider.network_type == NetworkType.L2_INDIVIDUAL
        assert "network_type" not in observation.drifted_fields

    def test_queued_device_is_unavailable(self, ctx, client):
        client.get.return_value = remote(state="queued", provision_percentage=50.0, always_pxe=True)

        observation = ExternalDevice(client).observe(ctx, declared(always_pxe=True))

        assert observation.device.condition == conditions.unavailable()
        assert observation.device.status.at_provider.state == "queued"

    def test_unknown_state_passes_through(self, ctx, client):
        client.get.return_value = remote(state="failed")

        observation = ExternalDevice(client).observe(ctx, declared())

        assert observation.device.status.at_provider.state == "failed"
        assert observation.device.condition == conditions.unavailable()

    def test_not_found_is_not_an_error(self, ctx, client):
        client.get.side_effect = DeviceNotFoundError(DEVICE_ID)
        device = declared(always_pxe=True)

        observation = ExternalDevice(client).observe(ctx, device)

        assert observation.resource_exists is False
        assert observation.device is device

    def test_no_external_id_skips_remote_call(self, ctx, client):
        device = DeclaredDevice(name="web-1")

        observation = ExternalDevice(client).observe(ctx, device)

        assert observation.resource_exists is False
        client.get.assert_not_called()

    def test_external_id_from_annotation(self, ctx, client):
        client.get.return_value = remote(state="active")
        device = DeclaredDevice(name="web-1", annotations={ANNOTATION_EXTERNAL_NAME: DEVICE_ID})

        observation = ExternalDevice(client).observe(ctx, device)

        assert observation.resource_exists is True
        assert observation.device.status.at_provider.id == DEVICE_ID

    def test_get_failure_wrapped(self, ctx, client):
        boom = MetalAPIError("boom", status_code=500)
        client.get.side_effect = boom

        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).observe(ctx, declared())

        assert exc_info.value.kind == ErrorKind.GET_DEVICE
        assert exc_info.value.cause is boom

    def test_wrong_kind(self, ctx, client):
        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).observe(ctx, {"apiVersion": "v1", "kind": "Pod"})

        assert exc_info.value.kind == ErrorKind.NOT_SUPPORTED_KIND
        client.get.assert_not_called()

    def test_does_not_mutate_input(self, ctx, client):
        client.get.return_value = remote(state="active", provision_percentage=100.0, hostname="web-1")
        device = declared()

        ExternalDevice(client).observe(ctx, device)

        assert device.status == DeviceStatus(at_provider=DeviceObservation(id=DEVICE_ID))
        assert device.spec == DeviceParameters()

    def test_idempotent(self, ctx, client):
        client.get.return_value = remote(
            state="active", provision_percentage=100.0, always_pxe=True, network_type="layer3"
        )
        device = declared(always_pxe=True)
        external = ExternalDevice(client)

        first = external.observe(ctx, device)
        second = external.observe(ctx, device)

        assert first.device == second.device
        assert first.resource_up_to_date == second.resource_up_to_date

    def test_late_initialization(self, ctx, client):
        client.get.return_value = remote(
            state="active",
            hostname="web-1",
            billing_cycle="hourly",
            user_data="#cloud-config",
            ipxe_script_url="https://boot.example.com",
            locked=True,
            always_pxe=False,
            network_type="hybrid",
        )

        observation = ExternalDevice(client).observe(ctx, declared())

        spec = observation.device.spec
        assert observation.resource_late_initialized is True
        assert observation.resource_up_to_date is True
        assert spec.hostname == "web-1"
        assert spec.billing_cycle == "hourly"
        assert spec.user_data == "#cloud-config"
        assert spec.ipxe_script_url == "https://boot.example.com"
        assert spec.locked is True
        assert spec.always_pxe is False
        assert spec.network_type == NetworkType.HYBRID
        assert "network_type" in observation.late_initialized_fields

    def test_network_type_not_late_initialized_while_forming(self, ctx, client):
        client.get.return_value = remote(state="provisioning")

        observation = ExternalDevice(client).observe(ctx, declared())

        assert observation.device.spec.network_type is None
        assert observation.device.status.at_provider.network_type == NetworkType.L2_INDIVIDUAL

    def test_network_type_drift(self, ctx, client):
        client.get.return_value = remote(state="active", ports=HYBRID_PORTS, ip_assignments=(MANAGEMENT_IP,))

        observation = ExternalDevice(client).observe(ctx, declared(network_type=NetworkType.L2_INDIVIDUAL))

        assert observation.device.status.at_provider.network_type == NetworkType.HYBRID
        assert observation.resource_up_to_date is False
        assert "network_type" in observation.drifted_fields

    def test_network_type_not_compared_while_forming(self, ctx, client):
        client.get.return_value = remote(state="queued")

        observation = ExternalDevice(client).observe(ctx, declared(network_type=NetworkType.L3))

        assert observation.resource_up_to_date is True

    def test_cancelled_context(self, client):
        ctx = ReconcileContext(timeout=60)
        ctx.cancel()

        with pytest.raises(ReconcileCancelledError):
            ExternalDevice(client).observe(ctx, declared())
        client.get.assert_not_called()


class TestCreate:
    """Test cases for ExternalDevice.create."""

    def test_create_stores_id(self, ctx, client):
        client.create.return_value = remote(state="queued")
        device = declared(device_id="", hostname="web-1", plan="c3.small.x86", metro="sv", always_pxe=True)

        creation = ExternalDevice(client).create(ctx, device)

        assert creation.device.external_id == DEVICE_ID
        assert creation.device.condition == conditions.creating()
        assert device.external_id == ""
        request = client.create.call_args[0][0]
        assert request.project_id == "proj-1"
        assert request.hostname == "web-1"
        assert request.always_pxe is True

    def test_create_failure(self, ctx, client):
        boom = MetalAPIError("quota exceeded", status_code=422)
        client.create.side_effect = boom
        device = declared(device_id="", hostname="web-1")

        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).create(ctx, device)

        error = exc_info.value
        assert error.kind == ErrorKind.CREATE_DEVICE
        assert error.cause is boom
        assert error.device is not None
        assert error.device.external_id == ""
        assert error.device.condition == conditions.creating()

    def test_wrong_kind(self, ctx, client):
        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).create(ctx, {"kind": "Volume"})

        assert exc_info.value.kind == ErrorKind.NOT_SUPPORTED_KIND
        client.create.assert_not_called()


class TestUpdate:
    """Test cases for ExternalDevice.update."""

    def test_no_drift_no_calls(self, ctx, client):
        client.get.return_value = remote(state="active", always_pxe=True, network_type="layer3")

        result = ExternalDevice(client).update(ctx, declared(always_pxe=True, network_type=NetworkType.L3))

        assert result.network_type_converted is False
        assert result.updated_fields == ()
        client.update.assert_not_called()
        client.convert_network_type.assert_not_called()

    def test_attribute_update_carries_changed_fields(self, ctx, client):
        client.get.return_value = remote(state="active", always_pxe=False, hostname="web-1")

        result = ExternalDevice(client).update(ctx, declared(always_pxe=True, hostname="web-1"))

        client.update.assert_called_once_with(DEVICE_ID, DeviceUpdateRequest(always_pxe=True))
        client.convert_network_type.assert_not_called()
        assert result.updated_fields == ("always_pxe",)

    def test_network_type_conversion(self, ctx, client):
        client.get.return_value = remote(state="active", ports=HYBRID_PORTS, ip_assignments=(MANAGEMENT_IP,))

        result = ExternalDevice(client).update(ctx, declared(network_type=NetworkType.L2_INDIVIDUAL))

        client.convert_network_type.assert_called_once_with(DEVICE_ID, NetworkType.L2_INDIVIDUAL)
        client.update.assert_not_called()
        assert result.network_type_converted is True

    def test_forming_device_waits_for_network_conversion(self, ctx, client):
        client.get.return_value = remote(state="Provisioning", hostname="old", network_type="layer3")
        device = declared(hostname="web-1", network_type=NetworkType.L3)

        observation = ExternalDevice(client).observe(ctx, device)
        result = ExternalDevice(client).update(ctx, observation.device)

        assert observation.drifted_fields == ("hostname",)
        client.convert_network_type.assert_not_called()
        client.update.assert_called_once_with(DEVICE_ID, DeviceUpdateRequest(hostname="web-1"))
        assert result.network_type_converted is False

    def test_get_failure(self, ctx, client):
        client.get.side_effect = MetalAPIError("boom")

        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).update(ctx, declared(always_pxe=True))

        assert exc_info.value.kind == ErrorKind.GET_DEVICE
        client.update.assert_not_called()

    def test_update_failure(self, ctx, client):
        client.get.return_value = remote(state="active", always_pxe=False)
        client.update.side_effect = MetalAPIError("boom")

        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).update(ctx, declared(always_pxe=True))

        assert exc_info.value.kind == ErrorKind.UPDATE_DEVICE

    def test_conversion_failure_still_attempts_attribute_update(self, ctx, client):
        client.get.return_value = remote(
            state="active", always_pxe=False, ports=HYBRID_PORTS, ip_assignments=(MANAGEMENT_IP,)
        )
        conversion_error = MetalAPIError("port busy")
        client.convert_network_type.side_effect = conversion_error

        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).update(ctx, declared(always_pxe=True, network_type=NetworkType.L3))

        assert exc_info.value.kind == ErrorKind.UPDATE_DEVICE
        assert exc_info.value.cause is conversion_error
        client.update.assert_called_once_with(DEVICE_ID, DeviceUpdateRequest(always_pxe=True))

    def test_wrong_kind(self, ctx, client):
        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).update(ctx, object())

        assert exc_info.value.kind == ErrorKind.NOT_SUPPORTED_KIND


class TestDelete:
    """Test cases for ExternalDevice.delete."""

    def test_delete(self, ctx, client):
        deleted = ExternalDevice(client).delete(ctx, declared())

        client.delete.assert_called_once_with(DEVICE_ID, force=False)
        assert deleted.condition == conditions.deleting()

    def test_not_found_is_success(self, ctx, client):
        client.delete.side_effect = DeviceNotFoundError(DEVICE_ID)

        deleted = ExternalDevice(client).delete(ctx, declared())

        assert deleted.condition == conditions.deleting()

    def test_failure_keeps_deleting_condition(self, ctx, client):
        boom = MetalAPIError("locked", status_code=422)
        client.delete.side_effect = boom

        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).delete(ctx, declared())

        error = exc_info.value
        assert error.kind == ErrorKind.DELETE_DEVICE
        assert error.cause is boom
        assert error.device.condition == conditions.deleting()

    def test_no_external_id(self, ctx, client):
        deleted = ExternalDevice(client).delete(ctx, DeclaredDevice(name="web-1"))

        client.delete.assert_not_called()
        assert deleted.condition == conditions.deleting()

    def test_idempotent(self, ctx, client):
        client.delete.side_effect = [None, DeviceNotFoundError(DEVICE_ID)]
        external = ExternalDevice(client)

        first = external.delete(ctx, declared())
        second = external.delete(ctx, declared())

        assert first == second

    def test_wrong_kind(self, ctx, client):
        with pytest.raises(ReconcileError) as exc_info:
            ExternalDevice(client).delete(ctx, {"kind": "Device"})

        assert exc_info.value.kind == ErrorKind.NOT_SUPPORTED_KIND
        client.delete.assert_not_called()


class TestClose:
    """Test cases for ExternalDevice.close."""

    def test_closes_client(self, client):
        ExternalDevice(client).close()

        client.close.assert_called_once()

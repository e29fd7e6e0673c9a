"""Tests for the Device handler."""

from __future__ import annotations

from unittest.mock import Mock, patch

import kopf
import pytest

from metal_device_operator.constants import ANNOTATION_EXTERNAL_NAME, FINALIZER
from metal_device_operator.handlers.device import DeviceHandler
from metal_device_operator.models import DeclaredDevice, DeviceObservation, DeviceParameters
from metal_device_operator.reconcilers.device import ExternalCreation, ExternalObservation, ExternalUpdate
from metal_device_operator.services.metal.models import NetworkType
from metal_device_operator.utils import conditions
from metal_device_operator.utils.context import ReconcileContext
from metal_device_operator.utils.errors import ErrorKind, ReconcileError, wrap_error

DEVICE_ID = "dev-1"

BODY = {
    "apiVersion": "server.metal.equinix.com/v1alpha2",
    "kind": "Device",
    "metadata": {"name": "web-1", "namespace": "apps", "uid": "uid-1", "generation": 2, "finalizers": [FINALIZER]},
    "spec": {"forProvider": {"hostname": "web-1", "plan": "c3.small.x86", "metro": "sv"}},
}
META = BODY["metadata"]


def snapshot(condition=None, device_id=DEVICE_ID, **params):
    device = DeclaredDevice(name="web-1", namespace="apps", uid="uid-1", spec=DeviceParameters(**params))
    device = device.with_external_id(device_id)
    if condition is not None:
        device = device.with_condition(condition)
    return device


@pytest.fixture
def external():
    return Mock()


@pytest.fixture
def connecter(external):
    mock_connecter = Mock()
    mock_connecter.connect.return_value = external
    return mock_connecter


@pytest.fixture
def handler(connecter):
    return DeviceHandler(connecter_factory=lambda: connecter, context_factory=lambda: ReconcileContext(timeout=60))


@pytest.fixture(autouse=True)
def events():
    with patch("metal_device_operator.handlers.device.emit_device_created") as created, patch(
        "metal_device_operator.handlers.device.emit_device_updated"
    ) as updated, patch("metal_device_operator.handlers.device.emit_device_deleted") as deleted, patch(
        "metal_device_operator.handlers.device.emit_network_type_converted"
    ) as converted, patch(
        "metal_device_operator.handlers.device.emit_late_initialized"
    ) as late_initialized:
        yield Mock(
            created=created,
            updated=updated,
            deleted=deleted,
            converted=converted,
            late_initialized=late_initialized,
        )


class TestReconcile:
    """Test cases for DeviceHandler.reconcile."""

    def test_creates_missing_device(self, handler, external, events):
        creating = snapshot(conditions.creating(), device_id="")
        external.observe.return_value = ExternalObservation(resource_exists=False, device=creating)
        external.create.return_value = ExternalCreation(device=creating.with_external_id(DEVICE_ID))
        patch_ = kopf.Patch()

        handler.reconcile(BODY, META, {}, patch_)

        external.create.assert_called_once()
        external.update.assert_not_called()
        assert patch_.metadata["annotations"][ANNOTATION_EXTERNAL_NAME] == DEVICE_ID
        assert patch_.status["atProvider"]["id"] == DEVICE_ID
        assert patch_.status["conditions"][0]["reason"] == "Creating"
        assert patch_.status["observedGeneration"] == 2
        events.created.assert_called_once_with(BODY, DEVICE_ID)

    def test_up_to_date_device_only_refreshes_status(self, handler, external, events):
        observed = snapshot(conditions.available()).with_observation(
            DeviceObservation(id=DEVICE_ID, state="active", network_type=NetworkType.L3)
        )
        external.observe.return_value = ExternalObservation(
            resource_exists=True, device=observed, resource_up_to_date=True
        )
        patch_ = kopf.Patch()

        handler.reconcile(BODY, META, {}, patch_)

        external.create.assert_not_called()
        external.update.assert_not_called()
        assert patch_.status["atProvider"] == {
            "id": DEVICE_ID,
            "state": "active",
            "provisionPercentage": "0",
            "networkType": "layer3",
        }
        assert patch_.status["conditions"][0]["type"] == "Ready"
        assert patch_.status["conditions"][0]["status"] == "True"
        assert "spec" not in patch_

    def test_late_initialized_spec_is_written_back(self, handler, external, events):
        observed = snapshot(conditions.available(), hostname="web-1", billing_cycle="hourly", locked=False)
        external.observe.return_value = ExternalObservation(
            resource_exists=True,
            device=observed,
            resource_up_to_date=True,
            resource_late_initialized=True,
            late_initialized_fields=("billing_cycle", "locked"),
        )
        patch_ = kopf.Patch()

        handler.reconcile(BODY, META, {}, patch_)

        assert patch_.spec["forProvider"] == {"hostname": "web-1", "billingCycle": "hourly", "locked": False}
        events.late_initialized.assert_called_once_with(BODY, ["billing_cycle", "locked"])

    def test_drifted_device_is_updated(self, handler, external, events):
        observed = snapshot(conditions.available(), network_type=NetworkType.HYBRID, hostname="web-2")
        external.observe.return_value = ExternalObservation(
            resource_exists=True, device=observed, drifted_fields=("hostname", "network_type")
        )
        external.update.return_value = ExternalUpdate(
            device=observed, network_type_converted=True, updated_fields=("hostname",)
        )

        handler.reconcile(BODY, META, {}, kopf.Patch())

        external.update.assert_called_once()
        assert external.update.call_args[0][1] is observed
        events.converted.assert_called_once_with(BODY, DEVICE_ID, "hybrid")
        events.updated.assert_called_once_with(BODY, DEVICE_ID)

    def test_update_without_changes_emits_nothing(self, handler, external, events):
        observed = snapshot(conditions.available())
        external.observe.return_value = ExternalObservation(resource_exists=True, device=observed)
        external.update.return_value = ExternalUpdate(device=observed)

        handler.reconcile(BODY, META, {}, kopf.Patch())

        events.converted.assert_not_called()
        events.updated.assert_not_called()

    def test_keeps_other_conditions(self, handler, external, events):
        observed = snapshot(conditions.unavailable())
        external.observe.return_value = ExternalObservation(
            resource_exists=True, device=observed, resource_up_to_date=True
        )
        status = {"conditions": [{"type": "Synced", "status": "True", "reason": "ReconcileSuccess"}]}
        patch_ = kopf.Patch()

        handler.reconcile(BODY, META, status, patch_)

        assert [cond["type"] for cond in patch_.status["conditions"]] == ["Synced", "Ready"]
        assert status["conditions"] == [{"type": "Synced", "status": "True", "reason": "ReconcileSuccess"}]

    def test_failed_create_persists_snapshot(self, handler, external, events):
        creating = snapshot(conditions.creating(), device_id="")
        external.observe.return_value = ExternalObservation(resource_exists=False, device=creating)
        external.create.side_effect = wrap_error(ErrorKind.CREATE_DEVICE, ValueError("no capacity"), device=creating)
        patch_ = kopf.Patch()

        with pytest.raises(ReconcileError) as exc_info:
            handler.reconcile(BODY, META, {}, patch_)

        assert exc_info.value.kind == ErrorKind.CREATE_DEVICE
        assert patch_.status["conditions"][0]["reason"] == "Creating"
        assert "annotations" not in patch_.metadata
        events.created.assert_not_called()

    def test_connect_failure_propagates(self, handler, connecter, external):
        connecter.connect.side_effect = wrap_error(ErrorKind.NEW_CLIENT, ValueError("bad credentials"))
        patch_ = kopf.Patch()

        with pytest.raises(ReconcileError) as exc_info:
            handler.reconcile(BODY, META, {}, patch_)

        assert exc_info.value.kind == ErrorKind.NEW_CLIENT
        external.observe.assert_not_called()
        assert "status" not in patch_

    def test_closes_client_after_pass(self, handler, external, events):
        observed = snapshot(conditions.available())
        external.observe.return_value = ExternalObservation(
            resource_exists=True, device=observed, resource_up_to_date=True
        )

        handler.reconcile(BODY, META, {}, kopf.Patch())

        external.close.assert_called_once()

    def test_closes_client_when_pass_fails(self, handler, external, events):
        external.observe.side_effect = wrap_error(ErrorKind.GET_DEVICE, ValueError("unreachable"))

        with pytest.raises(ReconcileError):
            handler.reconcile(BODY, META, {}, kopf.Patch())

        external.close.assert_called_once()


class TestDelete:
    """Test cases for DeviceHandler.delete."""

    def test_deletes_remote_device(self, handler, connecter, external, events):
        body = dict(BODY, status={"atProvider": {"id": DEVICE_ID}})
        external.delete.return_value = snapshot(conditions.deleting())
        patch_ = kopf.Patch()

        handler.delete(body, META, {}, patch_)

        external.delete.assert_called_once()
        connecter.tracker.release.assert_called_once_with(external.delete.return_value)
        events.deleted.assert_called_once_with(body, DEVICE_ID)
        assert patch_.metadata["finalizers"] is None
        external.close.assert_called_once()

    def test_never_created_device_skips_remote(self, handler, connecter, external, events):
        patch_ = kopf.Patch()

        handler.delete(BODY, META, {}, patch_)

        connecter.connect.assert_not_called()
        connecter.tracker.release.assert_called_once()
        events.deleted.assert_not_called()
        assert patch_.metadata["finalizers"] is None

    def test_failed_delete_keeps_finalizer(self, handler, connecter, external, events):
        body = dict(BODY, status={"atProvider": {"id": DEVICE_ID}})
        deleting = snapshot(conditions.deleting())
        external.delete.side_effect = wrap_error(ErrorKind.DELETE_DEVICE, ValueError("locked"), device=deleting)
        patch_ = kopf.Patch()

        with pytest.raises(ReconcileError):
            handler.delete(body, META, {}, patch_)

        assert patch_.status["conditions"][0]["reason"] == "Deleting"
        assert "finalizers" not in patch_.metadata
        connecter.tracker.release.assert_not_called()
        external.close.assert_called_once()

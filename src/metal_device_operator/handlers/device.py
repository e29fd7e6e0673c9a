"""Handler for Device CRD."""

from __future__ import annotations

import os
import uuid
from contextlib import closing
from typing import Any, Callable

import kopf

from ..constants import ANNOTATION_EXTERNAL_NAME, API_GROUP_VERSION, FINALIZER, KIND_DEVICE
from ..models import DeclaredDevice, as_device
from ..reconcilers.connecter import DeviceConnecter
from ..reconcilers.device import ExternalDevice
from ..tracing import trace_span
from ..utils.conditions import set_condition
from ..utils.context import ReconcileContext, with_correlation_id
from ..utils.errors import ReconcileError
from ..utils.events import (
    emit_device_created,
    emit_device_deleted,
    emit_device_updated,
    emit_late_initialized,
    emit_network_type_converted,
)
from .base import BaseHandler
from .shared import get_connecter, new_reconcile_context


class DeviceHandler(BaseHandler):
    """Handler for Device resources."""

    def __init__(
        self,
        connecter_factory: Callable[[], DeviceConnecter] = get_connecter,
        context_factory: Callable[[], ReconcileContext] = new_reconcile_context,
    ):
        """Initialize device handler.

        Args:
            connecter_factory: Builds the connecter used for each pass
            context_factory: Builds the context bounding each pass
        """
        super().__init__(KIND_DEVICE, FINALIZER)
        self.connecter_factory = connecter_factory
        self.context_factory = context_factory

    def persist_status(
        self,
        device: DeclaredDevice,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Write the status of a device snapshot into the patch."""
        conditions = [dict(cond) for cond in status.get("conditions", [])]
        ready = False
        if device.condition is not None:
            conditions = set_condition(conditions, device.condition, meta.get("generation"))
            ready = device.condition.status == "True"
        self.update_resource_status(
            patch,
            meta,
            ready,
            {
                "atProvider": device.status.at_provider.to_dict(),
                "conditions": conditions,
            },
        )

    def sync(
        self,
        external: ExternalDevice,
        ctx: ReconcileContext,
        body: Any,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Observe the device, then create or update it as needed."""
        observation = external.observe(ctx, body)
        device = observation.device

        if not observation.resource_exists:
            self.log_info(meta, "Device does not exist, creating it", event="create", reason="Creating")
            device = external.create(ctx, device).device
            patch.metadata.annotations[ANNOTATION_EXTERNAL_NAME] = device.external_id
            emit_device_created(body, device.external_id)
            self.log_info(meta, f"Created device {device.external_id}", event="create", reason="Created")
            self.persist_status(device, meta, status, patch)
            return

        if observation.resource_late_initialized:
            patch.spec["forProvider"] = device.spec.to_dict()
            emit_late_initialized(body, list(observation.late_initialized_fields))

        if not observation.resource_up_to_date:
            self.log_info(
                meta,
                "Device drifted from its spec",
                event="drift",
                reason="DriftDetected",
                fields=list(observation.drifted_fields),
            )
            result = external.update(ctx, device)
            if result.network_type_converted and device.spec.network_type is not None:
                emit_network_type_converted(body, device.external_id, device.spec.network_type.value)
            if result.updated_fields:
                emit_device_updated(body, device.external_id)

        self.persist_status(device, meta, status, patch)

    def reconcile(
        self,
        body: Any,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Run one reconciliation pass for a Device."""
        name = meta.get("name", "unknown")
        ctx = self.context_factory()

        with trace_span("reconcile_device", kind=KIND_DEVICE, attributes={"device.name": name}):
            try:
                with closing(self.connecter_factory().connect(ctx, body)) as external:
                    self.sync(external, ctx, body, meta, status, patch)
            except ReconcileError as e:
                if e.device is not None:
                    self.persist_status(e.device, meta, status, patch)
                raise

    def delete(
        self,
        body: Any,
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Delete the remote device, then release the resource."""
        name = meta.get("name", "unknown")
        ctx = self.context_factory()
        self.log_info(meta, "Device is being deleted", event="deletion", reason="Deletion")

        with trace_span("delete_device_resource", kind=KIND_DEVICE, attributes={"device.name": name}):
            connecter = self.connecter_factory()
            try:
                device = as_device(body)
                if device.external_id:
                    with closing(connecter.connect(ctx, body)) as external:
                        device = external.delete(ctx, device)
            except ReconcileError as e:
                if e.device is not None:
                    self.persist_status(e.device, meta, status, patch)
                raise

            connecter.tracker.release(device)
            if device.external_id:
                emit_device_deleted(body, device.external_id)
            self.remove_finalizer(meta, patch)


# Global handler instance
_handler = DeviceHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_DEVICE)
@kopf.on.update(API_GROUP_VERSION, KIND_DEVICE)
@kopf.on.resume(API_GROUP_VERSION, KIND_DEVICE)
@kopf.timer(API_GROUP_VERSION, KIND_DEVICE, interval=float(os.getenv("DEVICE_POLL_INTERVAL_SECONDS", "60")), idle=10)
def handle_device(
    body: kopf.Body,
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Device resource reconciliation."""
    with with_correlation_id(uuid.uuid4().hex):
        _handler.ensure_finalizer(meta, patch)
        _handler.reconcile_with_metrics(body, meta, lambda: _handler.reconcile(body, meta, status, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_DEVICE)
def handle_device_delete(
    body: kopf.Body,
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle Device resource deletion."""
    with with_correlation_id(uuid.uuid4().hex):
        _handler.reconcile_with_metrics(body, meta, lambda: _handler.delete(body, meta, status, patch))

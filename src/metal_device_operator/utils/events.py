"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_DEVICE_CREATED,
    EVENT_REASON_DEVICE_DELETED,
    EVENT_REASON_DEVICE_UPDATED,
    EVENT_REASON_LATE_INITIALIZED,
    EVENT_REASON_NETWORK_TYPE_CONVERTED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
    EVENT_REASON_VALIDATE_SUCCEEDED,
)


def emit_event(
    body: Any,
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (or metadata-bearing mapping) the event refers to
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: Any) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: Any, message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_succeeded(body: Any) -> None:
    """Emit validation succeeded event."""
    emit_event(body, EVENT_REASON_VALIDATE_SUCCEEDED, "Validation succeeded")


def emit_validate_failed(body: Any, message: str) -> None:
    """Emit validation failed event."""
    emit_event(body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_device_created(body: Any, device_id: str) -> None:
    """Emit device created event."""
    emit_event(body, EVENT_REASON_DEVICE_CREATED, f"Device {device_id} created")


def emit_device_updated(body: Any, device_id: str) -> None:
    """Emit device updated event."""
    emit_event(body, EVENT_REASON_DEVICE_UPDATED, f"Device {device_id} updated")


def emit_device_deleted(body: Any, device_id: str) -> None:
    """Emit device deleted event."""
    emit_event(body, EVENT_REASON_DEVICE_DELETED, f"Device {device_id} deleted")


def emit_network_type_converted(body: Any, device_id: str, network_type: str) -> None:
    """Emit network type converted event."""
    emit_event(
        body,
        EVENT_REASON_NETWORK_TYPE_CONVERTED,
        f"Device {device_id} converted to network type {network_type}",
    )


def emit_late_initialized(body: Any, fields: list[str]) -> None:
    """Emit late initialization event."""
    emit_event(body, EVENT_REASON_LATE_INITIALIZED, f"Late-initialized spec fields: {', '.join(fields)}")

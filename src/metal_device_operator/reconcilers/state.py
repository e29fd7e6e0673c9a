"""Translation of Metal device lifecycle states into status and conditions."""

from __future__ import annotations

from ..constants import STATE_ACTIVE, STATE_PROVISIONING, STATE_QUEUED
from ..utils import conditions
from ..utils.conditions import Condition


def map_device_state(state: str) -> tuple[str, Condition]:
    """Map a provider lifecycle state to a normalized state and Ready condition.

    Unknown states pass through unchanged and are reported Unavailable.

    Args:
        state: Device state as reported by the Metal API

    Returns:
        Tuple of (normalized state, readiness condition)
    """
    normalized = state.lower()
    if normalized == STATE_ACTIVE:
        return STATE_ACTIVE, conditions.available()
    if normalized == STATE_PROVISIONING:
        return STATE_PROVISIONING, conditions.creating()
    if normalized == STATE_QUEUED:
        return STATE_QUEUED, conditions.unavailable()
    return state, conditions.unavailable()

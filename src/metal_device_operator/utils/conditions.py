"""Status conditions in the crossplane style: one entry per type."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from ..constants import (
    COND_AUTH_VALID,
    COND_READY,
    REASON_AVAILABLE,
    REASON_CREATING,
    REASON_DELETING,
    REASON_UNAVAILABLE,
)


@dataclass(frozen=True)
class Condition:
    """A single status condition, without its transition timestamp."""

    type: str
    status: str
    reason: str
    message: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Condition:
        return cls(
            type=data.get("type", ""),
            status=data.get("status", "Unknown"),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
        )

    def to_dict(self, transition_time: str, observed_generation: int | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "lastTransitionTime": transition_time,
        }
        if observed_generation is not None:
            data["observedGeneration"] = observed_generation
        return data


def available() -> Condition:
    """The device is active and usable."""
    return Condition(COND_READY, "True", REASON_AVAILABLE)


def creating() -> Condition:
    return Condition(COND_READY, "False", REASON_CREATING)


def deleting() -> Condition:
    return Condition(COND_READY, "False", REASON_DELETING)


def unavailable() -> Condition:
    """The device exists but cannot be used yet (or any more)."""
    return Condition(COND_READY, "False", REASON_UNAVAILABLE)


def _bool_condition(condition_type: str, status: bool, true_reason: str, false_reason: str, message: str) -> Condition:
    if status:
        return Condition(condition_type, "True", true_reason, message)
    return Condition(condition_type, "False", false_reason, message)


def set_condition(
    conditions: list[dict[str, Any]],
    condition: Condition,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Return conditions with condition written in place of its type.

    lastTransitionTime only moves when the status changes.

    Args:
        conditions: Existing status conditions (left untouched)
        condition: Condition to write
        observed_generation: Generation the condition was computed from

    Returns:
        New list of conditions
    """
    now = datetime.now(timezone.utc).isoformat()
    result: list[dict[str, Any]] = []
    written = False
    for existing in conditions:
        if existing.get("type") != condition.type:
            result.append(existing)
            continue
        transition_time = now
        if existing.get("status") == condition.status:
            transition_time = existing.get("lastTransitionTime", now)
        result.append(condition.to_dict(transition_time, observed_generation))
        written = True
    if not written:
        result.append(condition.to_dict(now, observed_generation))
    return result


def update_condition(
    conditions: list[dict[str, Any]],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Field-wise form of set_condition."""
    return set_condition(conditions, Condition(condition_type, status, reason, message), observed_generation)


def find_condition(conditions: list[dict[str, Any]], condition_type: str) -> Condition | None:
    """Return the condition of the given type, if present."""
    for cond in conditions:
        if cond.get("type") == condition_type:
            return Condition.from_dict(cond)
    return None


def set_ready_condition(
    conditions: list[dict[str, Any]],
    status: bool,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    return set_condition(
        conditions,
        _bool_condition(COND_READY, status, "Ready", "NotReady", message),
        observed_generation,
    )


def set_auth_valid_condition(
    conditions: list[dict[str, Any]],
    status: bool,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    return set_condition(
        conditions,
        _bool_condition(COND_AUTH_VALID, status, "AuthValid", "AuthInvalid", message),
        observed_generation,
    )

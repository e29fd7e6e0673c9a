"""Reconciliation errors and error sanitization utilities."""

from __future__ import annotations

import enum
import re
from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:
    from ..models import DeclaredDevice


class ErrorKind(str, enum.Enum):
    """Stage labels attached to reconciliation failures."""

    NOT_SUPPORTED_KIND = "managed resource is not a Device custom resource"
    GET_DEVICE = "cannot get device"
    CREATE_DEVICE = "cannot create device"
    UPDATE_DEVICE = "cannot update device"
    DELETE_DEVICE = "cannot delete device"
    NEW_CLIENT = "cannot create new client"
    GET_PROVIDER_CONFIG_SECRET = "cannot get ProviderConfig Secret"
    GET_PROVIDER_CONFIG = "cannot get ProviderConfig"
    APPLY_PROVIDER_CONFIG_USAGE = "cannot apply ProviderConfigUsage"
    GET_CREDENTIALS = "cannot get credentials"
    GET_CREDENTIALS_SECRET = "cannot get credentials secret"
    SECRET_KEY_NOT_SPECIFIED = "cannot extract from secret key when none specified"
    CANCELLED = "reconciliation cancelled"


class ReconcileError(Exception):
    """A reconciliation failure tagged with the stage it happened in.

    The wrapped cause is kept in ``__cause__`` (use ``raise ... from``), so the
    full chain can be walked down to the originating error.

    Args:
        kind: Stage that failed
        device: Optional resource snapshot the caller should persist even
            though the operation failed (e.g. a Creating or Deleting condition)
    """

    def __init__(self, kind: ErrorKind, device: DeclaredDevice | None = None):
        super().__init__(kind.value)
        self.kind = kind
        self.device = device

    def __str__(self) -> str:
        cause = self.__cause__
        if cause is None:
            return self.kind.value
        return f"{self.kind.value}: {cause}"

    @property
    def cause(self) -> BaseException | None:
        """The directly wrapped error, if any."""
        return self.__cause__

    def chain(self) -> Iterator[BaseException]:
        """Iterate over this error and every wrapped cause, outermost first."""
        current: BaseException | None = self
        while current is not None:
            yield current
            current = current.__cause__

    def kinds(self) -> list[ErrorKind]:
        """Stage labels of every ReconcileError in the chain, outermost first."""
        return [err.kind for err in self.chain() if isinstance(err, ReconcileError)]

    def has_kind(self, kind: ErrorKind) -> bool:
        """Check whether any layer of the chain carries the given stage."""
        return kind in self.kinds()

    def root_cause(self) -> BaseException:
        """Return the innermost error of the chain."""
        *_, root = self.chain()
        return root


class ReconcileCancelledError(ReconcileError):
    """Raised when a reconciliation pass is cancelled or runs past its deadline."""

    def __init__(self, message: str = "context cancelled"):
        super().__init__(ErrorKind.CANCELLED)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


def wrap_error(kind: ErrorKind, cause: BaseException, device: DeclaredDevice | None = None) -> ReconcileError:
    """Build a ReconcileError wrapping ``cause``.

    Cancellation is never relabelled: a cancelled pass surfaces as such no
    matter which stage noticed it.
    """
    if isinstance(cause, ReconcileCancelledError):
        return cause
    error = ReconcileError(kind, device=device)
    error.__cause__ = cause
    error.__suppress_context__ = True
    return error


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"x-auth-token[:\s]+([A-Za-z0-9\-_]+)",
    r"api[_\s]?key[:\s\"']+([A-Za-z0-9\-_]+)",
    r"project[_\s]?id[:\s\"']+([a-f0-9\-]{36})",
    r"namespace[:\s]+([a-zA-Z0-9\-_]+)",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "api_key",
    "apikey",
    "auth_token",
    "password",
    "token",
    "user_data",
    "userdata",
}


def _redact_group(match: re.Match[str]) -> str:
    start, end = match.span(1)
    offset = match.start()
    text = match.group(0)
    return text[: start - offset] + "[REDACTED]" + text[end - offset :]


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(pattern, _redact_group, sanitized, flags=re.IGNORECASE)

    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"{field}[:\s]+([^\s,;\)]+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized = {}

    for key, value in data.items():
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in all_sensitive):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized

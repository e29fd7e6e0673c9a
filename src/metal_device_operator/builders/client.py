"""Builder for Metal device client instances."""

from __future__ import annotations

from ..services.metal.client import MetalDeviceClient
from ..services.metal.models import Credentials
from ..utils.context import ReconcileContext


def create_client_from_credentials(ctx: ReconcileContext, credentials: bytes) -> MetalDeviceClient:
    """Create a Metal device client from raw credential bytes.

    Args:
        ctx: Context bounding the client's requests
        credentials: JSON credentials document read from the ProviderConfig secret

    Returns:
        Configured Metal device client

    Raises:
        ValueError: If the credentials document is invalid
    """
    return MetalDeviceClient(Credentials.from_bytes(credentials), ctx=ctx)

# =============================================================================
# Doris Webhook - Services Package
# =============================================================================
"""Service layer for external integrations."""

from .stream_load import (
    GatewayError,
    LoadRejected,
    ProtocolError,
    StreamLoadClient,
    StreamLoadError,
    TransportError,
)

__all__ = [
    "GatewayError",
    "LoadRejected",
    "ProtocolError",
    "StreamLoadClient",
    "StreamLoadError",
    "TransportError",
]

"""HTTP transport to the remote classifier."""

from clearview.transport.client import (
    RetryingTransport,
    TransportConfig,
    fail_open,
    normalize_response,
)

__all__ = [
    "RetryingTransport",
    "TransportConfig",
    "fail_open",
    "normalize_response",
]

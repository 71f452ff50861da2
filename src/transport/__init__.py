"""Outbound transport with bounded retry on transient failure.

Main components:
- ITransport: interface every transport implements
- RetryingTransport: retry loop shared by concrete transports
- AiohttpTransport: HTTP transport on aiohttp
"""

from .http import AiohttpTransport
from .interfaces import (
    FailureKind,
    ITransport,
    MultipartField,
    OutboundRequest,
    TransportError,
    TransportResponse,
)
from .retry import MAX_RETRIES, RETRY_DELAY_SECONDS, RetryingTransport, RetryPolicy, RetryState, classify_status

__all__ = [
    "AiohttpTransport",
    "FailureKind",
    "ITransport",
    "MultipartField",
    "OutboundRequest",
    "TransportError",
    "TransportResponse",
    "MAX_RETRIES",
    "RETRY_DELAY_SECONDS",
    "RetryingTransport",
    "RetryPolicy",
    "RetryState",
    "classify_status",
]

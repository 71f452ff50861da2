"""Interfaces for the outbound transport.

The transport performs one logical call, retries it on transient failure,
and reports a single terminal outcome. It has no knowledge of the protocol
spoken by the remote service.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class FailureKind(Enum):
    """Classification of a failed attempt."""
    TRANSIENT = "transient"  # Network error, timeout, 5xx, rate limit
    PERMANENT = "permanent"  # Any other 4xx


@dataclass(frozen=True)
class MultipartField:
    """A single multipart form part.

    Parts are kept as plain values so the body can be rebuilt for each
    attempt.
    """
    name: str
    value: Any
    filename: Optional[str] = None
    content_type: Optional[str] = None


@dataclass(frozen=True)
class OutboundRequest:
    """A fully formed outbound call.

    At most one of ``json``, ``form`` and ``multipart`` should be set.

    Attributes:
        method: HTTP method.
        url: Absolute target URL.
        headers: Extra request headers.
        params: Query string parameters.
        json: JSON-serializable body.
        form: Form-encoded body as name/value pairs.
        multipart: Multipart body parts.
        timeout: Per-attempt timeout in seconds, transport default if None.
    """
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Optional[Dict[str, str]] = None
    json: Any = None
    form: Optional[Tuple[Tuple[str, str], ...]] = None
    multipart: Optional[Tuple[MultipartField, ...]] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class TransportResponse:
    """Response of a successful call."""
    status: int
    body: bytes
    headers: Dict[str, str] = field(default_factory=dict)

    def text(self, encoding: str = "utf-8") -> str:
        """Decode the body as text."""
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body.decode("utf-8"))


class TransportError(Exception):
    """Terminal failure of a transport call.

    Attributes:
        kind: Whether the last attempt failed transiently or permanently.
        status: HTTP status of the last attempt, None for network errors.
        attempts: Number of physical attempts made.
        url: Target URL of the call.
        operation: Name of the higher-level operation, set by providers.
    """

    def __init__(
        self,
        message: str,
        kind: FailureKind,
        status: Optional[int] = None,
        attempts: int = 1,
        url: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.attempts = attempts
        self.url = url
        self.operation = operation

    @property
    def is_transient(self) -> bool:
        return self.kind == FailureKind.TRANSIENT

    def __str__(self) -> str:
        base = super().__str__()
        if self.operation:
            return f"{self.operation}: {base}"
        return base


class ITransport(ABC):
    """Interface for outbound transports."""

    @abstractmethod
    async def send(self, request: OutboundRequest) -> TransportResponse:
        """Perform the call described by ``request``.

        Returns:
            The response of the first successful attempt.

        Raises:
            TransportError: When the call fails permanently or the retry
                budget is exhausted.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release network resources."""
        pass

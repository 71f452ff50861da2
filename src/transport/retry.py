"""Bounded retry policy for outbound calls.

Transient failures (network errors, timeouts, 5xx, 429) are retried a fixed
number of times with a fixed delay. Permanent failures are returned on the
first attempt. A ``RetryState`` lives for exactly one logical call.
"""

import asyncio
from abc import abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from src.config.logger import logger
from .interfaces import FailureKind, ITransport, OutboundRequest, TransportError, TransportResponse

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 1.0


def classify_status(status: int) -> Optional[FailureKind]:
    """Classify an HTTP status.

    Returns:
        None for success statuses, otherwise the failure kind.
    """
    if status < 400:
        return None
    if status == 429 or status >= 500:
        return FailureKind.TRANSIENT
    return FailureKind.PERMANENT


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration.

    Attributes:
        max_retries: Additional attempts allowed after a transient failure.
        delay: Seconds to wait between attempts.
    """
    max_retries: int = MAX_RETRIES
    delay: float = RETRY_DELAY_SECONDS

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


@dataclass
class RetryState:
    """Per-call retry bookkeeping, never shared between calls."""
    attempt: int = 0
    max_attempts: int = MAX_RETRIES + 1
    backoff: float = RETRY_DELAY_SECONDS

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


class RetryingTransport(ITransport):
    """Base transport that applies a ``RetryPolicy`` around single attempts.

    Subclasses implement ``_attempt``, which performs one physical call and
    either returns a response (any status) or raises ``TransportError`` for
    failures that produced no response.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self.logger = logger.bind(component="transport")

    @abstractmethod
    async def _attempt(self, request: OutboundRequest) -> TransportResponse:
        """Perform one physical attempt."""
        pass

    async def send(self, request: OutboundRequest) -> TransportResponse:
        state = RetryState(
            attempt=0,
            max_attempts=self.policy.max_attempts,
            backoff=self.policy.delay
        )

        while True:
            state.attempt += 1
            try:
                response = await self._attempt(request)
            except TransportError as e:
                failure = e
            else:
                kind = classify_status(response.status)
                if kind is None:
                    return response
                failure = TransportError(
                    f"HTTP {response.status} from {request.method} {request.url}",
                    kind=kind,
                    status=response.status,
                    url=request.url
                )

            failure.attempts = state.attempt

            if failure.kind == FailureKind.PERMANENT:
                self.logger.warning(
                    "transport_permanent_failure",
                    url=request.url,
                    status=failure.status,
                    attempt=state.attempt
                )
                raise failure

            if state.exhausted:
                self.logger.error(
                    "transport_retries_exhausted",
                    url=request.url,
                    status=failure.status,
                    attempts=state.attempt,
                    error=str(failure)
                )
                raise failure

            self.logger.info(
                "transport_retry",
                url=request.url,
                status=failure.status,
                attempt=state.attempt,
                delay=state.backoff
            )
            await self._sleep(state.backoff)

"""Tests for the bounded retry loop."""

import asyncio
from typing import List, Union

import pytest

from src.transport import (
    FailureKind,
    OutboundRequest,
    RetryingTransport,
    RetryPolicy,
    TransportError,
    TransportResponse,
    classify_status,
)


class ScriptedTransport(RetryingTransport):
    """Transport whose attempts follow a script of statuses or errors."""

    def __init__(self, outcomes: List[Union[int, TransportError]], policy=None, sleep=asyncio.sleep):
        super().__init__(policy=policy, sleep=sleep)
        self.outcomes = list(outcomes)
        self.attempts = 0

    async def _attempt(self, request: OutboundRequest) -> TransportResponse:
        self.attempts += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, TransportError):
            raise outcome
        return TransportResponse(status=outcome, body=b"body")

    async def close(self) -> None:
        pass


def network_error() -> TransportError:
    return TransportError("connection reset", kind=FailureKind.TRANSIENT)


REQUEST = OutboundRequest(method="GET", url="http://gateway.test/challenge")


class TestClassifyStatus:
    """Tests for HTTP status classification."""

    @pytest.mark.parametrize("status", [200, 201, 204, 302])
    def test_success_statuses(self, status):
        assert classify_status(status) is None

    @pytest.mark.parametrize("status", [429, 500, 502, 503, 504])
    def test_transient_statuses(self, status):
        assert classify_status(status) == FailureKind.TRANSIENT

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_permanent_statuses(self, status):
        assert classify_status(status) == FailureKind.PERMANENT


class TestRetryingTransport:
    """Tests for retry behaviour."""

    def test_default_policy(self):
        """Three retries, one second apart, four attempts in total."""
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.delay == 1.0
        assert policy.max_attempts == 4

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, no_sleep):
        transport = ScriptedTransport([200], sleep=no_sleep)

        response = await transport.send(REQUEST)

        assert response.status == 200
        assert transport.attempts == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_until_success(self, no_sleep):
        """Two transient failures then a success: three attempts, two waits."""
        transport = ScriptedTransport([503, network_error(), 200], sleep=no_sleep)

        response = await transport.send(REQUEST)

        assert response.status == 200
        assert transport.attempts == 3
        assert no_sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, no_sleep):
        """Four consecutive transient failures surface the last one."""
        transport = ScriptedTransport([503, 503, 502, 500], sleep=no_sleep)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(REQUEST)

        error = exc_info.value
        assert error.is_transient
        assert error.status == 500
        assert error.attempts == 4
        assert transport.attempts == 4
        assert no_sleep.delays == [1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_permanent_failure_not_retried(self, no_sleep):
        transport = ScriptedTransport([404, 200], sleep=no_sleep)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(REQUEST)

        assert exc_info.value.kind == FailureKind.PERMANENT
        assert exc_info.value.status == 404
        assert exc_info.value.attempts == 1
        assert transport.attempts == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_rate_limit_is_retried(self, no_sleep):
        transport = ScriptedTransport([429, 200], sleep=no_sleep)

        response = await transport.send(REQUEST)

        assert response.status == 200
        assert transport.attempts == 2

    @pytest.mark.asyncio
    async def test_permanent_after_transient(self, no_sleep):
        """A permanent failure stops the loop even mid-retry."""
        transport = ScriptedTransport([503, 401, 200], sleep=no_sleep)

        with pytest.raises(TransportError) as exc_info:
            await transport.send(REQUEST)

        assert exc_info.value.status == 401
        assert exc_info.value.attempts == 2
        assert transport.attempts == 2

    @pytest.mark.asyncio
    async def test_retry_state_not_shared_between_calls(self, no_sleep):
        """Each call gets a fresh budget."""
        transport = ScriptedTransport(
            [503, 503, 503, 200, 503, 503, 503, 200],
            sleep=no_sleep
        )

        first = await transport.send(REQUEST)
        second = await transport.send(REQUEST)

        assert first.status == 200
        assert second.status == 200
        assert transport.attempts == 8

    @pytest.mark.asyncio
    async def test_custom_policy(self, no_sleep):
        transport = ScriptedTransport(
            [500, 500],
            policy=RetryPolicy(max_retries=1, delay=0.25),
            sleep=no_sleep
        )

        with pytest.raises(TransportError) as exc_info:
            await transport.send(REQUEST)

        assert exc_info.value.attempts == 2
        assert no_sleep.delays == [0.25]


class TestTransportError:
    """Tests for the error type."""

    def test_operation_prefixes_message(self):
        error = TransportError("HTTP 503", kind=FailureKind.TRANSIENT, status=503)
        assert str(error) == "HTTP 503"

        error.operation = "generate_text"
        assert str(error) == "generate_text: HTTP 503"


class TestRetryScenario:
    """Three transient failures then a success."""

    @pytest.mark.asyncio
    async def test_four_attempts_then_success(self, no_sleep):
        transport = ScriptedTransport([503, network_error(), 502, 200], sleep=no_sleep)

        response = await transport.send(REQUEST)

        assert response.status == 200
        assert transport.attempts == 4
        assert no_sleep.delays == [1.0, 1.0, 1.0]

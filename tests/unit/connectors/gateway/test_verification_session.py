"""Tests for the multi-turn verification session."""

import json
from unittest.mock import AsyncMock

import pytest

from src.connectors.gateway import (
    ConversationMessage,
    SessionStateError,
    VerificationSession,
    VerificationState,
)
from src.providers import ProtocolError, ROBOT_VERIFICATION
from src.transport import FailureKind, TransportError, TransportResponse


def reply(payload) -> TransportResponse:
    return TransportResponse(status=200, body=json.dumps(payload).encode())


class TestVerificationSession:
    """Tests for VerificationSession transitions."""

    @pytest.fixture
    def transport(self):
        transport = AsyncMock()
        transport.send.side_effect = [
            reply({"text": "Q1", "correlationId": "1"}),
            reply({"text": "Q2", "correlationId": "2"}),
            reply({"text": "OK", "correlationId": "3"}),
        ]
        return transport

    @pytest.fixture
    def provider(self):
        provider = AsyncMock()
        provider.generate_text.return_value = " Kraków \n"
        return provider

    @pytest.fixture
    def session(self, transport, provider):
        return VerificationSession(transport, provider, base_url="http://gateway.test")

    @pytest.mark.asyncio
    async def test_start_bootstraps_dialogue(self, session, transport):
        """READY goes out, the reply becomes the pending message."""
        pending = await session.start()

        assert pending == ConversationMessage(text="Q1", correlation_id="1")
        assert session.state == VerificationState.AWAITING_REPLY
        assert session.pending == pending
        assert session.transcript == (
            ConversationMessage(text="READY", correlation_id="0"),
            ConversationMessage(text="Q1", correlation_id="1"),
        )
        request = transport.send.call_args.args[0]
        assert request.method == "POST"
        assert request.url == "http://gateway.test/verify"
        assert request.json == {"text": "READY", "correlationId": "0"}

    @pytest.mark.asyncio
    async def test_start_failure_leaves_state(self, session, transport):
        transport.send.side_effect = TransportError("HTTP 502", kind=FailureKind.TRANSIENT, attempts=4)

        with pytest.raises(TransportError):
            await session.start()

        assert session.state == VerificationState.NOT_STARTED
        assert session.transcript == ()
        assert session.error == "Failed to start verification: HTTP 502"

    @pytest.mark.asyncio
    async def test_restart_failure_keeps_previous_transcript(self, session, transport):
        await session.start()
        transport.send.side_effect = TransportError("HTTP 502", kind=FailureKind.TRANSIENT)

        with pytest.raises(TransportError):
            await session.start()

        assert len(session.transcript) == 2
        assert session.pending.correlation_id == "1"

    @pytest.mark.asyncio
    async def test_malformed_reply(self, session, transport):
        transport.send.side_effect = [reply({"message": "hi"})]

        with pytest.raises(ProtocolError):
            await session.start()

        assert session.state == VerificationState.NOT_STARTED

    @pytest.mark.asyncio
    async def test_non_json_reply(self, session, transport):
        transport.send.side_effect = [TransportResponse(status=200, body=b"<html>")]

        with pytest.raises(ProtocolError):
            await session.start()

    @pytest.mark.asyncio
    async def test_numeric_correlation_id_accepted(self, session, transport):
        transport.send.side_effect = [reply({"text": "Q1", "msgID": 5, "correlationId": 5})]

        pending = await session.start()

        assert pending.correlation_id == "5"

    @pytest.mark.asyncio
    async def test_generate_reply(self, session, provider):
        await session.start()

        text = await session.generate_reply()

        assert text == "Kraków"
        assert session.state == VerificationState.REPLY_READY
        messages = provider.generate_text.call_args.args[0]
        assert messages[0].content == ROBOT_VERIFICATION.system_message
        assert messages[-1].content == "Q1"

    @pytest.mark.asyncio
    async def test_generate_reply_requires_pending(self, session, provider):
        with pytest.raises(SessionStateError):
            await session.generate_reply()

        provider.generate_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_regenerate_reply(self, session, provider):
        await session.start()
        await session.generate_reply()
        provider.generate_text.return_value = "Warsaw"

        assert await session.generate_reply() == "Warsaw"
        assert session.state == VerificationState.REPLY_READY

    @pytest.mark.asyncio
    async def test_blank_reply_rejected(self, session, provider, transport):
        await session.start()
        provider.generate_text.return_value = "  \n"

        with pytest.raises(ProtocolError):
            await session.generate_reply()

        assert session.state == VerificationState.AWAITING_REPLY
        assert session.reply is None
        assert session.error == "Failed to generate reply: Provider returned an empty reply"
        with pytest.raises(SessionStateError):
            await session.send_reply()
        assert transport.send.call_count == 1

    @pytest.mark.asyncio
    async def test_blank_regenerated_reply_keeps_previous(self, session, provider):
        await session.start()
        await session.generate_reply()
        provider.generate_text.return_value = ""

        with pytest.raises(ProtocolError):
            await session.generate_reply()

        assert session.state == VerificationState.REPLY_READY
        assert session.reply == "Kraków"

    @pytest.mark.asyncio
    async def test_send_reply_uses_pending_correlation_id(self, session, transport):
        await session.start()
        await session.generate_reply()

        pending = await session.send_reply()

        request = transport.send.call_args.args[0]
        assert request.json == {"text": "Kraków", "correlationId": "1"}
        assert pending == ConversationMessage(text="Q2", correlation_id="2")
        assert session.state == VerificationState.AWAITING_REPLY
        assert session.reply is None
        assert [m.correlation_id for m in session.transcript] == ["0", "1", "1", "2"]

    @pytest.mark.asyncio
    async def test_send_reply_failure_keeps_reply(self, session, transport):
        await session.start()
        await session.generate_reply()
        transport.send.side_effect = TransportError("HTTP 500", kind=FailureKind.TRANSIENT)

        with pytest.raises(TransportError):
            await session.send_reply()

        assert session.state == VerificationState.REPLY_READY
        assert session.reply == "Kraków"
        assert len(session.transcript) == 2

    @pytest.mark.asyncio
    async def test_send_requires_reply(self, session):
        await session.start()

        with pytest.raises(SessionStateError):
            await session.send_reply()

    @pytest.mark.asyncio
    async def test_advance(self, session, transport):
        await session.start()

        pending = await session.advance()
        pending = await session.advance()

        assert pending.text == "OK"
        assert len(session.transcript) == 6
        assert transport.send.call_count == 3

    @pytest.mark.asyncio
    async def test_stop(self, session):
        await session.start()
        await session.generate_reply()

        session.stop()

        assert session.state == VerificationState.TERMINATED
        assert session.reply is None
        assert len(session.transcript) == 2
        session.stop()  # idempotent

        with pytest.raises(SessionStateError):
            await session.generate_reply()

    def test_stop_before_start(self, session):
        with pytest.raises(SessionStateError):
            session.stop()

    @pytest.mark.asyncio
    async def test_start_after_stop_replaces_transcript(self, session, transport):
        await session.start()
        session.stop()
        transport.send.side_effect = [reply({"text": "Fresh", "correlationId": "9"})]

        await session.start()

        assert session.state == VerificationState.AWAITING_REPLY
        assert [m.text for m in session.transcript] == ["READY", "Fresh"]

    @pytest.mark.asyncio
    async def test_reset(self, session):
        await session.start()

        session.reset()

        assert session.state == VerificationState.NOT_STARTED
        assert session.transcript == ()
        assert session.pending is None

    @pytest.mark.asyncio
    async def test_status(self, session):
        await session.start()

        status = session.status()

        assert status["state"] == "awaiting_reply"
        assert status["pending"] == {"text": "Q1", "correlationId": "1"}
        assert status["transcript"][0] == {"text": "READY", "correlationId": "0"}

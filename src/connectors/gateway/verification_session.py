"""Multi-turn verification session.

The gateway's verification endpoint runs a dialogue in which every reply
must carry the correlation id of the message it answers:

    NOT_STARTED -> AWAITING_REPLY <-> REPLY_READY
                          |               |
                          +--> TERMINATED <+

A failed call never moves the session; the error is recorded and the
operator can retry the same step.
"""

from typing import Any, Dict, List, Optional, Set, Tuple

from src.config.logger import logger
from src.providers import AnswerKind, AnswerRequest, ILLMProvider, ProtocolError, build_answer_messages
from src.transport import ITransport, OutboundRequest
from .interfaces import (
    ConversationMessage,
    IVerificationSession,
    SessionStateError,
    VerificationState,
)


class VerificationSession(IVerificationSession):
    """State machine for the correlation-id verification dialogue."""

    VERIFY_PATH = "/verify"
    BOOTSTRAP_MESSAGE = ConversationMessage(text="READY", correlation_id="0")

    def __init__(
        self,
        transport: ITransport,
        provider: ILLMProvider,
        base_url: str = "http://localhost:3000",
    ):
        self.transport = transport
        self.provider = provider
        self.base_url = base_url.rstrip("/")

        self.state = VerificationState.NOT_STARTED
        self.pending: Optional[ConversationMessage] = None
        self.reply: Optional[str] = None
        self.error: Optional[str] = None
        self._transcript: List[ConversationMessage] = []

        self.logger = logger.bind(session="verification")

    @property
    def transcript(self) -> Tuple[ConversationMessage, ...]:
        """Every message exchanged in the current dialogue, in order."""
        return tuple(self._transcript)

    def _require_state(self, step: str, allowed: Set[VerificationState]) -> None:
        if self.state not in allowed:
            raise SessionStateError(
                f"Cannot {step} in state {self.state.value}"
            )

    def _fail(self, step: str, error: Exception) -> None:
        self.error = f"Failed to {step}: {error}"
        self.logger.error(
            "verification_step_failed",
            step=step,
            state=self.state.value,
            error=str(error),
            exc_info=not isinstance(error, SessionStateError)
        )

    async def _exchange(self, message: ConversationMessage) -> ConversationMessage:
        """POST one message and decode the gateway's answer."""
        response = await self.transport.send(OutboundRequest(
            method="POST",
            url=f"{self.base_url}{self.VERIFY_PATH}",
            json=message.to_wire()
        ))
        try:
            payload = response.json()
        except ValueError as e:
            raise ProtocolError(f"Verification response is not JSON: {e}") from e
        return ConversationMessage.from_wire(payload)

    async def start(self) -> ConversationMessage:
        """Open a new dialogue with the bootstrap message.

        Allowed from any state: a new procedure replaces the old transcript,
        but only once the gateway has answered.

        Raises:
            TransportError: If the gateway cannot be reached.
            ProtocolError: If the answer is not a verification message.
        """
        try:
            response = await self._exchange(self.BOOTSTRAP_MESSAGE)
        except Exception as e:
            self._fail("start verification", e)
            raise

        self._transcript = [self.BOOTSTRAP_MESSAGE, response]
        self.pending = response
        self.reply = None
        self.error = None
        self.state = VerificationState.AWAITING_REPLY
        self.logger.info(
            "verification_started",
            correlation_id=response.correlation_id,
            text=response.text
        )
        return response

    async def generate_reply(self) -> str:
        """Compute a reply to the pending message.

        May be called again from REPLY_READY to replace the reply.

        Raises:
            SessionStateError: If there is no pending message.
            UnsupportedCapability: If the provider cannot generate text.
            TransportError: If the provider call fails.
            ProtocolError: If the provider returns an empty reply.
        """
        try:
            self._require_state(
                "generate a reply",
                {VerificationState.AWAITING_REPLY, VerificationState.REPLY_READY}
            )
            pending = self.pending
            request = AnswerRequest(kind=AnswerKind.CONVERSATIONAL, prompt=pending.text)
            completion = await self.provider.generate_text(build_answer_messages(request))
            text = completion.strip()
            if not text:
                raise ProtocolError("Provider returned an empty reply")
        except Exception as e:
            self._fail("generate reply", e)
            raise

        self.reply = text
        self.error = None
        self.state = VerificationState.REPLY_READY
        self.logger.info(
            "verification_reply_ready",
            correlation_id=pending.correlation_id,
            reply=self.reply
        )
        return self.reply

    async def send_reply(self) -> ConversationMessage:
        """Send the prepared reply tagged with the pending correlation id.

        Raises:
            SessionStateError: If no reply is ready.
            TransportError: If the gateway cannot be reached.
            ProtocolError: If the answer is not a verification message.
        """
        try:
            self._require_state("send a reply", {VerificationState.REPLY_READY})
            outgoing = ConversationMessage(
                text=self.reply,
                correlation_id=self.pending.correlation_id
            )
            response = await self._exchange(outgoing)
        except Exception as e:
            self._fail("send reply", e)
            raise

        self._transcript.extend([outgoing, response])
        self.pending = response
        self.reply = None
        self.error = None
        self.state = VerificationState.AWAITING_REPLY
        self.logger.info(
            "verification_reply_sent",
            correlation_id=outgoing.correlation_id,
            next_correlation_id=response.correlation_id
        )
        return response

    async def advance(self) -> ConversationMessage:
        """Generate a reply if needed, then send it."""
        if self.state == VerificationState.AWAITING_REPLY:
            await self.generate_reply()
        return await self.send_reply()

    def stop(self) -> None:
        """End the dialogue; the transcript is kept."""
        if self.state == VerificationState.TERMINATED:
            return
        if self.state == VerificationState.NOT_STARTED:
            error = SessionStateError("Cannot stop verification in state not_started")
            self._fail("stop verification", error)
            raise error
        self.state = VerificationState.TERMINATED
        self.reply = None
        self.logger.info("verification_stopped", messages=len(self._transcript))

    def reset(self) -> None:
        """Discard the dialogue and return to NOT_STARTED."""
        self.state = VerificationState.NOT_STARTED
        self.pending = None
        self.reply = None
        self.error = None
        self._transcript = []

    def status(self) -> Dict[str, Any]:
        """Snapshot of the session for reporting."""
        return {
            "state": self.state.value,
            "pending": self.pending.to_wire() if self.pending else None,
            "reply": self.reply,
            "transcript": [message.to_wire() for message in self._transcript],
            "error": self.error,
        }

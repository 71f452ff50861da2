"""Interfaces for the challenge gateway connector.

The gateway is the remote service that guards access behind time-limited
questions (the single-shot challenge flow) and a conversational
verification dialogue (the multi-turn flow). This module holds the data
types and interfaces both session state machines share.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from src.providers.interfaces import ProtocolError


class ChallengeState(Enum):
    """States of the single-shot challenge session."""
    IDLE = "idle"
    CHALLENGE_FETCHED = "challenge_fetched"
    ANSWER_READY = "answer_ready"
    SUBMITTED = "submitted"


class SubmissionStatus(Enum):
    """Result of submitting credentials with an answer."""
    SUCCESS = "success"  # Success marker found in the response
    FAILED = "failed"  # Response did not contain the success marker


class VerificationState(Enum):
    """States of the multi-turn verification session."""
    NOT_STARTED = "not_started"
    AWAITING_REPLY = "awaiting_reply"
    REPLY_READY = "reply_ready"
    TERMINATED = "terminated"


class ParseError(Exception):
    """Raised when the challenge question marker is missing.

    Not fatal: the parser falls back to the whole body.
    """
    pass


class SessionStateError(Exception):
    """Raised when a transition is requested from the wrong state."""
    pass


@dataclass(frozen=True)
class GatewayCredentials:
    """Credentials submitted together with the challenge answer."""
    identity: str
    secret: str

    def __repr__(self) -> str:
        return f"GatewayCredentials(identity={self.identity!r}, secret='***')"


@dataclass(frozen=True)
class Challenge:
    """A question obtained from the gateway.

    Attributes:
        text: Extracted question text.
        obtained_at: Scheduler clock reading when the fetch completed.
        raw: Raw response body the question was extracted from.
        fetched_at: Wall-clock time of the fetch, for reporting.
    """
    text: str
    obtained_at: float
    raw: str = ""
    fetched_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class PreparedAnswer:
    """An answer bound to the challenge it was computed for."""
    challenge: Challenge
    text: str


@dataclass(frozen=True)
class Artifact:
    """Downloadable artifact exposed after a successful submission."""
    name: str
    content: bytes
    content_type: str = "text/html"
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of a submission."""
    status: SubmissionStatus
    message: str
    answer: PreparedAnswer
    submitted_at: datetime = field(default_factory=datetime.now)
    artifact: Optional[Artifact] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.SUCCESS


@dataclass(frozen=True)
class ConversationMessage:
    """One message of the verification dialogue.

    ``correlation_id`` ties a reply to the message it answers; on the wire
    it is the ``correlationId`` key.
    """
    text: str
    correlation_id: str

    def to_wire(self) -> Dict[str, Any]:
        return {"text": self.text, "correlationId": self.correlation_id}

    @classmethod
    def from_wire(cls, data: Any) -> "ConversationMessage":
        """Build a message from a decoded JSON payload.

        Raises:
            ProtocolError: If the payload is not a ``{text, correlationId}``
                object.
        """
        if not isinstance(data, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(data).__name__}")
        text = data.get("text")
        correlation_id = data.get("correlationId")
        if not isinstance(text, str):
            raise ProtocolError("Verification message has no text field")
        if isinstance(correlation_id, bool) or not isinstance(correlation_id, (str, int)):
            raise ProtocolError("Verification message has no correlationId field")
        return cls(text=text, correlation_id=str(correlation_id))


class IArtifactStorage(ABC):
    """Interface for storing downloaded artifacts."""

    @abstractmethod
    async def save(self, artifact: Artifact) -> str:
        """Store ``artifact``.

        Returns:
            A location identifier (key or file path).
        """
        pass

    @abstractmethod
    async def load(self, name: str) -> Optional[Artifact]:
        """Load an artifact by name, None if absent."""
        pass


class IChallengeSession(ABC):
    """Single-shot challenge flow: fetch, answer, submit."""

    @abstractmethod
    async def fetch_challenge(self) -> Challenge:
        pass

    @abstractmethod
    async def request_answer(self) -> PreparedAnswer:
        pass

    @abstractmethod
    async def submit(self) -> SubmissionOutcome:
        pass

    @abstractmethod
    def reset(self) -> None:
        pass


class IVerificationSession(ABC):
    """Multi-turn verification flow."""

    @abstractmethod
    async def start(self) -> ConversationMessage:
        pass

    @abstractmethod
    async def generate_reply(self) -> str:
        pass

    @abstractmethod
    async def send_reply(self) -> ConversationMessage:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @property
    @abstractmethod
    def transcript(self) -> Tuple[ConversationMessage, ...]:
        pass

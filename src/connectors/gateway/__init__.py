"""Challenge gateway connector package.

The gateway guards access behind two flows:
- a single-shot challenge: fetch a time-limited question, compute a short
  answer, submit it with credentials
- a multi-turn verification dialogue tied together by correlation ids
"""

from .challenge_session import ChallengeSession
from .connector import GatewayConnector
from .interfaces import (
    Artifact,
    Challenge,
    ChallengeState,
    ConversationMessage,
    GatewayCredentials,
    IArtifactStorage,
    IChallengeSession,
    IVerificationSession,
    ParseError,
    PreparedAnswer,
    SessionStateError,
    SubmissionOutcome,
    SubmissionStatus,
    VerificationState,
)
from .parsing import extract_question, find_question
from .verification_session import VerificationSession

__all__ = [
    "ChallengeSession",
    "GatewayConnector",
    "Artifact",
    "Challenge",
    "ChallengeState",
    "ConversationMessage",
    "GatewayCredentials",
    "IArtifactStorage",
    "IChallengeSession",
    "IVerificationSession",
    "ParseError",
    "PreparedAnswer",
    "SessionStateError",
    "SubmissionOutcome",
    "SubmissionStatus",
    "VerificationState",
    "extract_question",
    "find_question",
    "VerificationSession",
]

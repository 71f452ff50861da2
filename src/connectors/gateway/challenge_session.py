"""Single-shot challenge session.

Drives the login-style flow against the gateway:

    IDLE -> CHALLENGE_FETCHED -> ANSWER_READY -> SUBMITTED

The challenge is fetched through a ``RefreshScheduler`` that also polls the
gateway once per window, so the stored challenge can be replaced at any
time. A replacement never rolls back ANSWER_READY or SUBMITTED: a prepared
answer keeps the snapshot of the challenge it was computed for.
"""

import time
from typing import Any, Callable, Dict, Optional, Set

from src.config.logger import logger
from src.config.settings import DEFAULT_SUCCESS_MARKER
from src.providers import AnswerKind, AnswerRequest, ILLMProvider, ProtocolError, build_answer_messages
from src.scheduler import FIXED_WINDOW_SECONDS, TICK_INTERVAL_SECONDS, RefreshScheduler
from src.transport import ITransport, OutboundRequest
from .artifacts import InMemoryArtifactStorage
from .interfaces import (
    Artifact,
    Challenge,
    ChallengeState,
    GatewayCredentials,
    IArtifactStorage,
    IChallengeSession,
    PreparedAnswer,
    SessionStateError,
    SubmissionOutcome,
    SubmissionStatus,
)
from .parsing import extract_question


class ChallengeSession(IChallengeSession):
    """State machine for the fetch → answer → submit challenge flow."""

    CHALLENGE_PATH = "/challenge"
    SUBMIT_PATH = "/challenge/submit"
    ARTIFACT_NAME = "firmware.html"

    def __init__(
        self,
        transport: ITransport,
        provider: ILLMProvider,
        credentials: GatewayCredentials,
        base_url: str = "http://localhost:3000",
        success_marker: str = DEFAULT_SUCCESS_MARKER,
        artifact_storage: Optional[IArtifactStorage] = None,
        window: float = FIXED_WINDOW_SECONDS,
        tick_interval: float = TICK_INTERVAL_SECONDS,
        single_flight: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the session.

        Args:
            transport: Transport for every gateway call.
            provider: Provider computing the short answers.
            credentials: Identity and secret submitted with the answer.
            base_url: Base URL of the gateway proxy.
            success_marker: Substring identifying a successful submission.
            artifact_storage: Where the downloadable artifact is stored.
                Defaults to in-memory storage.
            window: Challenge lifetime and refresh period in seconds.
            tick_interval: Countdown observation period in seconds.
            single_flight: Share one in-flight refresh between callers.
            clock: Monotonic clock, shared with the scheduler.
        """
        self.transport = transport
        self.provider = provider
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.success_marker = success_marker
        self.artifact_storage = artifact_storage or InMemoryArtifactStorage()
        self._clock = clock

        self.scheduler: RefreshScheduler[Challenge] = RefreshScheduler(
            self._fetch,
            window=window,
            tick_interval=tick_interval,
            single_flight=single_flight,
            clock=clock
        )

        self.state = ChallengeState.IDLE
        self.challenge: Optional[Challenge] = None
        self.answer: Optional[PreparedAnswer] = None
        self.outcome: Optional[SubmissionOutcome] = None
        self.artifact_location: Optional[str] = None
        self.error: Optional[str] = None

        self.logger = logger.bind(session="challenge")

    def _require_state(self, step: str, allowed: Set[ChallengeState]) -> None:
        if self.state not in allowed:
            raise SessionStateError(
                f"Cannot {step} in state {self.state.value}"
            )

    def _fail(self, step: str, error: Exception) -> None:
        """Record a user-visible error; the state is left untouched."""
        self.error = f"Failed to {step}: {error}"
        self.logger.error(
            "challenge_step_failed",
            step=step,
            state=self.state.value,
            error=str(error),
            exc_info=not isinstance(error, SessionStateError)
        )

    async def _fetch(self) -> Challenge:
        """Fetch and parse a challenge; used by both the scheduler and callers."""
        response = await self.transport.send(OutboundRequest(
            method="GET",
            url=f"{self.base_url}{self.CHALLENGE_PATH}"
        ))
        body = response.text()

        question = extract_question(body)
        if not question:
            raise ProtocolError("Challenge response body is empty")

        challenge = Challenge(text=question, obtained_at=self._clock(), raw=body)

        # Last writer wins: overlapping fetches may finish out of order
        self.challenge = challenge
        if self.state == ChallengeState.IDLE:
            self.state = ChallengeState.CHALLENGE_FETCHED

        self.logger.info("challenge_fetched", question=question, state=self.state.value)
        return challenge

    async def fetch_challenge(self) -> Challenge:
        """Fetch a fresh challenge and reset the expiry countdown.

        Raises:
            TransportError: If the gateway cannot be reached.
            ProtocolError: If the response holds no text at all.
        """
        try:
            challenge = await self.scheduler.refresh_now()
        except Exception as e:
            self._fail("fetch challenge", e)
            raise
        self.error = None
        return challenge

    async def request_answer(self) -> PreparedAnswer:
        """Ask the provider for a minimal answer to the current challenge.

        Raises:
            SessionStateError: If no challenge has been fetched, or the
                session was already submitted.
            UnsupportedCapability: If the provider cannot generate text.
            TransportError: If the provider call fails.
            ProtocolError: If the provider returns an empty answer.
        """
        try:
            self._require_state(
                "request an answer",
                {ChallengeState.CHALLENGE_FETCHED, ChallengeState.ANSWER_READY}
            )
            challenge = self.challenge
            request = AnswerRequest(kind=AnswerKind.SHORT_ANSWER, prompt=challenge.text)
            completion = await self.provider.generate_text(build_answer_messages(request))
            text = completion.strip()
            if not text:
                raise ProtocolError("Provider returned an empty answer")
        except Exception as e:
            self._fail("get answer", e)
            raise

        self.answer = PreparedAnswer(challenge=challenge, text=text)
        self.state = ChallengeState.ANSWER_READY
        self.error = None
        self.logger.info("answer_ready", question=challenge.text, answer=text)
        return self.answer

    async def submit(self) -> SubmissionOutcome:
        """Submit the credentials with the prepared answer.

        A response without the success marker is a FAILED outcome, not an
        exception. After submitting, the operator must ``reset()`` to start
        over.

        Raises:
            SessionStateError: If no answer is ready.
            TransportError: If the gateway cannot be reached.
        """
        try:
            self._require_state("submit", {ChallengeState.ANSWER_READY})
            answer = self.answer

            age = self._clock() - answer.challenge.obtained_at
            if age > self.scheduler.window:
                self.logger.warning(
                    "submitting_expired_challenge",
                    age=round(age, 3),
                    window=self.scheduler.window
                )

            response = await self.transport.send(OutboundRequest(
                method="POST",
                url=f"{self.base_url}{self.SUBMIT_PATH}",
                form=(
                    ("identity", self.credentials.identity),
                    ("secret", self.credentials.secret),
                    ("answer", answer.text),
                )
            ))

            artifact = None
            if self.success_marker in response.text():
                artifact = Artifact(
                    name=self.ARTIFACT_NAME,
                    content=response.body,
                    content_type="text/html"
                )
                self.artifact_location = await self.artifact_storage.save(artifact)
        except Exception as e:
            self._fail("submit", e)
            raise

        if artifact is not None:
            outcome = SubmissionOutcome(
                status=SubmissionStatus.SUCCESS,
                message="Login successful",
                answer=answer,
                artifact=artifact
            )
            self.error = None
            self.logger.info("submission_succeeded", artifact=self.artifact_location)
        else:
            outcome = SubmissionOutcome(
                status=SubmissionStatus.FAILED,
                message="Login failed: Invalid response",
                answer=answer
            )
            self.error = outcome.message
            self.logger.warning("submission_failed", answer=answer.text)

        self.outcome = outcome
        self.state = ChallengeState.SUBMITTED
        return outcome

    async def load_artifact(self, name: Optional[str] = None) -> Optional[Artifact]:
        """Load a downloaded artifact from storage.

        Args:
            name: Artifact name, the one saved by a successful submission
                when omitted.

        Returns:
            The artifact, or None if nothing is stored under that name.
        """
        artifact = await self.artifact_storage.load(name or self.ARTIFACT_NAME)
        self.logger.debug("artifact_loaded", name=name or self.ARTIFACT_NAME, found=artifact is not None)
        return artifact

    async def login(self) -> SubmissionOutcome:
        """Run the whole sequence from a clean session: fetch, answer, submit."""
        self.reset()
        await self.fetch_challenge()
        await self.request_answer()
        return await self.submit()

    def reset(self) -> None:
        """Return to IDLE, discarding the answer and outcome."""
        self.state = ChallengeState.IDLE
        self.challenge = None
        self.answer = None
        self.outcome = None
        self.artifact_location = None
        self.error = None
        self.logger.info("challenge_session_reset")

    async def start(self, initial_fetch: bool = True) -> None:
        """Start the refresh scheduler, optionally fetching right away.

        A failed initial fetch is recorded in ``error`` and does not prevent
        the scheduler from running.
        """
        self.scheduler.start()
        if initial_fetch:
            try:
                await self.fetch_challenge()
            except Exception:
                self.logger.warning("initial_fetch_failed", error=self.error)

    async def close(self) -> None:
        """Cancel the scheduler's periodic tasks."""
        await self.scheduler.cancel()

    def status(self) -> Dict[str, Any]:
        """Snapshot of the session for reporting."""
        return {
            "state": self.state.value,
            "question": self.challenge.text if self.challenge else None,
            "answer": self.answer.text if self.answer else None,
            "answered_question": self.answer.challenge.text if self.answer else None,
            "time_remaining": round(self.scheduler.time_remaining(), 3),
            "countdown": self.scheduler.countdown,
            "refreshing": self.scheduler.running,
            "outcome": self.outcome.status.value if self.outcome else None,
            "artifact": self.artifact_location,
            "error": self.error,
        }

"""Gateway connector.

Wires one transport, one provider and one artifact store into the two
session state machines the gateway exposes.
"""

import time
from typing import Any, Callable, Dict, Optional

from src.config.logger import logger
from src.config.settings import Settings
from src.providers import ILLMProvider, ProviderChain, ProviderFactory
from src.transport import AiohttpTransport, ITransport, RetryPolicy
from .artifacts import FileArtifactStorage, InMemoryArtifactStorage
from .challenge_session import ChallengeSession
from .interfaces import GatewayCredentials, IArtifactStorage
from .verification_session import VerificationSession


class GatewayConnector:
    """Composition root for the challenge and verification flows.

    Every collaborator can be injected; anything omitted is built from
    ``settings``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[ITransport] = None,
        provider: Optional[ILLMProvider] = None,
        artifact_storage: Optional[IArtifactStorage] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or Settings()
        self.transport = transport or AiohttpTransport(
            policy=RetryPolicy(
                max_retries=self.settings.max_retries,
                delay=self.settings.retry_delay
            ),
            timeout=self.settings.request_timeout
        )
        self.provider = provider or self._create_default_provider()
        self.artifact_storage = artifact_storage or self._create_default_storage()

        self.challenge = ChallengeSession(
            transport=self.transport,
            provider=self.provider,
            credentials=GatewayCredentials(
                identity=self.settings.identity,
                secret=self.settings.secret
            ),
            base_url=self.settings.gateway_base_url,
            success_marker=self.settings.success_marker,
            artifact_storage=self.artifact_storage,
            window=self.settings.refresh_window,
            tick_interval=self.settings.tick_interval,
            single_flight=self.settings.single_flight,
            clock=clock
        )
        self.verification = VerificationSession(
            transport=self.transport,
            provider=self.provider,
            base_url=self.settings.gateway_base_url
        )

        self.logger = logger.bind(connector="gateway")

    def _create_default_provider(self) -> ProviderChain:
        """Build a chain holding the configured backend.

        The backend is the only member and is added unguarded, so every
        call reaches it and transport failures propagate unchanged.
        """
        backend = ProviderFactory.create(
            self.settings.llm_provider,
            self.transport,
            self.settings
        )
        return ProviderChain().add_provider(backend, guarded=False)

    def _create_default_storage(self) -> IArtifactStorage:
        if self.settings.artifact_dir:
            return FileArtifactStorage(self.settings.artifact_dir)
        return InMemoryArtifactStorage()

    async def start(self, initial_fetch: bool = True) -> None:
        """Start challenge refreshing."""
        self.logger.info("connector_starting", base_url=self.settings.gateway_base_url)
        await self.challenge.start(initial_fetch=initial_fetch)

    async def close(self) -> None:
        """Stop refreshing and release the transport."""
        await self.challenge.close()
        await self.transport.close()
        self.logger.info("connector_closed")

    async def __aenter__(self) -> "GatewayConnector":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def status(self) -> Dict[str, Any]:
        """Combined status of both sessions."""
        status: Dict[str, Any] = {
            "challenge": self.challenge.status(),
            "verification": self.verification.status(),
            "capabilities": sorted(c.value for c in self.provider.capabilities),
        }
        if isinstance(self.provider, ProviderChain):
            status["providers"] = self.provider.get_status()
        return status

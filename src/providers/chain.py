"""Chain of Responsibility over several provider backends.

``ProviderChain`` is itself a provider: its capabilities are the union of
its members' capabilities. A call walks the members that declare the
requested capability, in the order they were added. Members are guarded
by a circuit breaker unless added with ``guarded=False``; a failing or open
member passes the call on to the next one, and the last failure is raised
when no member succeeds.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import structlog

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpen
from .interfaces import (
    Capability,
    ChatMessage,
    ILLMProvider,
    LLMConfig,
    MediaBlob,
    UnsupportedCapability,
)

logger = structlog.get_logger()

ProviderCall = Callable[[ILLMProvider], Awaitable[str]]


class ProviderHandler:
    """A provider, optionally behind a circuit breaker, linked to the next handler."""

    def __init__(
        self,
        provider: ILLMProvider,
        circuit_breaker: Optional[CircuitBreaker] = None,
        next_handler: Optional['ProviderHandler'] = None
    ):
        self.provider = provider
        self.circuit_breaker = circuit_breaker
        self.next_handler = next_handler
        self.logger = logger.bind(provider=provider.name)

    async def handle(
        self,
        capability: Capability,
        call: ProviderCall,
        last_error: Optional[Exception] = None
    ) -> str:
        """Run ``call`` on this provider or pass it down the chain.

        Raises:
            Exception: The last member failure when no member succeeded.
            UnsupportedCapability: When no member declares ``capability``.
        """
        if not self.provider.supports(capability):
            self.logger.debug("provider_cannot_handle", capability=capability.value)
            return await self._pass_on(capability, call, last_error)

        try:
            self.logger.info("provider_attempt", capability=capability.value)
            if self.circuit_breaker is None:
                return await call(self.provider)
            return await self.circuit_breaker.call(call, self.provider)
        except CircuitBreakerOpen as e:
            self.logger.warning(
                "circuit_breaker_open",
                status=self.circuit_breaker.get_status()
            )
            last_error = e
        except Exception as e:
            self.logger.error("provider_call_failed", error=str(e))
            last_error = e

        return await self._pass_on(capability, call, last_error)

    async def _pass_on(
        self,
        capability: Capability,
        call: ProviderCall,
        last_error: Optional[Exception]
    ) -> str:
        if self.next_handler:
            return await self.next_handler.handle(capability, call, last_error)
        if last_error is not None:
            raise last_error
        raise UnsupportedCapability(self.provider.name, capability)

    def set_next(self, handler: 'ProviderHandler') -> 'ProviderHandler':
        self.next_handler = handler
        return handler

    def get_status(self) -> Dict[str, Any]:
        if self.circuit_breaker is None:
            return {"name": self.provider.name, "state": "unguarded"}
        return self.circuit_breaker.get_status()


class ProviderChain(ILLMProvider):
    """Composite provider with ordered fallback between backends."""

    name = "chain"

    def __init__(self):
        super().__init__(capabilities=())
        self._first_handler: Optional[ProviderHandler] = None
        self._handlers: List[ProviderHandler] = []
        self.logger = logger.bind(component="provider_chain")

    def add_provider(
        self,
        provider: ILLMProvider,
        circuit_breaker_config: Optional[CircuitBreakerConfig] = None,
        guarded: bool = True
    ) -> 'ProviderChain':
        """Append a backend to the chain.

        Args:
            provider: Backend to append.
            circuit_breaker_config: Breaker thresholds for this backend.
            guarded: Put the backend behind a circuit breaker. An unguarded
                backend is attempted on every call.

        Returns:
            Self for method chaining.
        """
        breaker = None
        if guarded:
            breaker = CircuitBreaker(
                name=provider.name,
                config=circuit_breaker_config or CircuitBreakerConfig()
            )
        handler = ProviderHandler(provider, breaker)

        if not self._first_handler:
            self._first_handler = handler
        else:
            self._handlers[-1].set_next(handler)

        self._handlers.append(handler)
        self._capabilities = self._capabilities | provider.capabilities

        self.logger.info(
            "provider_added_to_chain",
            provider=provider.name,
            capabilities=sorted(c.value for c in provider.capabilities),
            position=len(self._handlers),
            guarded=guarded
        )
        return self

    async def _dispatch(self, capability: Capability, call: ProviderCall) -> str:
        # require() already ran in the public method, so a capable member exists
        return await self._first_handler.handle(capability, call)

    async def _generate_text(
        self,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig]
    ) -> str:
        return await self._dispatch(
            Capability.TEXT,
            lambda provider: provider.generate_text(messages, config)
        )

    async def _transcribe_audio(self, audio: MediaBlob, config: Optional[LLMConfig]) -> str:
        return await self._dispatch(
            Capability.AUDIO,
            lambda provider: provider.transcribe_audio(audio, config)
        )

    async def _analyze_image(
        self,
        image: MediaBlob,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig]
    ) -> str:
        return await self._dispatch(
            Capability.IMAGE,
            lambda provider: provider.analyze_image(image, messages, config)
        )

    def get_status(self) -> List[Dict[str, Any]]:
        """Circuit breaker status of every member."""
        return [handler.get_status() for handler in self._handlers]

"""Provider factory.

Registry of provider backends by name, so the connector can build the
configured backend without importing concrete classes.
"""

from typing import Dict, Type

import structlog

from src.config.settings import Settings
from src.transport import ITransport
from .interfaces import Capability, ILLMProvider
from .openai import DEFAULT_CAPABILITIES, OpenAIProvider

logger = structlog.get_logger()


class ProviderFactory:
    """Factory and registry for provider backends."""

    _providers: Dict[str, Type[ILLMProvider]] = {
        "openai": OpenAIProvider,
    }

    @classmethod
    def register_provider(cls, name: str, provider_class: Type[ILLMProvider]) -> None:
        """Register a backend class under ``name``."""
        cls._providers[name] = provider_class
        logger.info("provider_registered", provider=name)

    @classmethod
    def available(cls) -> list:
        """Names of the registered backends."""
        return sorted(cls._providers)

    @classmethod
    def create(cls, name: str, transport: ITransport, settings: Settings) -> ILLMProvider:
        """Create the backend registered as ``name``.

        Registered classes must accept the same keyword arguments as
        ``OpenAIProvider``.

        Raises:
            ValueError: If no backend is registered under ``name``.
        """
        if name not in cls._providers:
            raise ValueError(
                f"Unknown provider: {name}. Available: {', '.join(cls.available())}"
            )

        capabilities = set(DEFAULT_CAPABILITIES)
        if settings.enable_vision:
            capabilities.add(Capability.IMAGE)

        provider = cls._providers[name](
            transport=transport,
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            capabilities=capabilities,
            text_model=settings.text_model,
            audio_model=settings.audio_model,
            vision_model=settings.vision_model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )

        logger.info(
            "provider_created",
            provider=name,
            capabilities=sorted(c.value for c in provider.capabilities)
        )
        return provider

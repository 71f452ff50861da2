"""Interfaces for language-model providers.

A provider declares at construction which capabilities it supports. The
public operations check that declaration before dispatching, so a request
for a missing capability fails with ``UnsupportedCapability`` without any
network call. Callers branch on capabilities, never on backend identity.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Sequence

from src.transport import TransportError


class Capability(Enum):
    """Operations a provider backend can offer."""
    TEXT = "text"    # generate_text
    AUDIO = "audio"  # transcribe_audio
    IMAGE = "image"  # analyze_image


class Role(Enum):
    """Chat message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """One entry of a chat conversation sent to a provider."""
    role: Role
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class LLMConfig:
    """Per-call model parameters."""
    model: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class MediaBlob:
    """Binary media (audio or image) passed to a provider."""
    data: bytes
    filename: str
    content_type: str


class UnsupportedCapability(Exception):
    """Raised when a provider is asked for a capability it does not declare."""

    def __init__(self, provider: str, capability: Capability):
        super().__init__(
            f"Provider '{provider}' does not support {capability.value} operations"
        )
        self.provider = provider
        self.capability = capability


class ProtocolError(Exception):
    """Raised when a remote party returns a response of unexpected shape."""
    pass


class ProviderResponseError(ProtocolError):
    """Raised when a model backend response cannot be interpreted."""
    pass


class ILLMProvider(ABC):
    """Base class for language-model providers.

    Subclasses implement the ``_generate_text``, ``_transcribe_audio`` and
    ``_analyze_image`` hooks for the capabilities they declare. The public
    methods gate on the declared capabilities and tag transport failures
    with the operation name.
    """

    name: str = "provider"

    def __init__(self, capabilities: Iterable[Capability]):
        self._capabilities: FrozenSet[Capability] = frozenset(capabilities)

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        return self._capabilities

    def supports(self, capability: Capability) -> bool:
        return capability in self._capabilities

    def require(self, capability: Capability) -> None:
        """Fail fast if ``capability`` is not declared.

        Raises:
            UnsupportedCapability: If the provider lacks the capability.
        """
        if not self.supports(capability):
            raise UnsupportedCapability(self.name, capability)

    async def generate_text(
        self,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig] = None
    ) -> str:
        """Produce one assistant completion for ``messages``.

        Message order is preserved; a leading system entry is the system
        instruction.
        """
        self.require(Capability.TEXT)
        try:
            return await self._generate_text(list(messages), config)
        except TransportError as e:
            e.operation = e.operation or "generate_text"
            raise

    async def transcribe_audio(
        self,
        audio: MediaBlob,
        config: Optional[LLMConfig] = None
    ) -> str:
        """Transcribe an audio blob to text."""
        self.require(Capability.AUDIO)
        try:
            return await self._transcribe_audio(audio, config)
        except TransportError as e:
            e.operation = e.operation or "transcribe_audio"
            raise

    async def analyze_image(
        self,
        image: MediaBlob,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig] = None
    ) -> str:
        """Describe an image following the instructions in ``messages``."""
        self.require(Capability.IMAGE)
        try:
            return await self._analyze_image(image, list(messages), config)
        except TransportError as e:
            e.operation = e.operation or "analyze_image"
            raise

    @abstractmethod
    async def _generate_text(
        self,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig]
    ) -> str:
        pass

    async def _transcribe_audio(self, audio: MediaBlob, config: Optional[LLMConfig]) -> str:
        raise UnsupportedCapability(self.name, Capability.AUDIO)

    async def _analyze_image(
        self,
        image: MediaBlob,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig]
    ) -> str:
        raise UnsupportedCapability(self.name, Capability.IMAGE)

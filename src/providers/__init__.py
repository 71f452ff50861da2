"""Language-model provider abstraction.

Providers declare the capabilities they support (text generation, audio
transcription, image analysis) and callers branch only on those
capabilities, never on which backend is behind them.

Main components:
- ILLMProvider: capability-gated base class for every backend
- OpenAIProvider: backend for OpenAI-compatible model proxies
- ProviderChain: ordered fallback between backends, each behind a CircuitBreaker
- ProviderFactory: registry of backends by name
- Prompt templates and AnswerRequest builders
"""

from .chain import ProviderChain, ProviderHandler
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpen, CircuitState
from .factory import ProviderFactory
from .interfaces import (
    Capability,
    ChatMessage,
    ILLMProvider,
    LLMConfig,
    MediaBlob,
    ProtocolError,
    ProviderResponseError,
    Role,
    UnsupportedCapability,
)
from .openai import OpenAIProvider
from .prompts import (
    ROBOT_VERIFICATION,
    SHORT_ANSWER,
    AnswerKind,
    AnswerRequest,
    PromptTemplate,
    build_answer_messages,
    create_llm_messages,
)

__all__ = [
    "ProviderChain",
    "ProviderHandler",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "ProviderFactory",
    "Capability",
    "ChatMessage",
    "ILLMProvider",
    "LLMConfig",
    "MediaBlob",
    "ProtocolError",
    "ProviderResponseError",
    "Role",
    "UnsupportedCapability",
    "OpenAIProvider",
    "ROBOT_VERIFICATION",
    "SHORT_ANSWER",
    "AnswerKind",
    "AnswerRequest",
    "PromptTemplate",
    "build_answer_messages",
    "create_llm_messages",
]

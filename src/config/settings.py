"""Runtime settings for the challenge engine.

Settings come from environment variables, optionally loaded from a ``.env``
file. Every value has a default so the engine can start against a local
proxy without any configuration.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_SUCCESS_MARKER = 'href="/files/0_13_4b.txt"'


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _get_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Engine configuration.

    Attributes:
        gateway_base_url: Base URL of the proxy in front of the challenge service.
        identity: Login identity submitted with the challenge answer.
        secret: Login secret submitted with the challenge answer.
        success_marker: Substring that marks a successful submission.
        llm_base_url: Base URL of the proxy in front of the model backend.
        llm_api_key: Credential sent to the model backend.
        llm_provider: Registered provider name used by the factory.
        text_model: Model used for text generation.
        audio_model: Model used for audio transcription.
        vision_model: Model used for image analysis.
        temperature: Optional sampling temperature.
        max_tokens: Optional completion token limit.
        enable_vision: Whether the provider declares the IMAGE capability.
        refresh_window: Challenge lifetime in seconds.
        tick_interval: Countdown observation period in seconds.
        single_flight: Share one in-flight refresh between concurrent callers.
        max_retries: Transport retries on transient failure.
        retry_delay: Seconds between transport attempts.
        request_timeout: Per-attempt timeout in seconds.
        artifact_dir: Directory for downloaded artifacts, in-memory if unset.
        log_level: structlog minimum level.
    """
    gateway_base_url: str = "http://localhost:3000"
    identity: str = ""
    secret: str = ""
    success_marker: str = DEFAULT_SUCCESS_MARKER
    llm_base_url: str = "http://localhost:3000"
    llm_api_key: str = ""
    llm_provider: str = "openai"
    text_model: str = "gpt-4o"
    audio_model: str = "whisper-1"
    vision_model: str = "gpt-4o"
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    enable_vision: bool = False
    refresh_window: float = 7.0
    tick_interval: float = 1.0
    single_flight: bool = False
    max_retries: int = 3
    retry_delay: float = 1.0
    request_timeout: float = 30.0
    artifact_dir: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from the environment.

        Args:
            dotenv_path: Optional explicit ``.env`` file. When omitted the
                usual ``.env`` lookup of python-dotenv is used.

        Raises:
            ValueError: If a numeric variable cannot be parsed.
        """
        load_dotenv(dotenv_path)

        temperature = os.getenv("LLM_TEMPERATURE")
        max_tokens = os.getenv("LLM_MAX_TOKENS")

        return cls(
            gateway_base_url=os.getenv("GATEWAY_BASE_URL", cls.gateway_base_url),
            identity=os.getenv("GATEWAY_IDENTITY", ""),
            secret=os.getenv("GATEWAY_SECRET", ""),
            success_marker=os.getenv("GATEWAY_SUCCESS_MARKER", DEFAULT_SUCCESS_MARKER),
            llm_base_url=os.getenv("LLM_BASE_URL", cls.llm_base_url),
            llm_api_key=os.getenv("LLM_API_KEY", ""),
            llm_provider=os.getenv("LLM_PROVIDER", cls.llm_provider),
            text_model=os.getenv("LLM_TEXT_MODEL", cls.text_model),
            audio_model=os.getenv("LLM_AUDIO_MODEL", cls.audio_model),
            vision_model=os.getenv("LLM_VISION_MODEL", cls.vision_model),
            temperature=_get_float("LLM_TEMPERATURE", 0.0) if temperature else None,
            max_tokens=_get_int("LLM_MAX_TOKENS", 0) if max_tokens else None,
            enable_vision=_get_bool("LLM_ENABLE_VISION", False),
            refresh_window=_get_float("REFRESH_WINDOW_SECONDS", cls.refresh_window),
            tick_interval=_get_float("REFRESH_TICK_SECONDS", cls.tick_interval),
            single_flight=_get_bool("REFRESH_SINGLE_FLIGHT", False),
            max_retries=_get_int("TRANSPORT_MAX_RETRIES", cls.max_retries),
            retry_delay=_get_float("TRANSPORT_RETRY_DELAY_SECONDS", cls.retry_delay),
            request_timeout=_get_float("TRANSPORT_TIMEOUT_SECONDS", cls.request_timeout),
            artifact_dir=os.getenv("ARTIFACT_DIR") or None,
            log_level=os.getenv("LOG_LEVEL", cls.log_level),
        )

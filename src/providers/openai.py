"""OpenAI-compatible provider speaking to the model proxy.

The proxy exposes three endpoints that mirror the OpenAI API:

- ``POST /llm/text``: chat completion, returns ``{choices: [{message: {content}}]}``
- ``POST /llm/transcribe``: multipart audio upload, returns ``{text}``
- ``POST /llm/image-analyze``: chat completion with an embedded base64 image

All calls go through the injected transport, so retries and failure
classification are handled there.
"""

import base64
from typing import Any, Dict, Iterable, List, Optional, Sequence

from src.config.logger import logger
from src.transport import ITransport, MultipartField, OutboundRequest, TransportResponse
from .interfaces import (
    Capability,
    ChatMessage,
    ILLMProvider,
    LLMConfig,
    MediaBlob,
    ProviderResponseError,
    Role,
)

DEFAULT_CAPABILITIES = frozenset({Capability.TEXT, Capability.AUDIO})


class OpenAIProvider(ILLMProvider):
    """Provider for OpenAI-compatible chat, transcription and vision models."""

    name = "openai"

    TEXT_PATH = "/llm/text"
    TRANSCRIBE_PATH = "/llm/transcribe"
    IMAGE_PATH = "/llm/image-analyze"

    def __init__(
        self,
        transport: ITransport,
        api_key: str,
        base_url: str = "http://localhost:3000",
        capabilities: Optional[Iterable[Capability]] = None,
        text_model: str = "gpt-4o",
        audio_model: str = "whisper-1",
        vision_model: str = "gpt-4o",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        """Initialize the provider.

        Args:
            transport: Transport used for every call.
            api_key: Credential sent as a bearer token.
            base_url: Base URL of the model proxy.
            capabilities: Declared capabilities. Defaults to TEXT and AUDIO;
                IMAGE must be requested explicitly.
            text_model: Default model for text generation.
            audio_model: Default model for transcription.
            vision_model: Default model for image analysis.
            temperature: Default sampling temperature.
            max_tokens: Default completion token limit.
        """
        super().__init__(capabilities if capabilities is not None else DEFAULT_CAPABILITIES)
        self.transport = transport
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.text_config = LLMConfig(text_model, temperature, max_tokens)
        self.audio_config = LLMConfig(audio_model)
        self.vision_config = LLMConfig(vision_model, temperature, max_tokens)
        self.logger = logger.bind(provider=self.name)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _completion_body(messages: List[Dict[str, Any]], config: LLMConfig) -> Dict[str, Any]:
        body: Dict[str, Any] = {"messages": messages, "model": config.model}
        if config.temperature is not None:
            body["temperature"] = config.temperature
        if config.max_tokens is not None:
            body["maxTokens"] = config.max_tokens
        return body

    @staticmethod
    def _decode_json(response: TransportResponse, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ProviderResponseError(f"{operation}: response is not JSON") from e

    def _completion_content(self, response: TransportResponse, operation: str) -> str:
        data = self._decode_json(response, operation)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(
                f"{operation}: response has no choices[0].message.content"
            ) from e
        if not isinstance(content, str):
            raise ProviderResponseError(f"{operation}: completion content is not text")
        return content

    async def _generate_text(
        self,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig]
    ) -> str:
        config = config or self.text_config
        self.logger.debug("generate_text_request", model=config.model, messages=len(messages))

        response = await self.transport.send(OutboundRequest(
            method="POST",
            url=self._url(self.TEXT_PATH),
            headers=self._headers(),
            json=self._completion_body([m.to_dict() for m in messages], config)
        ))
        return self._completion_content(response, "generate_text")

    async def _transcribe_audio(self, audio: MediaBlob, config: Optional[LLMConfig]) -> str:
        config = config or self.audio_config
        self.logger.debug(
            "transcribe_audio_request",
            model=config.model,
            filename=audio.filename,
            size=len(audio.data)
        )

        response = await self.transport.send(OutboundRequest(
            method="POST",
            url=self._url(self.TRANSCRIBE_PATH),
            headers=self._headers(),
            multipart=(
                MultipartField("file", audio.data, filename=audio.filename, content_type=audio.content_type),
                MultipartField("model", config.model),
            )
        ))

        data = self._decode_json(response, "transcribe_audio")
        if not isinstance(data, dict) or not isinstance(data.get("text"), str):
            raise ProviderResponseError("transcribe_audio: response has no text field")
        return data["text"]

    async def _analyze_image(
        self,
        image: MediaBlob,
        messages: Sequence[ChatMessage],
        config: Optional[LLMConfig]
    ) -> str:
        config = config or self.vision_config
        self.logger.debug(
            "analyze_image_request",
            model=config.model,
            filename=image.filename,
            size=len(image.data)
        )

        response = await self.transport.send(OutboundRequest(
            method="POST",
            url=self._url(self.IMAGE_PATH),
            headers=self._headers(),
            json=self._completion_body(self._embed_image(image, messages), config)
        ))
        return self._completion_content(response, "analyze_image")

    @staticmethod
    def _embed_image(image: MediaBlob, messages: Sequence[ChatMessage]) -> List[Dict[str, Any]]:
        """Attach the image as a data URL to the last user message.

        Without a user message the image is sent in a new one appended at the
        end.
        """
        encoded = base64.b64encode(image.data).decode("ascii")
        image_part = {
            "type": "image_url",
            "image_url": {"url": f"data:{image.content_type};base64,{encoded}"}
        }

        payload = [m.to_dict() for m in messages]
        for entry in reversed(payload):
            if entry["role"] == Role.USER.value:
                entry["content"] = [{"type": "text", "text": entry["content"]}, image_part]
                return payload

        payload.append({"role": Role.USER.value, "content": [image_part]})
        return payload

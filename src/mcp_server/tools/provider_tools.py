"""Media tools backed by the configured model provider.

Audio transcription and image analysis are capability-gated: a provider
that does not declare the capability reports it without any network call.
"""

import mimetypes
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from src.config.logger import logger
from src.providers import Capability, ChatMessage, MediaBlob, Role, UnsupportedCapability
from . import gateway_tools


def _load_media(path: str, default_type: str) -> MediaBlob:
    file_path = Path(path)
    content_type = mimetypes.guess_type(file_path.name)[0] or default_type
    return MediaBlob(data=file_path.read_bytes(), filename=file_path.name, content_type=content_type)


def _unsupported(error: UnsupportedCapability) -> Dict[str, Any]:
    logger.warning(
        "capability_not_supported",
        provider=error.provider,
        capability=error.capability.value
    )
    return {
        "success": False,
        "status": "unsupported",
        "message": str(error),
        "timestamp": datetime.now().isoformat()
    }


async def transcribe_audio_file(path: str) -> Dict[str, Any]:
    """Transcribe an audio file with the configured provider.

    Args:
        path: Path to the audio file (mp3, wav, m4a, ...)

    Returns:
        Dictionary with the transcribed text
    """
    try:
        connector = await gateway_tools._get_connector()
        connector.provider.require(Capability.AUDIO)
        audio = _load_media(path, "audio/mpeg")
        text = await connector.provider.transcribe_audio(audio)
        logger.info("audio_transcribed", filename=audio.filename, length=len(text))
        return {
            "success": True,
            "message": "Audio transcribed",
            "text": text,
            "timestamp": datetime.now().isoformat()
        }
    except UnsupportedCapability as e:
        return _unsupported(e)
    except Exception as e:
        logger.error("transcribe_audio_file_error", path=path, error=str(e), exc_info=True)
        return {
            "success": False,
            "status": "error",
            "message": f"Error transcribing audio: {str(e)}",
            "timestamp": datetime.now().isoformat()
        }


async def analyze_image_file(path: str, prompt: str = "Describe this image.") -> Dict[str, Any]:
    """Ask the configured provider about an image.

    Args:
        path: Path to the image file (png, jpeg, ...)
        prompt: Question to ask about the image

    Returns:
        Dictionary with the model's answer
    """
    try:
        connector = await gateway_tools._get_connector()
        connector.provider.require(Capability.IMAGE)
        image = _load_media(path, "image/png")
        text = await connector.provider.analyze_image(
            image,
            [ChatMessage(role=Role.USER, content=prompt)]
        )
        logger.info("image_analyzed", filename=image.filename, length=len(text))
        return {
            "success": True,
            "message": "Image analyzed",
            "text": text,
            "timestamp": datetime.now().isoformat()
        }
    except UnsupportedCapability as e:
        return _unsupported(e)
    except Exception as e:
        logger.error("analyze_image_file_error", path=path, error=str(e), exc_info=True)
        return {
            "success": False,
            "status": "error",
            "message": f"Error analyzing image: {str(e)}",
            "timestamp": datetime.now().isoformat()
        }


PROVIDER_TOOLS = (transcribe_audio_file, analyze_image_file)


def register_provider_tools(mcp: FastMCP) -> None:
    """Register the media tools with the MCP server."""
    for tool in PROVIDER_TOOLS:
        mcp.tool()(tool)
    logger.info("provider_tools_registered", count=len(PROVIDER_TOOLS))

"""Gateway tools for the MCP server.

Exposes every operator step of the challenge and verification flows as an
MCP tool. Each tool returns a dictionary with ``success``, ``message`` and
``timestamp`` plus step-specific fields; failures are reported in the
result rather than raised to the MCP client.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from src.config.logger import logger
from src.config.settings import Settings
from src.connectors.gateway import GatewayConnector, SessionStateError

_connector_instance: Optional[GatewayConnector] = None
_connector_lock = asyncio.Lock()
_settings: Optional[Settings] = None


def configure(settings: Settings) -> None:
    """Set the settings used when the connector is first created."""
    global _settings
    _settings = settings


async def _get_connector() -> GatewayConnector:
    """Get or create the singleton gateway connector.

    The connector is started on creation, so challenge refreshing begins
    with the first tool call. Concurrent first calls share one connector.
    """
    global _connector_instance

    if _connector_instance is not None:
        return _connector_instance

    async with _connector_lock:
        if _connector_instance is None:
            connector = GatewayConnector(_settings or Settings.from_env())
            try:
                await connector.start()
            except BaseException:
                await connector.close()
                raise
            _connector_instance = connector
            logger.info("gateway_connector_created")

    return _connector_instance


async def shutdown() -> None:
    """Stop the singleton connector's refreshing and close its transport."""
    global _connector_instance
    async with _connector_lock:
        if _connector_instance is not None:
            await _connector_instance.close()
            _connector_instance = None
            logger.info("gateway_connector_shutdown")


def _result(success: bool, message: str, **fields: Any) -> Dict[str, Any]:
    return {
        "success": success,
        "message": message,
        **fields,
        "timestamp": datetime.now().isoformat()
    }


def _error(tool: str, action: str, error: Exception, **fields: Any) -> Dict[str, Any]:
    if isinstance(error, SessionStateError):
        logger.warning(f"{tool}_invalid_state", error=str(error))
        return _result(False, str(error), status="invalid_state", **fields)

    logger.error(f"{tool}_error", error=str(error), exc_info=True)
    return _result(False, f"Error {action}: {error}", status="error", **fields)


async def challenge_fetch() -> Dict[str, Any]:
    """Fetch a fresh challenge question from the gateway.

    Returns:
        Dictionary with the question and the seconds left before it expires
    """
    try:
        connector = await _get_connector()
        challenge = await connector.challenge.fetch_challenge()
        return _result(
            True,
            "Challenge fetched",
            question=challenge.text,
            time_remaining=round(connector.challenge.scheduler.time_remaining(), 3)
        )
    except Exception as e:
        return _error("challenge_fetch", "fetching challenge", e)


async def challenge_answer() -> Dict[str, Any]:
    """Compute a short answer to the current challenge question.

    Returns:
        Dictionary with the question and the prepared answer
    """
    try:
        connector = await _get_connector()
        answer = await connector.challenge.request_answer()
        return _result(
            True,
            "Answer ready",
            question=answer.challenge.text,
            answer=answer.text
        )
    except Exception as e:
        return _error("challenge_answer", "getting answer", e)


async def challenge_submit() -> Dict[str, Any]:
    """Submit the configured credentials with the prepared answer.

    Returns:
        Dictionary with the submission status and, on success, where the
        downloaded artifact was stored
    """
    try:
        connector = await _get_connector()
        outcome = await connector.challenge.submit()
        result = _result(
            outcome.succeeded,
            outcome.message,
            status=outcome.status.value,
            answer=outcome.answer.text
        )
        if outcome.artifact is not None:
            result["artifact"] = {
                "name": outcome.artifact.name,
                "location": connector.challenge.artifact_location,
                "size": len(outcome.artifact.content)
            }
        logger.info("challenge_submit_result", status=outcome.status.value)
        return result
    except Exception as e:
        return _error("challenge_submit", "submitting answer", e)


async def challenge_login() -> Dict[str, Any]:
    """Run the whole challenge flow: fetch, answer and submit.

    Returns:
        Dictionary with the submission status
    """
    try:
        connector = await _get_connector()
        outcome = await connector.challenge.login()
        return _result(
            outcome.succeeded,
            outcome.message,
            status=outcome.status.value,
            question=outcome.answer.challenge.text,
            answer=outcome.answer.text,
            artifact=connector.challenge.artifact_location
        )
    except Exception as e:
        return _error("challenge_login", "during login", e)


async def challenge_artifact(name: Optional[str] = None) -> Dict[str, Any]:
    """Read the artifact downloaded by a successful submission.

    Args:
        name: Artifact name, defaults to the firmware page saved on success

    Returns:
        Dictionary with the artifact content as text, its content type and size
    """
    try:
        connector = await _get_connector()
        artifact = await connector.challenge.load_artifact(name)
        if artifact is None:
            return _result(False, "No artifact stored", status="not_found")
        return _result(
            True,
            "Artifact loaded",
            name=artifact.name,
            content_type=artifact.content_type,
            size=len(artifact.content),
            created_at=artifact.created_at.isoformat(),
            content=artifact.content.decode("utf-8", errors="replace")
        )
    except Exception as e:
        return _error("challenge_artifact", "loading artifact", e)


async def challenge_reset() -> Dict[str, Any]:
    """Discard the current answer and outcome and return to idle."""
    try:
        connector = await _get_connector()
        connector.challenge.reset()
        return _result(True, "Challenge session reset", state=connector.challenge.state.value)
    except Exception as e:
        return _error("challenge_reset", "resetting session", e)


async def challenge_status() -> Dict[str, Any]:
    """Report the challenge session state and expiry countdown."""
    try:
        connector = await _get_connector()
        return _result(True, "Challenge session status", **connector.challenge.status())
    except Exception as e:
        return _error("challenge_status", "getting status", e)


async def verification_start() -> Dict[str, Any]:
    """Start a new verification dialogue.

    Returns:
        Dictionary with the gateway's first message and its correlation id
    """
    try:
        connector = await _get_connector()
        message = await connector.verification.start()
        return _result(
            True,
            "Verification started",
            text=message.text,
            correlation_id=message.correlation_id
        )
    except Exception as e:
        return _error("verification_start", "starting verification", e)


async def verification_generate_reply() -> Dict[str, Any]:
    """Compute a reply to the pending verification message."""
    try:
        connector = await _get_connector()
        reply = await connector.verification.generate_reply()
        return _result(
            True,
            "Reply ready",
            reply=reply,
            correlation_id=connector.verification.pending.correlation_id
        )
    except Exception as e:
        return _error("verification_generate_reply", "generating reply", e)


async def verification_send_reply() -> Dict[str, Any]:
    """Send the prepared reply and return the gateway's next message."""
    try:
        connector = await _get_connector()
        message = await connector.verification.send_reply()
        return _result(
            True,
            "Reply sent",
            text=message.text,
            correlation_id=message.correlation_id
        )
    except Exception as e:
        return _error("verification_send_reply", "sending reply", e)


async def verification_stop() -> Dict[str, Any]:
    """End the verification dialogue, keeping its transcript."""
    try:
        connector = await _get_connector()
        connector.verification.stop()
        return _result(
            True,
            "Verification stopped",
            transcript=[m.to_wire() for m in connector.verification.transcript]
        )
    except Exception as e:
        return _error("verification_stop", "stopping verification", e)


async def verification_status() -> Dict[str, Any]:
    """Report the verification state, pending message and transcript."""
    try:
        connector = await _get_connector()
        return _result(True, "Verification session status", **connector.verification.status())
    except Exception as e:
        return _error("verification_status", "getting status", e)


GATEWAY_TOOLS = (
    challenge_fetch,
    challenge_answer,
    challenge_submit,
    challenge_login,
    challenge_artifact,
    challenge_reset,
    challenge_status,
    verification_start,
    verification_generate_reply,
    verification_send_reply,
    verification_stop,
    verification_status,
)


def register_gateway_tools(mcp: FastMCP) -> None:
    """Register the gateway tools with the MCP server."""
    for tool in GATEWAY_TOOLS:
        mcp.tool()(tool)
    logger.info("gateway_tools_registered", count=len(GATEWAY_TOOLS))

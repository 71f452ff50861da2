"""MCP server exposing the challenge gateway as tools.

The server speaks the Model Context Protocol over stdio through FastMCP.
Tools are grouped by concern:
- gateway_tools: challenge and verification flows
- provider_tools: audio transcription and image analysis
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP

from src.config.logger import logger
from src.config.settings import Settings
from .tools import gateway_tools
from .tools.provider_tools import register_provider_tools

SERVER_NAME = "challenge-gateway"


@asynccontextmanager
async def gateway_lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Shut the gateway connector down when the server stops.

    Cancels the challenge refresh tasks and closes the HTTP session of the
    connector created by the first tool call, if any.
    """
    try:
        yield
    finally:
        await gateway_tools.shutdown()
        logger.info("mcp_server_lifespan_ended", name=SERVER_NAME)


def create_server(settings: Optional[Settings] = None) -> FastMCP:
    """Create the MCP server with every tool registered.

    Args:
        settings: Settings for the gateway connector, created lazily on the
            first tool call. Read from the environment when omitted.
    """
    if settings is not None:
        gateway_tools.configure(settings)

    mcp = FastMCP(SERVER_NAME, lifespan=gateway_lifespan)
    gateway_tools.register_gateway_tools(mcp)
    register_provider_tools(mcp)

    logger.info("mcp_server_created", name=SERVER_NAME)
    return mcp

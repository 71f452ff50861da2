"""
Challenge gateway engine - Main entry point

Runs the MCP server over stdio so an LLM client can drive the challenge
and verification flows step by step.
"""
from src.config.logger import configure_logging, logger
from src.config.settings import Settings
from src.mcp_server.server import create_server


def run():
    """Entry point for the gateway-engine console script"""
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    mcp = create_server(settings)

    logger.info("mcp_server_starting", gateway=settings.gateway_base_url)
    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("mcp_server_stopped")


if __name__ == "__main__":
    run()

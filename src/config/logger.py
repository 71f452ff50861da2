"""Logger configuration for the challenge engine.

The engine is usually driven through an MCP server that talks JSON-RPC over
stdio, so every log line goes to stderr and is rendered as JSON. Anything
written to stdout would corrupt the protocol stream.
"""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog for stdio-safe JSON output.

    Args:
        level: Minimum log level name (DEBUG, INFO, WARNING, ERROR).
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    # Standard logging (aiohttp, mcp) also goes to stderr
    logging.basicConfig(
        stream=sys.stderr,
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# Configure logging when module is imported
configure_logging()

# Export configured logger
logger = structlog.get_logger()

"""Logging configuration for org-attach."""

import sys

from loguru import logger


def configure_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure loguru for the CLI and the MCP server.

    All output goes to stderr; the MCP stdio transport owns stdout.
    """
    logger.remove()
    if quiet:
        level = "WARNING"
    elif verbose:
        level = "DEBUG"
    else:
        level = "INFO"
    fmt = "{level.icon} {name}: {message}" if verbose else "{level.icon} {message}"
    logger.add(sys.stderr, level=level, format=fmt)

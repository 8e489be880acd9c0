"""Logging configuration for the hypertree CLI and MCP server."""

import sys
from typing import TextIO

from loguru import logger


def configure_logging(*, verbose: bool = False, sink: TextIO | None = None) -> None:
    """Route loguru output to ``sink`` (stderr by default).

    The MCP server speaks over stdout, so nothing may ever log there.
    """
    logger.remove()
    level = "DEBUG" if verbose else "INFO"
    logger.add(sink or sys.stderr, level=level, format="{level.icon} {name}: {message}")

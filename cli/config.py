"""Configuration for the CLI client."""

import logging
import os
import sys
from pathlib import Path

import structlog

# Configuration
API_URL = os.getenv("LIVENOTES_API_URL", "http://localhost:8000")
REQUEST_TIMEOUT = float(os.getenv("LIVENOTES_REQUEST_TIMEOUT", "10.0"))
LOG_LEVEL = os.getenv("LIVENOTES_LOG_LEVEL", "WARNING").upper()
TOKEN_FILE = Path.home() / ".livenotes" / "token"


def configure_logging(level: str = LOG_LEVEL):
    """Send structlog output to stderr, filtered so it stays out of the prompt's way."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level, logging.WARNING),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

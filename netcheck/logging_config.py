"""Logging configuration for netcheck."""

import logging
import os
import sys

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_level(name: str | None) -> int:
    """Map a level name to a logging constant, defaulting to INFO."""
    return LOG_LEVELS.get((name or "").strip().upper(), logging.INFO)


def configure_logging(level: str | None = None) -> None:
    """Configure application-wide logging.

    Logs to stderr with timestamp, level, module name, and message. The
    level comes from ``level`` when given, else from NETCHECK_LOG_LEVEL
    (default: INFO).

    Examples:
        # Debug level for troubleshooting probe dispatch
        $ NETCHECK_LOG_LEVEL=DEBUG python -m netcheck trace 8.8.8.8
    """
    if level is None:
        level = os.environ.get("NETCHECK_LOG_LEVEL", "INFO")
    log_level = resolve_level(level)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,  # Override any existing configuration
    )

    # Per-request connection chatter from the geolocation client
    logging.getLogger("urllib3").setLevel(max(log_level, logging.WARNING))

    logger = logging.getLogger(__name__)
    logger.info("Logging configured: level=%s", logging.getLevelName(log_level))

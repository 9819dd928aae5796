"""Shared logging configuration for mesh nodes.

Provides a consistent logging setup for every node process.
"""

import logging
import sys
from typing import Iterable, Optional

# Chatty transport loggers that drown out lifecycle messages at DEBUG level
_DEFAULT_QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(
    debug: bool = False,
    level: Optional[int] = None,
    format_string: Optional[str] = None,
    date_format: Optional[str] = None,
    quiet_loggers: Iterable[str] = _DEFAULT_QUIET_LOGGERS,
) -> None:
    """Configure logging for the node process.

    Logs go to stdout so container runtimes can capture them. Transport
    libraries listed in ``quiet_loggers`` are held at WARNING so that the
    subscription lifecycle stays readable when ``debug`` is on.

    Args:
        debug: If True, sets log level to DEBUG, otherwise INFO
        level: Optional explicit log level (overrides debug parameter)
        format_string: Optional custom format string for log messages
        date_format: Optional custom date format string
        quiet_loggers: Logger names to cap at WARNING

    Example:
        >>> setup_logging(debug=True)
        >>> logger = logging.getLogger(__name__)
        >>> logger.debug("Subscription is already registered")
    """
    log_level = level if level is not None else (logging.DEBUG if debug else logging.INFO)
    log_format = format_string or "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_date_format = date_format or "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt=log_date_format,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
        force=True,  # Override any existing configuration
    )

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

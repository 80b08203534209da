"""Logging setup for crawler processes.

Log records go to stderr so that ``-o json`` output on stdout stays
machine-readable. Library loggers that log every request are held at
WARNING unless the crawler itself runs at DEBUG.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Per-request chatter from the HTTP and browser stacks
QUIET_LOGGERS = ('httpx', 'httpcore', 'asyncio', 'playwright')


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: str = DEFAULT_FORMAT,
) -> None:
    """Configure the root logger for a crawl run.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Also append records to this file, creating its directory
        format_string: Record format for every handler
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(level=numeric_level, format=format_string, handlers=handlers, force=True)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def logging_from_config(config) -> None:
    """Apply the log level and file of a Config."""
    setup_logging(level=config.log_level, log_file=config.log_file)

"""
Structured logging for the book records service using structlog.

Events go through structlog's processor chain and are handed to stdlib
logging, so uvicorn's own records and ours share stdout and the optional
log file.
"""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from structlog.stdlib import LoggerFactory

# Name given to the file handler we install, so a restart replaces it
FILE_HANDLER_NAME = "books_api.file"


def _build_processors(log_format: str, debug: bool) -> List:
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def _install_file_handler(log_file: Path, level: int) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == FILE_HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()

    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_file)
    file_handler.set_name(FILE_HANDLER_NAME)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(file_handler)


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Path] = None,
    debug: bool = False
) -> None:
    """
    Configure stdlib logging and structlog for the service process.

    Safe to call again when the application restarts in the same process.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path, written in addition to stdout
        debug: Add call-site information to every event
    """
    level = logging.getLevelName(log_level.upper())

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=_build_processors(log_format, debug),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        _install_file_handler(Path(log_file), level)

    structlog.get_logger(__name__).info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
    )

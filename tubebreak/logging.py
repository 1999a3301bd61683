"""Logging utilities shared by the CLI, the web surface and the tick loop."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import structlog


_DEFAULT_PROCESSORS = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]

_NOISY_LOGGERS = ("requests", "urllib3", "apscheduler")


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """Initialise structlog on top of stdlib logging.

    Parameters
    ----------
    level:
        Textual logging level (e.g. ``"DEBUG"``). Defaults to ``"INFO"``.
    json_output:
        Emit JSON lines instead of the coloured console renderer.
    log_file:
        Optional path that receives a copy of every record.
    """

    handlers = [logging.StreamHandler()]

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(level=level.upper(), format="%(message)s", handlers=handlers, force=True)

    processors = list(_DEFAULT_PROCESSORS)
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # HTTP and scheduler internals only matter when debugging.
    quiet_level = logging.INFO if level.upper() == "DEBUG" else logging.WARNING
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""

    return structlog.get_logger(name)

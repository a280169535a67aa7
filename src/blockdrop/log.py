"""Logging setup for blockdrop commands."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from blockdrop.config.models import LoggingSettings

LOGGER_NAME = "blockdrop"


def configure_logging(
    settings: LoggingSettings | None = None,
    *,
    verbose: bool = False,
    console: Console | None = None,
) -> logging.Logger:
    """Attach console and optional file handlers to the ``blockdrop`` logger.

    Args:
        settings: Logging section of the configuration; defaults apply when omitted.
        verbose: Force DEBUG level regardless of the configured level.
        console: Rich console to render records on (stderr by default).

    Returns:
        logging.Logger: The configured package logger.
    """
    settings = settings or LoggingSettings()
    level = logging.DEBUG if verbose else logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Repeated CLI invocations in one process must not stack handlers.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(level)
    logger.addHandler(rich_handler)

    if settings.file:
        log_path = Path(settings.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
            backupCount=max(0, settings.backup_count),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


__all__ = ["LOGGER_NAME", "configure_logging"]

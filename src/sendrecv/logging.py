"""Logging configuration for sendrecv.

The package logger and the media stack loggers (aiortc, aioice) share one
set of handlers. The media stack is chatty, so it stays at WARNING unless
verbose output was asked for.
"""

import logging
from pathlib import Path

from sendrecv.config import Config

PACKAGE_LOGGER = "sendrecv"
MEDIA_STACK_LOGGERS = ("aiortc", "aioice")

# Log format: 2025-01-27 10:30:45 [INFO] sendrecv.relay.session: message
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured: list[logging.Logger] = []


def _build_handlers(log_file: str | None) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: Config, verbose: bool = False) -> logging.Logger:
    """Set up logging based on configuration.

    Calling it again is a no-op until reset_logging().

    Args:
        config: Configuration object with log settings.
        verbose: Force DEBUG for the package and the media stack.

    Returns:
        The package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _configured:
        return logger

    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    media_level = logging.DEBUG if verbose else max(level, logging.WARNING)
    handlers = _build_handlers(config.log_file)

    targets = [(logger, level)]
    targets += [(logging.getLogger(name), media_level) for name in MEDIA_STACK_LOGGERS]
    for target, target_level in targets:
        target.handlers.clear()
        for handler in handlers:
            target.addHandler(handler)
        target.setLevel(target_level)
        target.propagate = False
        _configured.append(target)

    return logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    for logger in _configured:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)
    _configured.clear()

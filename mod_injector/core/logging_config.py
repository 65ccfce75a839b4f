from __future__ import annotations

import logging

# bytecode logs every code-object conversion at DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = (
    "bytecode",
    "asyncio",
)

_FORMAT = '[%(levelname)s] %(name)s: %(message)s'


def _ensure_stream_handler(logger: logging.Logger) -> None:
    handler_exists = any(isinstance(h, logging.StreamHandler) for h in logger.handlers)
    if handler_exists:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)


def configure_logging(level_name: str | None = None) -> None:
    """Configure the root logger for a patcher run."""

    try:
        lvl = getattr(logging, (level_name or 'INFO').upper(), logging.INFO)
    except Exception:
        lvl = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(lvl)
    _ensure_stream_handler(root_logger)

    for noisy_name in _NOISY_LOGGERS:
        logger = logging.getLogger(noisy_name)
        if logger.level < logging.INFO:
            logger.setLevel(logging.INFO)

"""Loguru logging configuration."""

import sys

from loguru import logger

LOG_FORMAT = "<level>{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}</level>"


def setup_logging(level: str = "INFO", *, diagnose: bool = False) -> None:
    """Replace loguru's default sink with a stderr sink at ``level``.

    ``diagnose`` shows local variable values in tracebacks; keep it off
    outside development since tool arguments may hold sensitive data.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=level.upper(),
        colorize=True,
        backtrace=True,
        diagnose=diagnose,
    )

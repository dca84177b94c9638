"""ibmon — live InfiniBand port throughput in the terminal."""

__version__ = "0.1.0"

import sys
from typing import Any, TextIO

from loguru import logger

logger.disable(__name__)

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(sink: str | TextIO | None = None, level: str = "INFO") -> None:
    """Enable ibmon's loguru logger with a single sink.

    ``sink`` may be a file path or a stream; ``None`` means stderr.
    """
    target: Any = sys.stderr if sink is None else sink
    logger.remove()
    logger.add(target, level=level.upper(), format=LOG_FORMAT)
    logger.enable(__name__)


__all__ = ["__version__", "configure_logging", "logger"]

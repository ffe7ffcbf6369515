import sys
from typing import Optional

from loguru import logger

_configured_level: Optional[str] = None


def init_log(level: str = "INFO") -> None:
    """Route loguru output to stderr at the given level, once per level"""
    global _configured_level

    level = level.upper()
    if _configured_level == level:
        return

    logger.remove()
    logger.add(sys.stderr, level=level)
    _configured_level = level

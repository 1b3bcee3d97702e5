import logging
import os
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps each line in the ANSI colour of its level"""

    COLORS = {
        'DEBUG': '\033[36m',  # Cyan
        'INFO': '\033[32m',  # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',  # Red
        'CRITICAL': '\033[41m\033[37m',  # White on Red background
    }
    RESET = '\033[0m'

    def __init__(self, fmt=LOG_FORMAT, datefmt=DATE_FORMAT, use_color: bool = True):
        super().__init__(fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record):
        message = super().format(record)
        color = self.COLORS.get(record.levelname)
        if not self.use_color or color is None:
            return message
        return f"{color}{message}{self.RESET}"


def _level_from_env(default: int = logging.INFO) -> int:
    name = os.getenv("LOG_LEVEL", "").strip().upper()
    level = logging.getLevelName(name) if name else default
    return level if isinstance(level, int) else default


def _color_enabled(stream) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Set up and return a console logger; level defaults to LOG_LEVEL or INFO"""
    if level is None:
        level = _level_from_env()

    _logger = logging.getLogger(name)
    _logger.setLevel(level)

    # Re-importing the module must not stack handlers
    if _logger.handlers:
        return _logger

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(use_color=_color_enabled(sys.stdout)))
    _logger.addHandler(handler)

    return _logger


logger = setup_logger("todo_app")

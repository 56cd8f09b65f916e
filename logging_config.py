import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config import Config


def _parse_level(value: Optional[str], default: int) -> int:
    if not value:
        return default
    text = str(value).strip().upper()
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text)
    return level if isinstance(level, int) else default


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure logging for the handoff service.

    Safe to call more than once: handlers installed by a previous call are
    replaced, not duplicated.
    """
    root = logging.getLogger()
    root.setLevel(logging.WARNING)
    for h in list(root.handlers):
        root.removeHandler(h)

    formatter = logging.Formatter(Config.LOG_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"
            )
        )

    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)

    logging.getLogger("handoff").setLevel(_parse_level(level, logging.INFO))
    logging.captureWarnings(True)
    return root

import logging
import sys
from typing import Optional
from functools import lru_cache

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Per-request chatter from the HTTP and pool libraries
NOISY_LOGGERS = ("httpx", "httpcore", "psycopg.pool")


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Send everything to stdout at ``level`` (a name such as ``"DEBUG"``).

    Calling it again replaces the handler, so the CLI's ``--log-level``
    can override what the server configured.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    return root_logger

@lru_cache()
def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance for a module."""
    return logging.getLogger(name or "donkee")

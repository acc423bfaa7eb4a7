"""
Logging setup. Modules log through logging.getLogger(__name__).
"""
from __future__ import annotations

import logging

from lastman.config import Config


def setup_logging(config: Config) -> None:
    """Configure application-wide logging based on config.

    The format includes timestamp, log level, logger name, and message.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    # Align uvicorn loggers with the application log level.
    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(level)

from __future__ import annotations

import logging
from pathlib import Path

LOG_DIR = Path.home() / ".locatorheal" / "logs"
LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def build_logger(log_dir: Path | None = None, verbose: bool = False) -> logging.Logger:
    logger = logging.getLogger("locatorheal")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if logger.handlers:
        return logger

    logger.propagate = False
    try:
        target = log_dir or LOG_DIR
        target.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(target / "locatorheal.log", encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(file_handler)
    except OSError:
        # Fallback to stderr logging if file logger cannot be initialized.
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(stream_handler)
    return logger

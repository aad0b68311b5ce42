"""
Logging setup.
"""

from __future__ import annotations

import logging
import os

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def setup_logging(log_path: str, log_level: str) -> None:
    log_dir = os.path.dirname(log_path)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir)

    level = str(log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level if level in VALID_LOG_LEVELS else "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler(),
        ],
    )
    # Per-request access lines drown out relay events below DEBUG.
    if level != "DEBUG":
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

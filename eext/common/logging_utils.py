"""
Logging utilities for the rebuild tool
"""

import logging
from typing import Optional


def setup_logging(debug_mode: bool = False, log_file: Optional[str] = None):
    """Setup logging configuration"""
    level = logging.DEBUG if debug_mode else logging.INFO

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format='[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers,
        force=True,
    )

    return logging.getLogger(__name__)


class StageLogger:
    """Prefixes pipeline log lines with the builder identity and current stage"""

    def __init__(self, identity, logger: logging.Logger):
        self.identity = identity
        self.logger = logger

    def info(self, stage: str, message: str):
        self.logger.info(f"{self.identity.prefix(stage)}{message}")

    def warning(self, stage: str, message: str):
        self.logger.warning(f"{self.identity.prefix(stage)}{message}")

    def error(self, stage: str, message: str):
        self.logger.error(f"{self.identity.prefix(stage)}{message}")

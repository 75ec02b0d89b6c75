"""Prism Element inventory sync engine."""

import logging
from typing import Optional

from prism_sync.config import settings

__version__ = "0.1.0"


def configure_logging(level: Optional[str] = None):
    """Install a basic log formatter for host processes that have none."""
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

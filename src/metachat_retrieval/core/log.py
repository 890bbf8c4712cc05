"""
Logging setup shared by the API app factory and the maintenance CLI.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """
    Install a root stream handler once. Safe to call repeatedly.
    """
    resolved = (level or settings.log_level).upper()
    root = logging.getLogger()

    if not root.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
    else:
        root.setLevel(resolved)

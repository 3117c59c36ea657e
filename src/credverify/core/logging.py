from __future__ import annotations

import logging
import os

from rich.logging import RichHandler

_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def configure_logging(verbosity: int = 0) -> None:
    override = os.getenv("CREDVERIFY_LOG_LEVEL")
    if override:
        level = logging.getLevelName(override.strip().upper())
        if not isinstance(level, int):
            level = logging.INFO
    else:
        level = _VERBOSITY_LEVELS.get(verbosity, logging.DEBUG)

    handler = RichHandler(rich_tracebacks=True, show_path=verbosity >= 2)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

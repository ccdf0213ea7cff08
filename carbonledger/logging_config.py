# -*- coding: utf-8 -*-
"""Logging setup for the CarbonLedger service.

Console output always; when a log file is configured, the main log plus an
``error.log`` next to it that only receives ERROR and above.
"""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    force: bool = False,
) -> None:
    """Configure root logging if no handlers are present.

    Args:
        level: Logging level name or number.
        log_file: Optional path of the main log file.
        force: Replace existing root handlers.
    """
    root = logging.getLogger()
    if root.handlers and not force:
        return

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                path, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8",
            )
        )

        error_handler = logging.FileHandler(path.parent / "error.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)

    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=_resolve_level(level), handlers=handlers, force=force)
    logging.getLogger(__name__).debug(
        "Logging configured: level=%s, log_file=%s", level, log_file or "-",
    )


__all__ = ["configure_logging", "LOG_FORMAT"]

"""Process-wide logging setup."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    format_string: str = LOG_FORMAT,
) -> None:
    """Configure root logging once; later calls are ignored.

    Args:
        level: logging level or level name.
        log_file: optional file that receives a copy of every record.
        format_string: record format.
    """
    global _configured

    if _configured:
        return

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=format_string,
        datefmt=DATE_FORMAT,
        handlers=handlers,
    )

    _configured = True

"""
Logging setup for scripts.

The library itself only creates module loggers; causal_search/__init__ adds
a NullHandler so nothing is printed unless the caller configures logging.
Searches take an optional logger and log per-step messages at DEBUG, or at
INFO when constructed with verbose=True.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def init_logging(level: Union[int, str] = logging.INFO, log_file: Optional[Union[str, Path]] = None):
    """Configure the root logger with a console handler and an optional file handler."""
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(level)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(level)
    ch.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(ch)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(fh)


def step_level(verbose: bool) -> int:
    """Level for per-step search messages."""
    return logging.INFO if verbose else logging.DEBUG

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Colored console logging for CLI runs.

Level colors:
- DEBUG: Cyan (per-day date shifts, backfills)
- INFO: Green (fetches, computed points)
- WARNING: Yellow (skipped tickers)
- ERROR / CRITICAL: Red / Bold Red

Colors are dropped when stderr is not a TTY or ``NO_COLOR`` is set, so log
files and CI output stay plain.
"""
from __future__ import annotations

import logging
import os
import sys
from typing import Optional

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - [%(name)s:%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
DEFAULT_DATEFMT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps the level name in ANSI color codes."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self, fmt: str = DEFAULT_FORMAT, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt, datefmt)
        self.use_colors = (
            use_colors
            and not os.environ.get("NO_COLOR")
            and hasattr(sys.stderr, 'isatty')
            and sys.stderr.isatty()
        )

    def format(self, record: logging.LogRecord) -> str:
        if not (self.use_colors and record.levelname in self.COLORS):
            return super().format(record)
        # levelname is shared with other handlers; restore it after formatting
        orig_levelname = record.levelname
        record.levelname = f"{self.COLORS[orig_levelname]}{orig_levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = orig_levelname


def setup_colored_logging(level: int = logging.INFO, fmt: str = DEFAULT_FORMAT, datefmt: Optional[str] = DEFAULT_DATEFMT, use_colors: bool = True) -> None:
    """
    Replace root handlers with a single colored stderr handler.

    Args:
        level: Logging level (e.g., logging.INFO, logging.DEBUG)
        fmt: Format string for log messages
        datefmt: Format string for timestamps
        use_colors: Force-disable colors when False
    """
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter(fmt=fmt, datefmt=datefmt, use_colors=use_colors))

    root.setLevel(level)
    root.addHandler(console_handler)

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility Functions for the Portfolio vs Benchmark tool
Shared helpers for cell-text normalization and strict parsing.
"""

import math
import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from .errors import InvalidDateError, InvalidNumberError

_YMD_RE = re.compile(r"(\d{4})\D+(\d{1,2})\D+(\d{1,2})")
_WS_RE = re.compile(r"\s+")


def normalize_text(s: Any) -> str:
    """
    Collapse whitespace (including non-breaking spaces) and strip

    Args:
        s: Raw cell or header text

    Returns:
        Normalized text, empty string for None/NaN
    """
    if s is None:
        return ""
    if isinstance(s, float) and math.isnan(s):
        return ""
    return _WS_RE.sub(" ", str(s).replace("\u00a0", " ")).strip()


def parse_number_strict(raw: Any, ctx: Optional[Dict[str, Any]] = None) -> float:
    """
    Parse a numeric table cell such as ``"1,572.66"``

    Args:
        raw: Cell text (numbers are accepted as-is)
        ctx: Extra context attached to the error

    Returns:
        Parsed finite float

    Raises:
        InvalidNumberError: empty, ``--``, unparsable or non-finite input
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if not math.isfinite(float(raw)):
            raise InvalidNumberError(f"Invalid number: {raw!r}", {"raw": raw, **(ctx or {})})
        return float(raw)

    s = _WS_RE.sub("", str(raw if raw is not None else "")).replace(",", "")
    if s == "" or s == "--":
        raise InvalidNumberError(f"Invalid number: {raw!r}", {"raw": raw, "reason": "empty", **(ctx or {})})
    try:
        n = float(s)
    except ValueError:
        raise InvalidNumberError(f"Invalid number: {raw!r}", {"raw": raw, "reason": "nan", **(ctx or {})})
    if not math.isfinite(n):
        raise InvalidNumberError(f"Invalid number: {raw!r}", {"raw": raw, "reason": "nan", **(ctx or {})})
    return n


def parse_trade_date(text: Any, ctx: Optional[Dict[str, Any]] = None) -> Tuple[str, str]:
    """
    Extract the first ``YYYY<sep>M<sep>D`` date from a cell

    Args:
        text: Cell text, e.g. ``"2024/12/30"`` or ``"成交 2024-1-2 (T+2)"``
        ctx: Extra context attached to the error

    Returns:
        (display ``YYYY/MM/DD``, ISO key ``YYYY-MM-DD``)

    Raises:
        InvalidDateError: no date pattern or not a real calendar date
    """
    t = normalize_text(text)
    m = _YMD_RE.search(t)
    if not m:
        raise InvalidDateError(f"Cannot parse date from cell: {t!r}", {"text": t, **(ctx or {})})
    y, mm, dd = int(m.group(1)), int(m.group(2)), int(m.group(3))
    try:
        datetime(y, mm, dd)
    except ValueError:
        raise InvalidDateError(f"Invalid trade date: {t!r}", {"text": t, **(ctx or {})})
    return f"{y:04d}/{mm:02d}/{dd:02d}", f"{y:04d}-{mm:02d}-{dd:02d}"


def sanitize_filename_timestamp(dt: datetime) -> str:
    """
    Create filename-safe timestamp string

    Args:
        dt: Datetime to format

    Returns:
        Filename-safe timestamp string
    """
    return dt.strftime("%Y%m%d_%H%M%S")

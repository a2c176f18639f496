#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Trading-day arithmetic on ISO date keys (YYYY-MM-DD).

Only weekends are excluded; market holidays are not modeled. Keys are
interpreted as UTC midnight so day-of-week is independent of the host
timezone.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from .errors import InvalidDateError

ET_ZONE = ZoneInfo("America/New_York")

_ISO_DATE_RE = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _parse_iso_date(iso_date: str) -> date:
    m = _ISO_DATE_RE.fullmatch(iso_date) if isinstance(iso_date, str) else None
    if not m:
        raise InvalidDateError(f"Invalid isoDate: {iso_date!r}", {"iso_date": iso_date})
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        raise InvalidDateError(f"Invalid isoDate: {iso_date!r}", {"iso_date": iso_date})


def iso_date_to_timestamp_ms(iso_date: str) -> int:
    """UTC midnight of ``iso_date`` in epoch milliseconds."""
    d = _parse_iso_date(iso_date)
    dt = datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    return int((dt - _EPOCH) // timedelta(milliseconds=1))


def iso_date_to_timestamp_s(iso_date: str) -> int:
    return iso_date_to_timestamp_ms(iso_date) // 1000


def add_calendar_days(iso_date: str, days: int) -> str:
    return (_parse_iso_date(iso_date) + timedelta(days=days)).isoformat()


def is_weekend(iso_date: str) -> bool:
    # date.weekday(): Monday=0 .. Sunday=6
    return _parse_iso_date(iso_date).weekday() >= 5


def shift_trading_days(iso_date: str, delta: int) -> str:
    """
    Move ``delta`` trading days from ``iso_date`` (negative = backwards).

    Steps one calendar day at a time, only counting non-weekend days.
    ``delta == 0`` returns the input unchanged (even on a weekend).
    """
    if delta == 0:
        return iso_date
    step = 1 if delta > 0 else -1
    remaining = abs(delta)
    cur = _parse_iso_date(iso_date)
    while remaining > 0:
        cur = cur + timedelta(days=step)
        if cur.weekday() >= 5:
            continue
        remaining -= 1
    return cur.isoformat()


def timestamp_s_to_iso_date_et(timestamp_s: float) -> str:
    """Unix seconds -> the US/Eastern calendar date the instant falls on."""
    return datetime.fromtimestamp(timestamp_s, tz=timezone.utc).astimezone(ET_ZONE).date().isoformat()

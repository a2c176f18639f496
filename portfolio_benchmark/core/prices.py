#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Price lookup and anchor date resolution.

- get_price_at_or_before: exact price, else walk backwards over trading days
  within a bounded window. Never looks forward, so no look-ahead bias.
- resolve_date_by_anchor: map a brokerage trade-date key onto the anchor
  ticker's trading-day buckets, probing the previous then the next trading
  day when the raw key is absent.
"""
from __future__ import annotations

import logging
from typing import Mapping, Optional

from ..shared.errors import AnchorDateUnresolvedError, PriceMissingError
from ..shared.models import (
    DEFAULT_MAX_BACK_TRADING_DAYS,
    AnchorResolution,
    PriceLookupResult,
)
from ..shared.trading_calendar import shift_trading_days

log = logging.getLogger(__name__)


def get_price_at_or_before(
    series: Mapping[str, float],
    iso_date: str,
    max_back_trading_days: int = DEFAULT_MAX_BACK_TRADING_DAYS,
    ticker: Optional[str] = None,
) -> PriceLookupResult:
    """
    Price for ``iso_date``, backfilled from earlier trading days if needed.

    Args:
        series: ISO date -> price
        iso_date: Requested ET trading-day key
        max_back_trading_days: Maximum backward steps (weekends skipped)
        ticker: Only used for error context and logs

    Returns:
        PriceLookupResult with the date actually used

    Raises:
        PriceMissingError: nothing found at or within the window before iso_date
    """
    direct = series.get(iso_date)
    if direct is not None:
        return PriceLookupResult(used_date=iso_date, price=float(direct), backfilled=False)

    cur = iso_date
    for _ in range(max(0, int(max_back_trading_days))):
        cur = shift_trading_days(cur, -1)
        p = series.get(cur)
        if p is not None:
            log.debug("Backfilled price ticker=%s requested=%s used=%s", ticker, iso_date, cur)
            return PriceLookupResult(used_date=cur, price=float(p), backfilled=True)

    raise PriceMissingError(
        f"Missing price for {ticker or '?'} at {iso_date}",
        {"ticker": ticker, "iso_date": iso_date, "max_back_trading_days": max_back_trading_days},
    )


def resolve_date_by_anchor(anchor_series: Mapping[str, float], raw_iso_date: str) -> AnchorResolution:
    """
    Resolve a raw event-day key against the anchor series.

    Brokerage-displayed dates and the data vendor's ET day buckets can
    disagree by one day around session boundaries; a single probe of the
    previous and then the next trading day absorbs that.

    Raises:
        AnchorDateUnresolvedError: raw date and both neighbors are absent
    """
    if raw_iso_date in anchor_series:
        return AnchorResolution(resolved_date=raw_iso_date, shifted=False)

    prev = shift_trading_days(raw_iso_date, -1)
    if prev in anchor_series:
        log.debug("Anchor shift %s -> %s (prev trading day)", raw_iso_date, prev)
        return AnchorResolution(resolved_date=prev, shifted=True)

    nxt = shift_trading_days(raw_iso_date, 1)
    if nxt in anchor_series:
        log.debug("Anchor shift %s -> %s (next trading day)", raw_iso_date, nxt)
        return AnchorResolution(resolved_date=nxt, shifted=True)

    raise AnchorDateUnresolvedError(
        f"Cannot resolve {raw_iso_date} via anchor series",
        {"iso_date": raw_iso_date, "tried": [raw_iso_date, prev, nxt]},
    )

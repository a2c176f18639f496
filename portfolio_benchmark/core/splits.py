#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Split normalization for BUY events.

Restates each BUY's share count on the current share basis by multiplying
the factors of every split dated strictly after the trade date. A split on
the trade date itself is never applied: intraday ordering of the trade and
the split is unknown.
"""
from __future__ import annotations

import dataclasses
import logging
import math
from typing import Iterable, List, Mapping, Sequence

from ..shared.models import BUY, SplitAdjustment, SplitEvent, TradeEvent

log = logging.getLogger(__name__)


def _format_factor(factor: float) -> str:
    return str(int(factor)) if float(factor).is_integer() else repr(float(factor))


def normalize_buy_events_by_splits(
    events: Iterable[TradeEvent],
    splits_by_ticker: Mapping[str, Sequence[SplitEvent]],
) -> List[TradeEvent]:
    """
    Return events with BUY shares rewritten to the post-split basis.

    SELL events and tickers without splits pass through untouched. An already
    adjusted event is recomputed from its recorded ``from_shares``, so
    normalizing twice with the same splits equals normalizing once.
    """
    out: List[TradeEvent] = []
    adjusted = 0
    for ev in events:
        if ev.type != BUY:
            out.append(ev)
            continue
        splits = splits_by_ticker.get(ev.ticker) or []
        if not splits:
            out.append(ev)
            continue

        applied = sorted(
            (s for s in splits if s.iso_date_et > ev.iso_date_et),
            key=lambda s: s.iso_date_et,
        )
        factor = 1.0
        for s in applied:
            factor *= float(s.factor)
        if not math.isfinite(factor) or factor <= 0 or factor == 1:
            out.append(ev)
            continue

        base_shares = ev.split_adjustment.from_shares if ev.split_adjustment else ev.shares
        chain = [f"{s.iso_date_et} x{_format_factor(s.factor)}" for s in applied]
        out.append(dataclasses.replace(
            ev,
            shares=base_shares * factor,
            split_adjustment=SplitAdjustment(from_shares=base_shares, factor=factor, chain=chain),
        ))
        adjusted += 1

    if adjusted:
        log.info("Split-normalized %d BUY event(s)", adjusted)
    return out

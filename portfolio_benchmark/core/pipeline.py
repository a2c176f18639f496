#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
End-to-end run: filter events -> fetch prices -> split-normalize -> compute.

Failure policy:
- the anchor ticker can never be skipped; any failure on it aborts the run
- with prices.on_fetch_failure == "skip", a ticker whose download fails, or
  whose prices/holdings make the computation fail (PriceMissing,
  MissingPriceSeries, NegativeHolding), is dropped and the computation is
  rerun from a clean ledger; at most once per ticker
- with "abort", the first failure propagates unchanged
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..shared.errors import (
    ChartEmptyError,
    ChartParseError,
    ChartResponseError,
    MissingPriceSeriesError,
    NegativeHoldingError,
    NoEventsError,
    PortfolioBenchmarkError,
    PriceFetchFailedError,
    PriceMissingError,
)
from ..shared.models import BUY, ComputedSeriesWithTrace, DualPriceSeries, PriceSeries, SplitEvent, TradeEvent
from .compute import compute_with_trace
from .price_source import FetchedTickerData, JsonPriceCache, PriceFetchReport, PriceSource
from .settings import ConfigError, Settings
from .splits import normalize_buy_events_by_splits

log = logging.getLogger(__name__)

FETCH_ERRORS = (PriceFetchFailedError, ChartResponseError, ChartParseError, ChartEmptyError)
SKIPPABLE_COMPUTE_ERRORS = (PriceMissingError, MissingPriceSeriesError, NegativeHoldingError)


@dataclass
class SkippedTicker:
    ticker: str
    stage: str   # "fetch" | "compute"
    kind: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"ticker": self.ticker, "stage": self.stage, "kind": self.kind, "message": self.message}


@dataclass
class PipelineResult:
    series: ComputedSeriesWithTrace
    events: List[TradeEvent]
    anchor_ticker: str
    price_mode: str
    report: PriceFetchReport
    skipped: List[SkippedTicker] = field(default_factory=list)
    splits_by_ticker: Dict[str, List[SplitEvent]] = field(default_factory=dict)
    series_by_ticker: Dict[str, DualPriceSeries] = field(default_factory=dict)

    @property
    def skipped_tickers(self) -> List[str]:
        return [s.ticker for s in self.skipped]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "anchor_ticker": self.anchor_ticker,
            "price_mode": self.price_mode,
            "series": self.series.to_dict(),
            "events": [ev.to_dict() for ev in self.events],
            "skipped": [s.to_dict() for s in self.skipped],
            "fetch_report": self.report.to_dict(),
        }


def year_ranges(events: Sequence[TradeEvent], anchor_ticker: str) -> Dict[str, Tuple[int, int]]:
    """
    ticker -> (first event year for that ticker, last event year overall).

    The anchor always covers the full event range.
    """
    years = [int(ev.iso_date_et[:4]) for ev in events]
    first_year, last_year = min(years), max(years)
    ranges: Dict[str, Tuple[int, int]] = {}
    for ev in events:
        y = int(ev.iso_date_et[:4])
        start = ranges[ev.ticker][0] if ev.ticker in ranges else y
        ranges[ev.ticker] = (min(start, y), last_year)
    ranges[anchor_ticker] = (first_year, last_year)
    return ranges


def _fetch_one(
    source: PriceSource,
    cache: Optional[JsonPriceCache],
    ticker: str,
    start_year: int,
    end_year: int,
    report: PriceFetchReport,
) -> FetchedTickerData:
    if cache is not None:
        hit = cache.get(ticker, start_year, end_year)
        if hit is not None:
            log.info(f"Using cached prices for {ticker} ({start_year}-{end_year})")
            return hit
    data = source.fetch_ticker_data(ticker, start_year, end_year, report)
    if cache is not None:
        cache.put(ticker, start_year, end_year, data)
    return data


def _drop_ticker(events: List[TradeEvent], ticker: str) -> List[TradeEvent]:
    return [ev for ev in events if ev.ticker != ticker]


def run_pipeline(
    events: Sequence[TradeEvent],
    settings: Settings,
    price_source: PriceSource,
    cache: Optional[JsonPriceCache] = None,
) -> PipelineResult:
    """
    Run the full computation for ``events`` under ``settings``.

    Args:
        events: Parsed trade events (BUY and SELL, any order)
        settings: Effective settings (after CLI overrides)
        price_source: Where daily prices and splits come from
        cache: Optional on-disk cache; built from prices.cache_dir when omitted

    Returns:
        PipelineResult with the traced series and the fetch/skip report

    Raises:
        ConfigError: apply_splits without buy_only
        NoEventsError: nothing left to compute
        PortfolioBenchmarkError: any failure that the policy does not skip
    """
    if settings.compute.apply_splits and not settings.compute.buy_only:
        raise ConfigError("compute.apply_splits requires compute.buy_only (SELL events are never split-adjusted)")
    anchor = settings.compute.anchor_ticker
    skip = settings.prices.on_fetch_failure == "skip"
    mode = settings.prices.mode
    if cache is None and settings.prices.cache_dir:
        cache = JsonPriceCache(settings.prices.cache_dir)

    working = list(events)
    if settings.compute.buy_only:
        working = [ev for ev in working if ev.type == BUY]
    if not working:
        raise NoEventsError("No events to compute", {"buy_only": settings.compute.buy_only, "input_events": len(events)})

    report = PriceFetchReport()
    skipped: List[SkippedTicker] = []
    fetched: Dict[str, FetchedTickerData] = {}

    ranges = year_ranges(working, anchor)
    log.info(f"Fetching prices for {len(ranges)} ticker(s), anchor={anchor}, mode={mode}")
    for ticker in sorted(ranges, key=lambda t: (t != anchor, t)):
        start_year, end_year = ranges[ticker]
        try:
            fetched[ticker] = _fetch_one(price_source, cache, ticker, start_year, end_year, report)
        except FETCH_ERRORS as e:
            report.failed_tickers.append({"ticker": ticker, "kind": e.kind, "error": e.message})
            if ticker == anchor or not skip:
                report.finished_at = time.time()
                raise
            log.warning(f"Skipping {ticker}: price fetch failed ({e})")
            skipped.append(SkippedTicker(ticker, "fetch", e.kind, e.message))
            working = _drop_ticker(working, ticker)
    report.finished_at = time.time()

    if not working:
        raise NoEventsError("Every ticker was skipped", {"skipped": [s.ticker for s in skipped]})

    splits_by_ticker = {t: list(d.splits) for t, d in fetched.items() if d.splits}
    if settings.compute.apply_splits:
        working = normalize_buy_events_by_splits(working, splits_by_ticker)

    prices: Dict[str, PriceSeries] = {t: d.series.select(mode) for t, d in fetched.items()}

    # Each rerun drops one distinct ticker, so this terminates.
    max_runs = len({ev.ticker for ev in working}) + 1
    for _ in range(max_runs):
        try:
            series = compute_with_trace(
                working,
                prices,
                max_back_trading_days=settings.compute.max_back_trading_days,
                anchor_ticker=anchor,
            )
        except SKIPPABLE_COMPUTE_ERRORS as e:
            ticker = e.ticker
            if not skip or ticker is None or ticker == anchor:
                raise
            log.warning(f"Dropping {ticker} and recomputing: {e}")
            skipped.append(SkippedTicker(ticker, "compute", e.kind, e.message))
            working = _drop_ticker(working, ticker)
            if not working:
                raise NoEventsError("Every ticker was skipped", {"skipped": [s.ticker for s in skipped]}) from e
            continue

        log.info(
            f"Computed {len(series.resolved_iso_dates_et)} point(s) from {len(working)} event(s); "
            f"skipped={[s.ticker for s in skipped]}"
        )
        return PipelineResult(
            series=series,
            events=working,
            anchor_ticker=anchor,
            price_mode=mode,
            report=report,
            skipped=skipped,
            splits_by_ticker=splits_by_ticker,
            series_by_ticker={t: d.series for t, d in fetched.items()},
        )

    raise PortfolioBenchmarkError("Recompute limit reached", {"skipped": [s.ticker for s in skipped]})

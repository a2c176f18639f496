#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Portfolio vs benchmark valuation core.

High-level algorithm (one point per trade day):
- Stable-sort events by ISO date and group them into day buckets.
- For each bucket, in ascending date order:
  - resolve the bucket date against the anchor series (prev/next trading day
    when the raw key is absent);
  - apply BUYs before SELLs to the holdings ledger, failing on any holding
    below -SHARE_EPSILON;
  - convert each event's cash into synthetic anchor shares at the anchor
    price of the resolved date, failing if the running total goes negative;
  - value the post-bucket holdings with at-or-before prices;
  - value the synthetic leg with the same anchor price.

compute() and compute_with_trace() run the same loop; tracing only decides
whether DayTrace records are allocated and emitted, so plain and traced runs
are numerically identical.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..shared.errors import (
    MissingAnchorError,
    MissingPriceSeriesError,
    NegativeBenchmarkSharesError,
    NegativeHoldingError,
)
from ..shared.models import (
    BUY,
    DEFAULT_ANCHOR_TICKER,
    DEFAULT_MAX_BACK_TRADING_DAYS,
    SHARE_EPSILON,
    ComputedSeries,
    ComputedSeriesWithTrace,
    DayTrace,
    EventTrace,
    Holdings,
    Ledger,
    PriceSeries,
    PriceUsed,
    SeriesPoint,
    TradeEvent,
)
from ..shared.trading_calendar import iso_date_to_timestamp_ms
from .prices import get_price_at_or_before, resolve_date_by_anchor
from .tracing import CallbackTracer, ComputeTracer, FanoutTracer, ListTracer

log = logging.getLogger(__name__)


def type_order(trade_type: str) -> int:
    return 0 if trade_type == BUY else 1


def group_events_by_day(events: Iterable[TradeEvent]) -> Tuple[List[str], Dict[str, List[TradeEvent]]]:
    """Stable sort by ISO date, then bucket. Returns (ascending day keys, buckets)."""
    by_day: Dict[str, List[TradeEvent]] = {}
    for ev in sorted(events, key=lambda e: e.iso_date_et):
        by_day.setdefault(ev.iso_date_et, []).append(ev)
    return sorted(by_day.keys()), by_day


def order_day_events(day_events: Iterable[TradeEvent]) -> List[TradeEvent]:
    """BUYs before SELLs; relative order within each type is preserved."""
    return sorted(day_events, key=lambda e: type_order(e.type))


def add_holding(holdings: Holdings, ticker: str, delta: float) -> None:
    nxt = holdings.get(ticker, 0.0) + delta
    if abs(nxt) < SHARE_EPSILON:
        holdings.pop(ticker, None)
    else:
        holdings[ticker] = nxt


@dataclass
class DayResult:
    """Outcome of one day-bucket step."""
    day_key: str
    resolved_date: str
    shifted: bool
    ts_ms: int
    portfolio_value: float
    benchmark_value: float
    trace: Optional[DayTrace] = None


@dataclass
class _CashflowUpdate:
    benchmark_shares_after: float
    day_cash_total: float = 0.0
    delta_shares_total: float = 0.0
    event_traces: List[EventTrace] = field(default_factory=list)


def _apply_events_to_holdings(holdings: Holdings, day_events: List[TradeEvent], ctx: Dict[str, Any]) -> None:
    for ev in day_events:
        add_holding(holdings, ev.ticker, ev.shares if ev.type == BUY else -ev.shares)
        cur = holdings.get(ev.ticker, 0.0)
        if cur < -SHARE_EPSILON:
            raise NegativeHoldingError(
                f"Negative holding for {ev.ticker}",
                {**ctx, "ticker": ev.ticker, "holding": cur, "event": ev},
            )


def _update_benchmark_shares(
    shares_before: float,
    day_events: List[TradeEvent],
    resolved_date: str,
    anchor_price: float,
    ctx: Dict[str, Any],
    want_trace: bool,
) -> _CashflowUpdate:
    upd = _CashflowUpdate(benchmark_shares_after=shares_before)
    for ev in day_events:
        upd.day_cash_total += ev.cash
        delta = ev.cash / anchor_price
        upd.delta_shares_total += delta
        upd.benchmark_shares_after += delta if ev.type == BUY else -delta
        if upd.benchmark_shares_after < -SHARE_EPSILON:
            raise NegativeBenchmarkSharesError(
                "Benchmark shares would become negative",
                {**ctx, "ticker": ev.ticker, "benchmark_shares": upd.benchmark_shares_after, "event": ev},
            )
        if want_trace:
            upd.event_traces.append(EventTrace(
                event=ev,
                resolved_date=resolved_date,
                anchor_price=anchor_price,
                benchmark_delta_shares=delta,
                benchmark_shares_after=upd.benchmark_shares_after,
            ))
    return upd


def _value_holdings(
    holdings: Holdings,
    price_series_by_ticker: Mapping[str, PriceSeries],
    resolved_date: str,
    max_back_trading_days: int,
    ctx: Dict[str, Any],
    want_trace: bool,
) -> Tuple[float, List[PriceUsed]]:
    value = 0.0
    used: List[PriceUsed] = []
    for ticker, shares in holdings.items():
        series = price_series_by_ticker.get(ticker)
        if series is None:
            raise MissingPriceSeriesError(f"Missing price series: {ticker}", {**ctx, "ticker": ticker})
        lookup = get_price_at_or_before(series, resolved_date, max_back_trading_days, ticker)
        if want_trace:
            used.append(PriceUsed(ticker, resolved_date, lookup.used_date, lookup.backfilled, lookup.price))
        value += shares * lookup.price
    return value, used


def apply_day_bucket(
    ledger: Ledger,
    day_key: str,
    day_events: Iterable[TradeEvent],
    *,
    anchor_series: PriceSeries,
    price_series_by_ticker: Mapping[str, PriceSeries],
    max_back_trading_days: int = DEFAULT_MAX_BACK_TRADING_DAYS,
    anchor_ticker: str = DEFAULT_ANCHOR_TICKER,
    want_trace: bool = False,
) -> Tuple[Ledger, DayResult]:
    """
    Apply one day bucket to ``ledger`` and value the result.

    The input ledger is left untouched; the updated ledger is returned along
    with the day's values (and its DayTrace when ``want_trace``).
    """
    resolution = resolve_date_by_anchor(anchor_series, day_key)
    resolved = resolution.resolved_date
    ctx: Dict[str, Any] = {"day_key": day_key, "resolved_date": resolved}
    ordered = order_day_events(day_events)

    holdings: Holdings = dict(ledger.holdings)
    _apply_events_to_holdings(holdings, ordered, ctx)

    anchor = get_price_at_or_before(anchor_series, resolved, max_back_trading_days, anchor_ticker)
    cash = _update_benchmark_shares(ledger.benchmark_shares, ordered, resolved, anchor.price, ctx, want_trace)

    portfolio_value, prices_used = _value_holdings(
        holdings, price_series_by_ticker, resolved, max_back_trading_days, ctx, want_trace
    )
    benchmark_value = cash.benchmark_shares_after * anchor.price
    ts_ms = iso_date_to_timestamp_ms(resolved)

    new_ledger = Ledger(holdings=holdings, benchmark_shares=cash.benchmark_shares_after)
    result = DayResult(
        day_key=day_key,
        resolved_date=resolved,
        shifted=resolution.shifted,
        ts_ms=ts_ms,
        portfolio_value=portfolio_value,
        benchmark_value=benchmark_value,
    )
    if want_trace:
        result.trace = DayTrace(
            day_key=day_key,
            resolved_date=resolved,
            anchor_shifted=resolution.shifted,
            event_traces=cash.event_traces,
            holdings_after=new_ledger.holdings_snapshot(),
            portfolio_prices_used=prices_used,
            anchor_price_used=PriceUsed(anchor_ticker, resolved, anchor.used_date, anchor.backfilled, anchor.price),
            day_cash_total=cash.day_cash_total,
            benchmark_delta_shares_total=cash.delta_shares_total,
            benchmark_shares=cash.benchmark_shares_after,
            benchmark_value=benchmark_value,
            portfolio_value=portfolio_value,
            ts_ms=ts_ms,
        )
    return new_ledger, result


def _compute_core(
    events: Iterable[TradeEvent],
    price_series_by_ticker: Mapping[str, PriceSeries],
    max_back_trading_days: int,
    anchor_ticker: str,
    tracer: Optional[ComputeTracer],
) -> ComputedSeries:
    anchor_series = price_series_by_ticker.get(anchor_ticker)
    if anchor_series is None:
        raise MissingAnchorError(f"Missing anchor price series: {anchor_ticker}", {"ticker": anchor_ticker})

    want_trace = tracer is not None
    day_keys, by_day = group_events_by_day(events)

    ledger = Ledger()
    out = ComputedSeries()
    for day_key in day_keys:
        ledger, day = apply_day_bucket(
            ledger,
            day_key,
            by_day[day_key],
            anchor_series=anchor_series,
            price_series_by_ticker=price_series_by_ticker,
            max_back_trading_days=max_back_trading_days,
            anchor_ticker=anchor_ticker,
            want_trace=want_trace,
        )
        p_point = SeriesPoint(ts_ms=day.ts_ms, value=day.portfolio_value)
        b_point = SeriesPoint(ts_ms=day.ts_ms, value=day.benchmark_value)
        if out.resolved_iso_dates_et and out.resolved_iso_dates_et[-1] == day.resolved_date:
            # Two raw keys landed on one trading day: the later post-bucket
            # ledger already includes both, so it replaces the earlier point.
            log.debug("Merged day %s into resolved date %s", day_key, day.resolved_date)
            out.portfolio[-1] = p_point
            out.vti[-1] = b_point
        else:
            out.resolved_iso_dates_et.append(day.resolved_date)
            out.portfolio.append(p_point)
            out.vti.append(b_point)

        if want_trace and day.trace is not None:
            tracer.on_day_computed(day.trace)

    log.debug("Computed %d point(s) from %d day bucket(s)", len(out.resolved_iso_dates_et), len(day_keys))
    return out


def compute(
    events: Iterable[TradeEvent],
    price_series_by_ticker: Mapping[str, PriceSeries],
    max_back_trading_days: int = DEFAULT_MAX_BACK_TRADING_DAYS,
    anchor_ticker: str = DEFAULT_ANCHOR_TICKER,
    tracer: Optional[ComputeTracer] = None,
) -> ComputedSeries:
    """
    Portfolio and benchmark valuation curves for ``events``.

    Args:
        events: Trade events (any order)
        price_series_by_ticker: ticker -> ISO date -> price; must contain the anchor
        max_back_trading_days: Backfill window for price lookups
        anchor_ticker: Benchmark ticker used for date resolution and cash conversion
        tracer: Optional observer receiving one DayTrace per day bucket

    Returns:
        ComputedSeries with index-aligned dates, portfolio and benchmark points

    Raises:
        PortfolioBenchmarkError subclasses (MissingAnchor, AnchorDateUnresolved,
        PriceMissing, MissingPriceSeries, NegativeHolding, NegativeBenchmarkShares)
    """
    return _compute_core(events, price_series_by_ticker, max_back_trading_days, anchor_ticker, tracer)


def compute_with_trace(
    events: Iterable[TradeEvent],
    price_series_by_ticker: Mapping[str, PriceSeries],
    max_back_trading_days: int = DEFAULT_MAX_BACK_TRADING_DAYS,
    anchor_ticker: str = DEFAULT_ANCHOR_TICKER,
    on_day: Optional[Callable[[DayTrace], None]] = None,
) -> ComputedSeriesWithTrace:
    """Same as compute(), additionally returning every DayTrace."""
    collector = ListTracer()
    tracer: ComputeTracer = collector
    if on_day is not None:
        tracer = FanoutTracer(collector, CallbackTracer(on_day))
    series = _compute_core(events, price_series_by_ticker, max_back_trading_days, anchor_ticker, tracer)
    return ComputedSeriesWithTrace(
        resolved_iso_dates_et=series.resolved_iso_dates_et,
        portfolio=series.portfolio,
        vti=series.vti,
        traces=collector.traces,
    )

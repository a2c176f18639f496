#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Domain Models for the Portfolio vs Benchmark valuation core
Defines trade events, price series, split events, the per-call ledger and
the computed output / trace records.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Tolerance for share-count rounding noise. Not a business rule: a holding
# within this distance of zero is treated as zero.
SHARE_EPSILON = 1e-12

DEFAULT_ANCHOR_TICKER = "VTI"
DEFAULT_MAX_BACK_TRADING_DAYS = 7

BUY = "BUY"
SELL = "SELL"
TRADE_TYPES = (BUY, SELL)

# ISO date key (YYYY-MM-DD, US/Eastern trading day) -> price
PriceSeries = Dict[str, float]
# ticker -> signed share count
Holdings = Dict[str, float]


@dataclass(frozen=True)
class SplitAdjustment:
    """Audit record of a split normalization applied to a BUY event"""
    from_shares: float
    factor: float
    chain: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"from_shares": self.from_shares, "factor": self.factor, "chain": list(self.chain)}


@dataclass(frozen=True)
class TradeEvent:
    """
    One BUY or SELL row as parsed from the brokerage history

    ``cash`` is the invested cost for a BUY and the settlement amount for a
    SELL. Instances are immutable; split normalization returns a new event.
    """
    type: str
    trade_date_display: str
    iso_date_et: str
    ticker: str
    shares: float
    cash: float
    source_year: int
    split_adjustment: Optional[SplitAdjustment] = None

    def __post_init__(self):
        """Validate trade type, ticker and share count"""
        if self.type not in TRADE_TYPES:
            raise ValueError(f"type must be one of {TRADE_TYPES}, got {self.type!r}")
        if not self.ticker or not self.ticker.strip():
            raise ValueError("ticker cannot be empty")
        if not self.shares > 0:
            raise ValueError(f"shares must be > 0, got {self.shares!r}")

    @property
    def is_buy(self) -> bool:
        return self.type == BUY

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "type": self.type,
            "trade_date_display": self.trade_date_display,
            "iso_date_et": self.iso_date_et,
            "ticker": self.ticker,
            "shares": self.shares,
            "cash": self.cash,
            "source_year": self.source_year,
        }
        if self.split_adjustment is not None:
            out["split_adjustment"] = self.split_adjustment.to_dict()
        return out


@dataclass(frozen=True)
class SplitEvent:
    """
    A stock split on a given ET trading day

    factor > 1 means one old share became ``factor`` new shares.
    """
    iso_date_et: str
    factor: float
    timestamp_s: Optional[int] = None
    split_ratio: Optional[str] = None

    def __post_init__(self):
        if not self.factor > 0:
            raise ValueError(f"split factor must be > 0, got {self.factor!r}")


@dataclass
class DualPriceSeries:
    """Raw close and adjusted close for one ticker, kept side by side"""
    close: PriceSeries = field(default_factory=dict)
    adjclose: PriceSeries = field(default_factory=dict)

    def select(self, mode: str) -> PriceSeries:
        return self.adjclose if mode == "adjclose" else self.close


@dataclass
class SeriesPoint:
    ts_ms: int
    value: float


@dataclass
class ComputedSeries:
    """
    Time-aligned output curves

    All three lists have the same length and are index-aligned, one entry
    per distinct resolved trading day in ascending order.
    """
    resolved_iso_dates_et: List[str] = field(default_factory=list)
    portfolio: List[SeriesPoint] = field(default_factory=list)
    vti: List[SeriesPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resolved_iso_dates_et": list(self.resolved_iso_dates_et),
            "portfolio": [{"ts_ms": p.ts_ms, "value": p.value} for p in self.portfolio],
            "vti": [{"ts_ms": p.ts_ms, "value": p.value} for p in self.vti],
        }


@dataclass
class PriceLookupResult:
    used_date: str
    price: float
    backfilled: bool


@dataclass
class AnchorResolution:
    resolved_date: str
    shifted: bool


@dataclass
class PriceUsed:
    """Provenance of one price actually used for valuation"""
    ticker: str
    requested_date: str
    used_date: str
    backfilled: bool
    price: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ticker": self.ticker,
            "requested_date": self.requested_date,
            "used_date": self.used_date,
            "backfilled": self.backfilled,
            "price": self.price,
        }


@dataclass
class EventTrace:
    event: TradeEvent
    resolved_date: str
    anchor_price: float
    benchmark_delta_shares: float
    benchmark_shares_after: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "resolved_date": self.resolved_date,
            "anchor_price": self.anchor_price,
            "benchmark_delta_shares": self.benchmark_delta_shares,
            "benchmark_shares_after": self.benchmark_shares_after,
        }


@dataclass
class DayTrace:
    """
    Full computation record for one day bucket (debug only)

    Holds the values already computed for the output series; nothing here is
    recomputed.
    """
    day_key: str
    resolved_date: str
    anchor_shifted: bool
    event_traces: List[EventTrace]
    holdings_after: List[Dict[str, Any]]
    portfolio_prices_used: List[PriceUsed]
    anchor_price_used: PriceUsed
    day_cash_total: float
    benchmark_delta_shares_total: float
    benchmark_shares: float
    benchmark_value: float
    portfolio_value: float
    ts_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "day_key": self.day_key,
            "resolved_date": self.resolved_date,
            "anchor_shifted": self.anchor_shifted,
            "events": [et.to_dict() for et in self.event_traces],
            "holdings_after": [dict(h) for h in self.holdings_after],
            "portfolio_prices_used": [p.to_dict() for p in self.portfolio_prices_used],
            "anchor_price_used": self.anchor_price_used.to_dict(),
            "day_cash_total": self.day_cash_total,
            "benchmark_delta_shares_total": self.benchmark_delta_shares_total,
            "benchmark_shares": self.benchmark_shares,
            "benchmark_value": self.benchmark_value,
            "portfolio_value": self.portfolio_value,
            "ts_ms": self.ts_ms,
        }


@dataclass
class ComputedSeriesWithTrace(ComputedSeries):
    traces: List[DayTrace] = field(default_factory=list)


@dataclass
class Ledger:
    """
    Accumulator threaded through the per-day step

    Created empty for every computation; never shared between calls.
    """
    holdings: Holdings = field(default_factory=dict)
    benchmark_shares: float = 0.0

    def holdings_snapshot(self) -> List[Dict[str, Any]]:
        return [{"ticker": t, "shares": s} for t, s in self.holdings.items()]

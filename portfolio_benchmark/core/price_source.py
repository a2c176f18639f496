#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Daily price sources.

Exposes a minimal PriceSource interface and a Yahoo v8 chart implementation
that returns, per ticker, both the raw close and the adjusted close series
plus the split events in the requested year range.

Retry policy: network errors and HTTP 429/5xx are retried with exponential
backoff; anything else fails immediately. Every attempt is recorded in a
PriceFetchReport for display next to the chart.

Also provides JsonPriceCache, an on-disk cache keyed by ticker that is
reused when it already covers the requested year range.
"""
from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, urlencode

import requests

from ..shared.errors import (
    ChartEmptyError,
    ChartParseError,
    ChartResponseError,
    PriceFetchFailedError,
)
from ..shared.models import DualPriceSeries, PriceSeries, SplitEvent
from ..shared.trading_calendar import iso_date_to_timestamp_s, timestamp_s_to_iso_date_et

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://query1.finance.yahoo.com"


@dataclass
class FetchAttempt:
    ticker: str
    start_year: int
    end_year: int
    attempt: int
    max_attempts: int
    url: str
    outcome: str  # "ok" | "retry" | "fail"
    error: Optional[str] = None


@dataclass
class PriceFetchReport:
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    attempts: List[FetchAttempt] = field(default_factory=list)
    failed_tickers: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "attempts": [a.__dict__.copy() for a in self.attempts],
            "failed_tickers": [dict(f) for f in self.failed_tickers],
        }


@dataclass
class FetchedTickerData:
    series: DualPriceSeries
    splits: List[SplitEvent] = field(default_factory=list)


# ---------- Chart payload parsing ----------

def _chart_result(symbol: str, payload: Any) -> Dict[str, Any]:
    chart = payload.get("chart") if isinstance(payload, dict) else None
    if not isinstance(chart, dict):
        raise ChartParseError("Missing chart object", {"ticker": symbol})
    if chart.get("error"):
        raise ChartResponseError("Chart endpoint returned an error", {"ticker": symbol, "chart_error": chart.get("error")})
    results = chart.get("result")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        raise ChartParseError("Missing chart.result[0]", {"ticker": symbol})
    return results[0]


def _first_list(container: Any, outer: str, inner: str) -> Optional[list]:
    try:
        values = container[outer][0][inner]
    except (KeyError, IndexError, TypeError):
        return None
    return values if isinstance(values, list) else None


def _finite(v: Any) -> Optional[float]:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        return None
    f = float(v)
    return f if math.isfinite(f) else None


def _timestamps_closes(symbol: str, result: Dict[str, Any]):
    timestamps = result.get("timestamp")
    indicators = result.get("indicators") or {}
    closes = _first_list(indicators, "quote", "close")
    adjcloses = _first_list(indicators, "adjclose", "adjclose")
    if not isinstance(timestamps, list) or closes is None:
        raise ChartParseError("Invalid timestamp/close arrays", {"ticker": symbol})
    return timestamps, closes, adjcloses


def parse_chart_to_price_series_pair(symbol: str, payload: Any) -> DualPriceSeries:
    """
    Parse chart JSON into separate close and adjclose series (no fallback).

    Timestamps are bucketed by their US/Eastern calendar date.
    """
    result = _chart_result(symbol, payload)
    timestamps, closes, adjcloses = _timestamps_closes(symbol, result)

    out = DualPriceSeries()
    for i, ts in enumerate(timestamps):
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            continue
        key = timestamp_s_to_iso_date_et(ts)
        c = _finite(closes[i]) if i < len(closes) else None
        if c is not None:
            out.close[key] = c
        a = _finite(adjcloses[i]) if adjcloses is not None and i < len(adjcloses) else None
        if a is not None:
            out.adjclose[key] = a

    if not out.close and not out.adjclose:
        raise ChartEmptyError("Parsed empty close/adjclose series", {"ticker": symbol})
    return out


def parse_chart_to_price_series(symbol: str, payload: Any, prefer_adj_close: bool = True) -> PriceSeries:
    """Single series, preferring adjclose (or close) and falling back to the other per day."""
    result = _chart_result(symbol, payload)
    timestamps, closes, adjcloses = _timestamps_closes(symbol, result)

    series: PriceSeries = {}
    for i, ts in enumerate(timestamps):
        if isinstance(ts, bool) or not isinstance(ts, (int, float)):
            continue
        c = _finite(closes[i]) if i < len(closes) else None
        a = _finite(adjcloses[i]) if adjcloses is not None and i < len(adjcloses) else None
        price = (a if a is not None else c) if prefer_adj_close else (c if c is not None else a)
        if price is not None:
            series[timestamp_s_to_iso_date_et(ts)] = price

    if not series:
        raise ChartEmptyError("Parsed empty price series", {"ticker": symbol})
    return series


def parse_chart_splits(symbol: str, payload: Any) -> List[SplitEvent]:
    """Split events sorted by date ascending; factor = numerator / denominator."""
    result = _chart_result(symbol, payload)
    raw = (result.get("events") or {}).get("splits") or {}
    if not isinstance(raw, dict):
        return []

    splits: List[SplitEvent] = []
    for item in raw.values():
        if not isinstance(item, dict):
            continue
        ts = _finite(item.get("date"))
        num = _finite(item.get("numerator"))
        den = _finite(item.get("denominator"))
        if ts is None or num is None or not den:
            continue
        factor = num / den
        if not math.isfinite(factor) or factor <= 0:
            log.warning("Ignoring invalid split for %s: %s", symbol, item)
            continue
        splits.append(SplitEvent(
            iso_date_et=timestamp_s_to_iso_date_et(ts),
            factor=factor,
            timestamp_s=int(ts),
            split_ratio=item.get("splitRatio"),
        ))
    splits.sort(key=lambda s: (s.timestamp_s or 0, s.iso_date_et))
    return splits


# ---------- Sources ----------

class PriceSource:
    def fetch_ticker_data(self, symbol: str, start_year: int, end_year: int, report: PriceFetchReport) -> FetchedTickerData:
        raise NotImplementedError


def is_retriable_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code <= 599


class YahooChartPriceSource(PriceSource):
    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_s: int = 10,
        max_retries: int = 3,
        backoff_base_s: float = 1.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Optional[date] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = max(1, int(timeout_s))
        self.max_retries = max(0, int(max_retries))
        self.backoff_base_s = max(0.0, float(backoff_base_s))
        self._sleep = sleep
        self._today = today
        self.log = logging.getLogger(__name__)
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": "Mozilla/5.0 (portfolio-benchmark)"})

    def build_chart_url(self, symbol: str, start_year: int, end_year: int) -> str:
        """
        Chart URL covering Jan 1 of ``start_year`` up to the end of ``end_year``.

        For the current year the range stops at tomorrow (UTC). Dots in
        symbols become dashes (BRK.B -> BRK-B).
        """
        today = self._today or datetime.now(timezone.utc).date()
        period1 = f"{start_year:04d}-01-01"
        if end_year >= today.year:
            period2 = (today + timedelta(days=1)).isoformat()
        else:
            period2 = f"{end_year + 1:04d}-01-01"
        query = urlencode({
            "formatted": "true",
            "includeAdjustedClose": "true",
            "events": "split",
            "interval": "1d",
            "period1": iso_date_to_timestamp_s(period1),
            "period2": iso_date_to_timestamp_s(period2),
        })
        yahoo_symbol = symbol.replace(".", "-")
        return f"{self.base_url}/v8/finance/chart/{quote(yahoo_symbol, safe='')}?{query}"

    def fetch_chart_json(self, symbol: str, start_year: int, end_year: int, report: PriceFetchReport) -> Any:
        url = self.build_chart_url(symbol, start_year, end_year)
        max_attempts = 1 + self.max_retries
        self.log.info(f"Chart GET ticker={symbol} years={start_year}-{end_year}")

        for attempt in range(1, max_attempts + 1):
            retriable = False
            err: Optional[str] = None
            try:
                r = self._session.get(url, timeout=self.timeout_s)
                if r.status_code == 200:
                    try:
                        data = r.json()
                    except ValueError as e:
                        err = f"Invalid JSON: {e}"
                    else:
                        report.attempts.append(FetchAttempt(symbol, start_year, end_year, attempt, max_attempts, url, "ok"))
                        self.log.info(f"Chart GET OK ticker={symbol} attempt={attempt}")
                        return data
                else:
                    err = f"HTTP {r.status_code}: {r.text[:200]}"
                    retriable = is_retriable_status(r.status_code)
            except requests.RequestException as e:
                err = f"Network error: {e}"
                retriable = True

            is_last = attempt == max_attempts
            outcome = "retry" if retriable and not is_last else "fail"
            report.attempts.append(FetchAttempt(symbol, start_year, end_year, attempt, max_attempts, url, outcome, err))
            if outcome == "fail":
                self.log.warning(f"Chart GET FAILED ticker={symbol} attempt={attempt}/{max_attempts} error={err}")
                raise PriceFetchFailedError(
                    f"Price fetch failed: {symbol} {start_year}-{end_year}",
                    {"ticker": symbol, "start_year": start_year, "end_year": end_year, "error": err, "url": url},
                )
            delay = self.backoff_base_s * (2 ** (attempt - 1))
            self.log.warning(f"Chart GET retry ticker={symbol} attempt={attempt}/{max_attempts} in {delay:.1f}s error={err}")
            self._sleep(delay)

        # range(1, max_attempts + 1) always returns or raises above
        raise PriceFetchFailedError("Retry loop exhausted", {"ticker": symbol, "url": url})

    def fetch_ticker_data(self, symbol: str, start_year: int, end_year: int, report: PriceFetchReport) -> FetchedTickerData:
        payload = self.fetch_chart_json(symbol, start_year, end_year, report)
        series = parse_chart_to_price_series_pair(symbol, payload)
        splits = parse_chart_splits(symbol, payload)
        log.info(
            "Fetched %s: close=%d adjclose=%d splits=%d",
            symbol, len(series.close), len(series.adjclose), len(splits),
        )
        return FetchedTickerData(series=series, splits=splits)


# ---------- On-disk cache ----------

class JsonPriceCache:
    """
    One JSON file per ticker under ``cache_dir``:
    {"start_year", "end_year", "close": {...}, "adjclose": {...}, "splits": [...]}
    """

    def __init__(self, cache_dir: str | Path) -> None:
        self.cache_dir = Path(cache_dir)

    def _path(self, ticker: str) -> Path:
        safe = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in ticker)
        return self.cache_dir / f"{safe}.json"

    def get(self, ticker: str, start_year: int, end_year: int) -> Optional[FetchedTickerData]:
        """Cached data if it covers [start_year, end_year], else None."""
        p = self._path(ticker)
        if not p.exists():
            return None
        try:
            with p.open("r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            log.warning(f"Ignoring unreadable price cache {p}: {e}")
            return None
        try:
            if int(raw.get("start_year", 9999)) > start_year or int(raw.get("end_year", 0)) < end_year:
                return None
            splits = [
                SplitEvent(
                    iso_date_et=s["iso_date_et"],
                    factor=float(s["factor"]),
                    timestamp_s=s.get("timestamp_s"),
                    split_ratio=s.get("split_ratio"),
                )
                for s in raw.get("splits") or []
            ]
            series = DualPriceSeries(
                close={k: float(v) for k, v in (raw.get("close") or {}).items()},
                adjclose={k: float(v) for k, v in (raw.get("adjclose") or {}).items()},
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            # Malformed payload: refetch and overwrite
            log.warning(f"Ignoring malformed price cache {p}: {e!r}")
            return None
        log.debug("Price cache hit ticker=%s years=%s-%s", ticker, start_year, end_year)
        return FetchedTickerData(series=series, splits=splits)

    def put(self, ticker: str, start_year: int, end_year: int, data: FetchedTickerData) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        payload = {
            "ticker": ticker,
            "start_year": start_year,
            "end_year": end_year,
            "close": data.series.close,
            "adjclose": data.series.adjclose,
            "splits": [
                {"iso_date_et": s.iso_date_et, "factor": s.factor, "timestamp_s": s.timestamp_s, "split_ratio": s.split_ratio}
                for s in data.splits
            ],
        }
        with self._path(ticker).open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2, sort_keys=True)

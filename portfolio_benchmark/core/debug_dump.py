#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Debug dump utilities for the valuation core.

Writes the full per-day computation trace into structured files (JSON + CSV)
for reproducible, offline analysis:
- JSON: metadata + every DayTrace as emitted by compute_with_trace()
- CSV: denormalized table, one row per applied event (days without events
  never occur), repeating the day's totals and output values

When the fetched close/adjclose pairs are passed in, every used price is
shown in both modes at the date it was taken from, so a run in one mode can
be checked against the other.
"""
from __future__ import annotations

import csv
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..shared.models import DayTrace, DualPriceSeries, PriceUsed
from ..shared.utils import sanitize_filename_timestamp

log = logging.getLogger(__name__)

DualSeriesMap = Mapping[str, DualPriceSeries]

CSV_HEADERS = [
    "day_key",
    "resolved_date",
    "anchor_shifted",
    "type",
    "ticker",
    "shares",
    "split_from_shares",
    "split_factor",
    "split_chain",
    "cash",
    "anchor_price",
    "anchor_price_date",
    "anchor_backfilled",
    "anchor_close",
    "anchor_adjclose",
    "benchmark_delta_shares",
    "benchmark_shares_after",
    "day_cash_total",
    "holdings_after",
    "prices_used",
    "portfolio_value",
    "benchmark_value",
]


def _close_adj(p: PriceUsed, dual_series: Optional[DualSeriesMap]) -> Tuple[Optional[float], Optional[float]]:
    dual = (dual_series or {}).get(p.ticker)
    if dual is None:
        return None, None
    return dual.close.get(p.used_date), dual.adjclose.get(p.used_date)


def _num(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.6g}"


def _fmt_price(p: PriceUsed, dual_series: Optional[DualSeriesMap]) -> str:
    if dual_series is None or p.ticker not in dual_series:
        tag = f"{p.ticker}@{p.used_date}={p.price:.6g}"
    else:
        close, adj = _close_adj(p, dual_series)
        tag = f"{p.ticker} close={_num(close)} / adj={_num(adj)}"
    if p.backfilled:
        tag += f" (backfill {p.used_date})"
    return tag


def _fmt_holdings(trace: DayTrace) -> str:
    return "; ".join(f"{h['ticker']}={h['shares']:.6g}" for h in trace.holdings_after)


def _fmt_prices(trace: DayTrace, dual_series: Optional[DualSeriesMap] = None) -> str:
    return "; ".join(_fmt_price(p, dual_series) for p in trace.portfolio_prices_used)


def _dual_entry(p: PriceUsed, dual_series: DualSeriesMap) -> Dict[str, Any]:
    close, adj = _close_adj(p, dual_series)
    return {
        "ticker": p.ticker,
        "used_date": p.used_date,
        "backfilled": p.backfilled,
        "close": close,
        "adjclose": adj,
    }


def _trace_payload(trace: DayTrace, dual_series: Optional[DualSeriesMap]) -> Dict[str, Any]:
    out = trace.to_dict()
    if dual_series is not None:
        out["prices_close_adj"] = [_dual_entry(p, dual_series) for p in trace.portfolio_prices_used]
        out["anchor_close_adj"] = _dual_entry(trace.anchor_price_used, dual_series)
    return out


def trace_rows(traces: Sequence[DayTrace], dual_series: Optional[DualSeriesMap] = None) -> List[List[Any]]:
    """Flatten traces into CSV rows (see CSV_HEADERS)."""
    rows: List[List[Any]] = []
    for tr in traces:
        holdings = _fmt_holdings(tr)
        prices = _fmt_prices(tr, dual_series)
        anchor_close, anchor_adj = _close_adj(tr.anchor_price_used, dual_series)
        for et in tr.event_traces:
            ev = et.event
            adj = ev.split_adjustment
            rows.append([
                tr.day_key,
                tr.resolved_date,
                int(tr.anchor_shifted),
                ev.type,
                ev.ticker,
                ev.shares,
                adj.from_shares if adj else "",
                adj.factor if adj else "",
                " -> ".join(adj.chain) if adj else "",
                ev.cash,
                et.anchor_price,
                tr.anchor_price_used.used_date,
                int(tr.anchor_price_used.backfilled),
                "" if anchor_close is None else anchor_close,
                "" if anchor_adj is None else anchor_adj,
                et.benchmark_delta_shares,
                et.benchmark_shares_after,
                tr.day_cash_total,
                holdings,
                prices,
                tr.portfolio_value,
                tr.benchmark_value,
            ])
    return rows


def dump_day_traces(
    traces: Sequence[DayTrace],
    out_dir: str,
    *,
    tag: str = "trace",
    anchor_ticker: str = "VTI",
    price_mode: Optional[str] = None,
    dual_series: Optional[DualSeriesMap] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """
    Dump the trace table for one computation.

    Args:
        traces: DayTrace records in emission order
        out_dir: Output directory (created when missing)
        tag: File name prefix
        anchor_ticker: Benchmark ticker, recorded in the JSON metadata
        price_mode: Mode the values were computed with
        dual_series: ticker -> fetched close/adjclose; adds both prices per used price
        extra: Additional top-level JSON keys

    Returns:
        The JSON path on success, or None when there is nothing to write.
    """
    if not traces:
        log.info("[debug_dump] No traces to write")
        return None

    os.makedirs(out_dir, exist_ok=True)
    ts_tag = sanitize_filename_timestamp(datetime.now(timezone.utc))
    base = f"{tag}_debug_{ts_tag}"
    json_path = os.path.join(out_dir, base + ".json")
    csv_path = os.path.join(out_dir, base + ".csv")

    payload: Dict[str, Any] = {
        "anchor_ticker": anchor_ticker,
        "price_mode": price_mode,
        "days": len(traces),
        "backfilled_prices": sum(
            1 for tr in traces for p in tr.portfolio_prices_used if p.backfilled
        ) + sum(1 for tr in traces if tr.anchor_price_used.backfilled),
        "shifted_days": sum(1 for tr in traces if tr.anchor_shifted),
        "traces": [_trace_payload(tr, dual_series) for tr in traces],
    }
    if extra:
        payload.update(extra)

    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)

    with open(csv_path, "w", newline="", encoding="utf-8") as fcsv:
        w = csv.writer(fcsv)
        w.writerow(CSV_HEADERS)
        w.writerows(trace_rows(traces, dual_series))

    log.info(f"[debug_dump] Trace written: json={json_path} csv={csv_path}")
    return json_path

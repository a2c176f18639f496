#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Presentation transforms of a ComputedSeries ("value modes").

- amount:  raw market values of both legs
- percent: each leg relative to net cash contributed so far,
           (value / net_invested - 1) * 100
- excess:  portfolio minus benchmark (absolute), plus the relative excess
           (portfolio / benchmark - 1) * 100

Transforms never feed back into the computation; NaN marks points where a
ratio is undefined (no net cash invested, zero benchmark value).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Sequence

import numpy as np

from ..shared.models import BUY, ComputedSeries, DayTrace

VALUE_MODES = ("amount", "percent", "excess")


@dataclass
class ValueModeSeries:
    """Curves ready for plotting: label -> values aligned with ts_ms"""
    mode: str
    ts_ms: np.ndarray
    curves: Dict[str, np.ndarray] = field(default_factory=dict)
    unit: str = "amount"


def net_invested_from_traces(traces: Sequence[DayTrace], resolved_dates: Sequence[str]) -> np.ndarray:
    """
    Cumulative BUY cash minus SELL cash, sampled at each resolved date.

    Traces for day buckets merged into one resolved date contribute to that
    date's value.
    """
    index = {d: i for i, d in enumerate(resolved_dates)}
    per_day = np.zeros(len(resolved_dates), dtype=float)
    for tr in traces:
        i = index.get(tr.resolved_date)
        if i is None:
            continue
        for et in tr.event_traces:
            per_day[i] += et.event.cash if et.event.type == BUY else -et.event.cash
    return np.cumsum(per_day)


def _values(points) -> np.ndarray:
    return np.array([p.value for p in points], dtype=float)


def _safe_ratio_pct(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    out = np.full(num.shape, np.nan, dtype=float)
    mask = den > 0
    out[mask] = (num[mask] / den[mask] - 1.0) * 100.0
    return out


def to_value_mode(
    series: ComputedSeries,
    mode: str,
    traces: Sequence[DayTrace] = (),
    portfolio_label: str = "portfolio",
    benchmark_label: str = "VTI",
) -> ValueModeSeries:
    """
    Derive plot curves for ``mode``.

    ``percent`` needs the DayTrace list (for net cash invested per day).
    """
    if mode not in VALUE_MODES:
        raise ValueError(f"value mode must be one of {VALUE_MODES}, got {mode!r}")
    ts = np.array([p.ts_ms for p in series.portfolio], dtype=np.int64)
    port = _values(series.portfolio)
    bench = _values(series.vti)

    if mode == "amount":
        return ValueModeSeries(mode, ts, {portfolio_label: port, benchmark_label: bench}, unit="amount")

    if mode == "percent":
        if not traces and len(port):
            raise ValueError("percent mode requires day traces")
        invested = net_invested_from_traces(traces, series.resolved_iso_dates_et)
        return ValueModeSeries(
            mode,
            ts,
            {portfolio_label: _safe_ratio_pct(port, invested), benchmark_label: _safe_ratio_pct(bench, invested)},
            unit="%",
        )

    excess = port - bench
    return ValueModeSeries(
        mode,
        ts,
        {"excess": excess, "excess_pct": _safe_ratio_pct(port, bench)},
        unit="amount",
    )


def summarize(series: ComputedSeries) -> Dict[str, float]:
    """Last-point summary used by the CLI."""
    if not series.portfolio:
        return {"points": 0}
    p = series.portfolio[-1].value
    b = series.vti[-1].value
    return {
        "points": len(series.portfolio),
        "portfolio_last": p,
        "benchmark_last": b,
        "excess_last": p - b,
        "excess_pct_last": ((p / b - 1.0) * 100.0) if b > 0 else float("nan"),
    }


def as_rows(vm: ValueModeSeries, dates: List[str]) -> List[Dict[str, float]]:
    rows = []
    for i, d in enumerate(dates):
        row: Dict[str, float] = {"date": d, "ts_ms": int(vm.ts_ms[i])}
        for label, values in vm.curves.items():
            row[label] = float(values[i])
        rows.append(row)
    return rows

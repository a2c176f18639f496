#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Chart rendering for the portfolio vs benchmark curves.

Produces a PNG with a date axis built from the series timestamps:
- amount / percent: the two legs as lines
- excess: absolute excess (left axis) and relative excess in % (right axis)
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

import matplotlib
matplotlib.use("Agg")  # non-interactive backend
import matplotlib.dates as mdates
import matplotlib.pyplot as plt
import numpy as np

from ..shared.models import ComputedSeries, DayTrace
from .transforms import to_value_mode

PORTFOLIO_COLOR = "#2E86C1"
BENCHMARK_COLOR = "#E67E22"


def _to_datetimes(ts_ms: np.ndarray):
    return [datetime.fromtimestamp(int(t) / 1000.0, tz=timezone.utc) for t in ts_ms]


def plot_portfolio_vs_benchmark(
    series: ComputedSeries,
    out_dir: str,
    *,
    value_mode: str = "amount",
    traces: Sequence[DayTrace] = (),
    anchor_ticker: str = "VTI",
    price_mode: Optional[str] = None,
    dpi: int = 150,
    width: float = 12.0,
    height: float = 6.0,
    filename: Optional[str] = None,
) -> str:
    """
    Render the curves to ``out_dir`` and return the PNG path.

    Raises:
        ValueError: empty series or unknown value mode
    """
    if not series.portfolio:
        raise ValueError("Cannot plot an empty series")
    vm = to_value_mode(series, value_mode, traces, benchmark_label=anchor_ticker)
    ts = _to_datetimes(vm.ts_ms)

    fig, ax = plt.subplots(figsize=(width, height))
    if value_mode == "excess":
        excess = vm.curves["excess"]
        ax.plot(ts, excess, color=PORTFOLIO_COLOR, linewidth=1.6, label=f"Portfolio - {anchor_ticker}")
        ax.fill_between(ts, 0.0, excess, where=excess >= 0, color="#27AE60", alpha=0.15, interpolate=True)
        ax.fill_between(ts, 0.0, excess, where=excess < 0, color="#E74C3C", alpha=0.15, interpolate=True)
        ax.axhline(0.0, color="#7F8C8D", linewidth=0.8, linestyle="--")
        ax.set_ylabel("Excess (amount)")
        ax_pct = ax.twinx()
        ax_pct.plot(ts, vm.curves["excess_pct"], color=BENCHMARK_COLOR, linewidth=1.0, alpha=0.8, label="Excess (%)")
        ax_pct.set_ylabel("Excess (%)")
        lines = ax.get_lines() + ax_pct.get_lines()
        ax.legend(lines, [ln.get_label() for ln in lines], loc="best", fontsize=9)
    else:
        labels = list(vm.curves.keys())
        ax.plot(ts, vm.curves[labels[0]], color=PORTFOLIO_COLOR, linewidth=1.6, label="Portfolio")
        ax.plot(ts, vm.curves[labels[1]], color=BENCHMARK_COLOR, linewidth=1.6, label=anchor_ticker)
        ax.set_ylabel("Return (%)" if vm.unit == "%" else "Market value")
        if vm.unit == "%":
            ax.axhline(0.0, color="#7F8C8D", linewidth=0.8, linestyle="--")
        ax.legend(loc="best", fontsize=9)

    title = f"Portfolio vs {anchor_ticker}"
    if price_mode:
        title += f" ({price_mode}, {value_mode})"
    ax.set_title(title)
    ax.xaxis.set_major_locator(mdates.AutoDateLocator())
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%Y-%m-%d"))
    ax.grid(True, alpha=0.3)
    fig.autofmt_xdate()
    plt.tight_layout()

    out_base = Path(out_dir)
    out_base.mkdir(parents=True, exist_ok=True)
    last = series.resolved_iso_dates_et[-1] if series.resolved_iso_dates_et else "now"
    out_path = out_base / (filename or f"portfolio_vs_{anchor_ticker.lower()}_{value_mode}_{last}.png")
    plt.savefig(str(out_path), dpi=dpi, bbox_inches="tight")
    plt.close(fig)
    return str(out_path)

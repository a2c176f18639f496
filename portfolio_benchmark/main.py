#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Portfolio vs benchmark runner.
- Loads settings (YAML) and applies CLI overrides
- Parses BUY / SELL trade files (HTML or CSV)
- Fetches prices, computes both curves, writes series JSON, chart and trace dump

Usage examples:
  python -m portfolio_benchmark.main --help
  python -m portfolio_benchmark.main --trades buys.html --sells sells.html
  python -m portfolio_benchmark.main --trades buys.csv --config config/config.yaml --value-mode percent
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .core.chart import plot_portfolio_vs_benchmark
from .core.debug_dump import dump_day_traces
from .core.pipeline import PipelineResult, run_pipeline
from .core.price_source import PriceSource, YahooChartPriceSource
from .core.settings import ConfigError, Settings, apply_cli_overrides, load_settings
from .core.trade_parser import load_trade_file
from .core.transforms import summarize
from .shared.colored_logging import setup_colored_logging
from .shared.errors import PortfolioBenchmarkError
from .shared.models import BUY, SELL, TradeEvent

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Portfolio vs benchmark")
    parser.add_argument("--trades", type=str, required=True, help="BUY trade file (.html/.htm or .csv)")
    parser.add_argument("--sells", type=str, default=None, help="SELL trade file (.html/.htm or .csv)")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--anchor", type=str, default=None, help="Benchmark ticker (default VTI)")
    parser.add_argument("--price-mode", type=str, default=None, choices=["close", "adjclose"], help="Price series to value with")
    parser.add_argument("--value-mode", type=str, default=None, choices=["amount", "percent", "excess"], help="Chart value mode")
    parser.add_argument("--output-dir", type=str, default=None, help="Output directory")
    parser.add_argument("--log-level", type=str, default=None, choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], help="Logging level")
    return parser


def load_events(trades_path: str, sells_path: Optional[str] = None) -> List[TradeEvent]:
    events = load_trade_file(trades_path, BUY)
    if sells_path:
        events.extend(load_trade_file(sells_path, SELL))
    return events


def write_outputs(result: PipelineResult, settings: Settings) -> List[str]:
    """Series JSON, optional chart and optional trace dump; returns written paths."""
    out_dir = Path(settings.output.dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    written: List[str] = []

    series_path = out_dir / f"series_{result.anchor_ticker.lower()}_{result.price_mode}.json"
    with open(series_path, "w", encoding="utf-8") as f:
        json.dump(result.to_dict(), f, ensure_ascii=False, indent=2)
    written.append(str(series_path))

    if settings.output.include_chart and result.series.portfolio:
        written.append(plot_portfolio_vs_benchmark(
            result.series,
            str(out_dir),
            value_mode=settings.output.value_mode,
            traces=result.series.traces,
            anchor_ticker=result.anchor_ticker,
            price_mode=result.price_mode,
            dpi=settings.output.dpi,
            width=settings.output.chart_width,
            height=settings.output.chart_height,
        ))

    if settings.output.include_debug_dump:
        dumped = dump_day_traces(
            result.series.traces,
            str(out_dir),
            tag=result.anchor_ticker.lower(),
            anchor_ticker=result.anchor_ticker,
            price_mode=result.price_mode,
            dual_series=result.series_by_ticker,
            extra={"skipped": [s.to_dict() for s in result.skipped]},
        )
        if dumped:
            written.append(dumped)
    return written


def format_summary(result: PipelineResult) -> str:
    s = summarize(result.series)
    if not s.get("points"):
        return "No points computed"
    lines = [
        f"Points: {s['points']} ({result.series.resolved_iso_dates_et[0]} .. {result.series.resolved_iso_dates_et[-1]})",
        f"Portfolio: {s['portfolio_last']:.2f}",
        f"{result.anchor_ticker}: {s['benchmark_last']:.2f}",
        f"Excess: {s['excess_last']:+.2f} ({s['excess_pct_last']:+.2f}%)",
    ]
    if result.skipped:
        lines.append("Skipped: " + ", ".join(f"{x.ticker} [{x.kind}]" for x in result.skipped))
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None, price_source: Optional[PriceSource] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
        settings = apply_cli_overrides(
            settings,
            anchor=args.anchor,
            price_mode=args.price_mode,
            value_mode=args.value_mode,
            output_dir=args.output_dir,
            log_level=args.log_level,
        )
    except ConfigError as e:
        setup_colored_logging(level=logging.INFO)
        log.error(f"Configuration error: {e}")
        return 2

    setup_colored_logging(level=getattr(logging, settings.logging_level))

    if price_source is None:
        price_source = YahooChartPriceSource(
            base_url=settings.prices.base_url,
            timeout_s=settings.prices.timeout_s,
            max_retries=settings.prices.max_retries,
            backoff_base_s=settings.prices.backoff_base_s,
        )

    try:
        events = load_events(args.trades, args.sells)
        result = run_pipeline(events, settings, price_source)
        written = write_outputs(result, settings)
    except PortfolioBenchmarkError as e:
        log.error(f"Run failed: {e}")
        return 1
    except OSError as e:
        log.error(f"I/O error: {e}")
        return 1

    for path in written:
        log.info(f"Wrote {path}")
    print(format_summary(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Trade history parsing (brokerage BUY / SELL tables -> TradeEvent).

Column-header contract (headers are whitespace-normalized before matching):
- 成交日     trade date, first YYYY/M/D-like match in the cell
- 股票名稱   ticker, first whitespace token of the cell
- 成交股     shares
- 投入成本   cash for BUY tables
- 交割金額   cash for SELL tables

Tables come either from saved HTML pages (pandas.read_html) or from CSV
exports with the same headers (pandas.read_csv, all cells kept as text).
"""
from __future__ import annotations

import logging
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from ..shared.errors import InvalidNumberError, InvalidTickerError, MissingColumnsError
from ..shared.models import BUY, SELL, TradeEvent
from ..shared.utils import normalize_text, parse_number_strict, parse_trade_date

log = logging.getLogger(__name__)

DATE_HEADER = "成交日"
NAME_HEADER = "股票名稱"
SHARES_HEADER = "成交股"
CASH_HEADERS = {BUY: "投入成本", SELL: "交割金額"}


def required_headers(trade_type: str) -> List[str]:
    return [DATE_HEADER, NAME_HEADER, SHARES_HEADER, CASH_HEADERS[trade_type]]


def _header_map(frame: pd.DataFrame) -> Dict[str, Any]:
    hmap: Dict[str, Any] = {}
    for col in frame.columns:
        # read_html yields tuples for multi-row headers; the last level is the label
        label = col[-1] if isinstance(col, tuple) else col
        key = normalize_text(label)
        if key and key not in hmap:
            hmap[key] = col
    return hmap


def _ticker_from_cell(text: str) -> str:
    t = normalize_text(text)
    return t.split(" ")[0] if t else ""


def _is_blank_row(row: Dict[Any, Any]) -> bool:
    return all(normalize_text(v) == "" for v in row.values())


def parse_trade_table(frame: pd.DataFrame, trade_type: str, ctx: Optional[Dict[str, Any]] = None) -> List[TradeEvent]:
    """
    Parse one table of BUY or SELL rows.

    Raises:
        MissingColumnsError: a required header is absent
        InvalidDateError / InvalidNumberError / InvalidTickerError: bad cell
    """
    if trade_type not in CASH_HEADERS:
        raise ValueError(f"trade_type must be BUY or SELL, got {trade_type!r}")
    base_ctx = dict(ctx or {})
    hmap = _header_map(frame)
    missing = [h for h in required_headers(trade_type) if h not in hmap]
    if missing:
        raise MissingColumnsError(
            f"Missing required columns for {trade_type}",
            {**base_ctx, "missing": missing, "available_headers": list(hmap.keys())},
        )

    cash_header = CASH_HEADERS[trade_type]
    events: List[TradeEvent] = []
    for i, row in enumerate(frame.to_dict("records")):
        if _is_blank_row(row):
            continue
        row_ctx = {**base_ctx, "row_index": i, "type": trade_type}
        display, iso = parse_trade_date(row[hmap[DATE_HEADER]], row_ctx)
        ticker = _ticker_from_cell(row[hmap[NAME_HEADER]])
        if not ticker:
            raise InvalidTickerError("Missing ticker", {**row_ctx, "trade_date": display})
        shares = parse_number_strict(row[hmap[SHARES_HEADER]], {**row_ctx, "field": SHARES_HEADER})
        if shares <= 0:
            raise InvalidNumberError(
                f"Shares must be positive: {shares}",
                {**row_ctx, "field": SHARES_HEADER, "raw": row[hmap[SHARES_HEADER]], "reason": "non_positive"},
            )
        cash = parse_number_strict(row[hmap[cash_header]], {**row_ctx, "field": cash_header})
        events.append(TradeEvent(
            type=trade_type,
            trade_date_display=display,
            iso_date_et=iso,
            ticker=ticker,
            shares=shares,
            cash=cash,
            source_year=int(iso[:4]),
        ))
    return events


def parse_trade_tables_html(html: str, trade_type: str, ctx: Optional[Dict[str, Any]] = None) -> List[TradeEvent]:
    """Parse every table in ``html`` carrying the required headers."""
    try:
        tables = pd.read_html(StringIO(html))
    except ValueError:
        tables = []

    needed = set(required_headers(trade_type))
    events: List[TradeEvent] = []
    matched = 0
    seen_headers: List[str] = []
    for t_idx, frame in enumerate(tables):
        headers = list(_header_map(frame).keys())
        seen_headers.extend(headers)
        if not needed.issubset(headers):
            continue
        matched += 1
        events.extend(parse_trade_table(frame, trade_type, {**(ctx or {}), "table_index": t_idx}))

    if matched == 0:
        raise MissingColumnsError(
            f"No {trade_type} table with required columns",
            {**(ctx or {}), "missing": sorted(needed - set(seen_headers)), "available_headers": seen_headers},
        )
    log.info("Parsed %d %s event(s) from %d table(s)", len(events), trade_type, matched)
    return events


def parse_trade_csv(path: str | Path, trade_type: str) -> List[TradeEvent]:
    frame = pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    events = parse_trade_table(frame, trade_type, {"file": str(path)})
    log.info("Parsed %d %s event(s) from %s", len(events), trade_type, path)
    return events


def load_trade_file(path: str | Path, trade_type: str) -> List[TradeEvent]:
    """HTML (.html/.htm) or CSV by file extension."""
    p = Path(path)
    if p.suffix.lower() in (".html", ".htm"):
        return parse_trade_tables_html(p.read_text(encoding="utf-8"), trade_type, {"file": str(p)})
    return parse_trade_csv(p, trade_type)

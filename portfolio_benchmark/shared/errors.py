#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Error taxonomy for the valuation core and its collaborators.

Every error carries a machine-readable ``kind`` plus a structured ``context``
dict (offending ticker/date/event). Errors are raised fail-fast and are never
auto-corrected inside the core; callers decide whether to abort or to drop the
offending ticker and recompute.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class PortfolioBenchmarkError(Exception):
    """Base error with a stable kind string and structured context."""

    kind: str = "PortfolioBenchmarkError"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    @property
    def ticker(self) -> Optional[str]:
        """Ticker named in the context, if any (used by the skip-and-retry policy)."""
        t = self.context.get("ticker")
        if t is None:
            ev = self.context.get("event")
            t = getattr(ev, "ticker", None)
        return str(t) if t else None

    def to_dict(self) -> Dict[str, Any]:
        ctx = {}
        for k, v in self.context.items():
            ctx[k] = v.to_dict() if hasattr(v, "to_dict") else v
        return {"kind": self.kind, "message": self.message, "context": ctx}

    def __str__(self) -> str:
        if not self.context:
            return f"[{self.kind}] {self.message}"
        parts = ", ".join(f"{k}={v!r}" for k, v in sorted(self.context.items()) if k != "event")
        return f"[{self.kind}] {self.message} ({parts})" if parts else f"[{self.kind}] {self.message}"


# ---------- Input parsing ----------

class InvalidDateError(PortfolioBenchmarkError):
    kind = "InvalidDate"


class InvalidNumberError(PortfolioBenchmarkError):
    kind = "InvalidNumber"


class MissingColumnsError(PortfolioBenchmarkError):
    kind = "MissingColumns"


class InvalidTickerError(PortfolioBenchmarkError):
    kind = "InvalidTicker"


# ---------- Core computation ----------

class MissingAnchorError(PortfolioBenchmarkError):
    kind = "MissingAnchor"


class AnchorDateUnresolvedError(PortfolioBenchmarkError):
    kind = "AnchorDateUnresolved"


class PriceMissingError(PortfolioBenchmarkError):
    kind = "PriceMissing"


class MissingPriceSeriesError(PortfolioBenchmarkError):
    kind = "MissingPriceSeries"


class NegativeHoldingError(PortfolioBenchmarkError):
    kind = "NegativeHolding"


class NegativeBenchmarkSharesError(PortfolioBenchmarkError):
    kind = "NegativeBenchmarkShares"


class NoEventsError(PortfolioBenchmarkError):
    kind = "NoEvents"


# ---------- Price fetch ----------

class PriceFetchFailedError(PortfolioBenchmarkError):
    kind = "PriceFetchFailed"


class ChartResponseError(PortfolioBenchmarkError):
    """The chart payload reported ``chart.error``."""
    kind = "ChartError"


class ChartParseError(PortfolioBenchmarkError):
    kind = "ChartParse"


class ChartEmptyError(PortfolioBenchmarkError):
    kind = "ChartEmpty"

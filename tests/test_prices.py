#!/usr/bin/env python3
"""
Unit tests for price lookup and anchor date resolution
"""
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from portfolio_benchmark.core.prices import get_price_at_or_before, resolve_date_by_anchor
from portfolio_benchmark.shared.errors import AnchorDateUnresolvedError, PriceMissingError


class TestGetPriceAtOrBefore:
    def test_exact_hit(self):
        r = get_price_at_or_before({"2024-01-05": 10.0}, "2024-01-05")
        assert (r.used_date, r.price, r.backfilled) == ("2024-01-05", 10.0, False)

    def test_backfill_over_weekend(self):
        r = get_price_at_or_before({"2024-01-05": 10.0}, "2024-01-08")
        assert r.used_date == "2024-01-05"
        assert r.backfilled

    def test_never_looks_forward(self):
        with pytest.raises(PriceMissingError):
            get_price_at_or_before({"2024-01-09": 10.0}, "2024-01-08")

    def test_window_edge_inclusive(self):
        # 7 trading days before 2024-01-12 is 2024-01-03
        r = get_price_at_or_before({"2024-01-03": 9.0}, "2024-01-12", max_back_trading_days=7)
        assert r.used_date == "2024-01-03"

    def test_bounded_backfill_failure(self):
        # only price is 10 trading days earlier
        series = {"2023-12-29": 9.0}
        with pytest.raises(PriceMissingError) as exc:
            get_price_at_or_before(series, "2024-01-12", max_back_trading_days=7, ticker="AAA")
        assert exc.value.kind == "PriceMissing"
        assert exc.value.ticker == "AAA"
        assert exc.value.context["iso_date"] == "2024-01-12"
        assert exc.value.context["max_back_trading_days"] == 7

    def test_zero_window_only_exact(self):
        with pytest.raises(PriceMissingError):
            get_price_at_or_before({"2024-01-05": 10.0}, "2024-01-08", max_back_trading_days=0)


class TestResolveDateByAnchor:
    def test_exact(self):
        r = resolve_date_by_anchor({"2024-01-03": 1.0}, "2024-01-03")
        assert r.resolved_date == "2024-01-03"
        assert not r.shifted

    def test_prefers_previous_trading_day(self):
        anchor = {"2024-01-02": 1.0, "2024-01-04": 1.0}
        r = resolve_date_by_anchor(anchor, "2024-01-03")
        assert r.resolved_date == "2024-01-02"
        assert r.shifted

    def test_next_trading_day(self):
        r = resolve_date_by_anchor({"2024-01-08": 1.0}, "2024-01-05")
        assert r.resolved_date == "2024-01-08"
        assert r.shifted

    def test_weekend_key_resolves_to_friday(self):
        r = resolve_date_by_anchor({"2024-01-05": 1.0, "2024-01-08": 1.0}, "2024-01-06")
        assert r.resolved_date == "2024-01-05"

    def test_unresolved(self):
        with pytest.raises(AnchorDateUnresolvedError) as exc:
            resolve_date_by_anchor({"2024-01-15": 1.0}, "2024-01-03")
        assert exc.value.context["tried"] == ["2024-01-03", "2024-01-02", "2024-01-04"]

#!/usr/bin/env python3
"""
Unit tests for cell-text helpers (strict number and trade-date parsing)
"""
import math
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from portfolio_benchmark.shared.errors import InvalidDateError, InvalidNumberError
from portfolio_benchmark.shared.utils import (
    normalize_text,
    parse_number_strict,
    parse_trade_date,
)


class TestNormalizeText:
    def test_collapses_whitespace_and_nbsp(self):
        assert normalize_text("  AAPL  Apple \n Inc ") == "AAPL Apple Inc"

    def test_none_and_nan(self):
        assert normalize_text(None) == ""
        assert normalize_text(float("nan")) == ""


class TestParseNumberStrict:
    def test_thousands_separator(self):
        assert parse_number_strict("1,572.66") == pytest.approx(1572.66)

    def test_surrounding_whitespace(self):
        assert parse_number_strict(" 12 ") == 12.0

    def test_numbers_pass_through(self):
        assert parse_number_strict(5) == 5.0
        assert parse_number_strict(2.5) == 2.5

    @pytest.mark.parametrize("raw", ["", "--", "   ", None])
    def test_empty_cells(self, raw):
        with pytest.raises(InvalidNumberError) as exc:
            parse_number_strict(raw, {"field": "成交股"})
        assert exc.value.context["reason"] == "empty"
        assert exc.value.context["field"] == "成交股"

    @pytest.mark.parametrize("raw", ["abc", "inf", "NaN", "1.2.3"])
    def test_unparsable_or_non_finite(self, raw):
        with pytest.raises(InvalidNumberError) as exc:
            parse_number_strict(raw)
        assert exc.value.context["reason"] == "nan"

    def test_non_finite_float_rejected(self):
        with pytest.raises(InvalidNumberError):
            parse_number_strict(math.inf)


class TestParseTradeDate:
    def test_slash_date_padded(self):
        assert parse_trade_date("2024/1/2") == ("2024/01/02", "2024-01-02")

    def test_first_match_inside_text(self):
        assert parse_trade_date("成交 2024-12-30 (T+2)") == ("2024/12/30", "2024-12-30")

    def test_not_a_real_date(self):
        with pytest.raises(InvalidDateError):
            parse_trade_date("2024/02/30")

    def test_no_date(self):
        with pytest.raises(InvalidDateError) as exc:
            parse_trade_date("n/a", {"row_index": 3})
        assert exc.value.context["row_index"] == 3

#!/usr/bin/env python3
"""
Unit tests for trading-day arithmetic

Tests cover:
- ISO date -> UTC timestamp conversion and validation
- Weekend detection
- shift_trading_days() across weekends in both directions
- Unix seconds -> US/Eastern date bucketing
"""
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from portfolio_benchmark.shared.errors import InvalidDateError
from portfolio_benchmark.shared.trading_calendar import (
    add_calendar_days,
    iso_date_to_timestamp_ms,
    iso_date_to_timestamp_s,
    is_weekend,
    shift_trading_days,
    timestamp_s_to_iso_date_et,
)


class TestTimestamps:
    def test_epoch(self):
        assert iso_date_to_timestamp_ms("1970-01-01") == 0

    def test_utc_midnight(self):
        assert iso_date_to_timestamp_ms("2024-01-02") == 1704153600000
        assert iso_date_to_timestamp_s("2024-01-02") == 1704153600

    @pytest.mark.parametrize("bad", [
        "2024-1-2", "2024/01/02", "", "2024-02-30", "2024-13-01", "x2024-01-02",
        "2024-01-02\n",
        "\uff12\uff10\uff12\uff14-01-02",  # full-width digits
    ])
    def test_invalid_dates_raise(self, bad):
        with pytest.raises(InvalidDateError) as exc:
            iso_date_to_timestamp_ms(bad)
        assert exc.value.kind == "InvalidDate"
        assert exc.value.context["iso_date"] == bad

    def test_add_calendar_days_crosses_month(self):
        assert add_calendar_days("2024-02-28", 2) == "2024-03-01"


class TestWeekend:
    def test_saturday_sunday(self):
        assert is_weekend("2024-01-06")
        assert is_weekend("2024-01-07")

    def test_weekdays(self):
        for d in ("2024-01-01", "2024-01-03", "2024-01-05"):
            assert not is_weekend(d)


class TestShiftTradingDays:
    def test_zero_delta_returns_input_even_on_weekend(self):
        assert shift_trading_days("2024-01-06", 0) == "2024-01-06"

    def test_back_over_weekend(self):
        # Monday -> previous Friday
        assert shift_trading_days("2024-01-08", -1) == "2024-01-05"

    def test_forward_over_weekend(self):
        assert shift_trading_days("2024-01-05", 1) == "2024-01-08"

    def test_from_weekend(self):
        assert shift_trading_days("2024-01-06", 1) == "2024-01-08"
        assert shift_trading_days("2024-01-07", -1) == "2024-01-05"

    def test_full_week(self):
        assert shift_trading_days("2024-01-12", -5) == "2024-01-05"
        assert shift_trading_days("2024-01-05", 5) == "2024-01-12"


class TestEasternBucketing:
    def test_session_open(self):
        # 2024-01-02 14:30 UTC = 09:30 ET
        assert timestamp_s_to_iso_date_et(1704205800) == "2024-01-02"

    def test_late_utc_still_previous_et_day(self):
        # 2024-01-03 02:00 UTC = 2024-01-02 21:00 ET
        assert timestamp_s_to_iso_date_et(1704247200) == "2024-01-02"

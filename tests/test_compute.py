#!/usr/bin/env python3
"""
Unit tests for the valuation core

Tests cover:
- Round-trip BUY/SELL scenario with an anchor date shift
- Invariant failures (negative holding, negative benchmark shares)
- Missing anchor / missing price series / bounded backfill failure
- BUY-before-SELL ordering inside a day bucket
- Determinism and numeric parity between compute() and compute_with_trace()
- Merging of raw day keys that resolve to the same trading day
- apply_day_bucket() leaves the caller's ledger untouched
"""
import pytest
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from portfolio_benchmark.core.compute import (
    apply_day_bucket,
    compute,
    compute_with_trace,
    group_events_by_day,
    order_day_events,
)
from portfolio_benchmark.core.tracing import (
    CallbackTracer,
    ComputeTracer,
    FanoutTracer,
    ListTracer,
    NullTracer,
)
from portfolio_benchmark.shared.errors import (
    MissingAnchorError,
    MissingPriceSeriesError,
    NegativeBenchmarkSharesError,
    NegativeHoldingError,
    PriceMissingError,
)
from portfolio_benchmark.shared.models import BUY, SELL, Ledger, TradeEvent


def _ev(type_, iso, ticker, shares, cash):
    return TradeEvent(
        type=type_,
        trade_date_display=iso.replace("-", "/"),
        iso_date_et=iso,
        ticker=ticker,
        shares=shares,
        cash=cash,
        source_year=int(iso[:4]),
    )


@pytest.fixture
def round_trip():
    events = [
        _ev(BUY, "2024-01-03", "AAA", 1.0, 100.0),
        _ev(SELL, "2024-01-10", "AAA", 1.0, 100.0),
    ]
    prices = {
        "AAA": {"2024-01-02": 10.0, "2024-01-10": 12.0},
        "VTI": {"2024-01-02": 100.0, "2024-01-10": 110.0},
    }
    return events, prices


class TestRoundTrip:
    def test_dates_and_values(self, round_trip):
        events, prices = round_trip
        out = compute(events, prices)
        assert out.resolved_iso_dates_et == ["2024-01-02", "2024-01-10"]
        assert [p.value for p in out.portfolio] == pytest.approx([10.0, 0.0])
        assert [p.value for p in out.vti] == pytest.approx([100.0, 10.0])

    def test_timestamps_are_resolved_utc_midnight(self, round_trip):
        events, prices = round_trip
        out = compute(events, prices)
        assert out.portfolio[0].ts_ms == 1704153600000
        assert out.vti[0].ts_ms == out.portfolio[0].ts_ms

    def test_input_order_irrelevant(self, round_trip):
        events, prices = round_trip
        a = compute(events, prices)
        b = compute(list(reversed(events)), prices)
        assert a == b

    def test_price_map_order_irrelevant(self):
        events = [
            _ev(BUY, "2024-01-02", "CCC", 3.0, 30.0),
            _ev(BUY, "2024-01-02", "AAA", 1.0, 100.0),
            _ev(BUY, "2024-01-03", "BBB", 2.0, 40.0),
            _ev(SELL, "2024-01-04", "AAA", 0.5, 55.0),
            _ev(BUY, "2024-01-05", "CCC", 1.0, 11.0),
        ]
        prices = {
            "AAA": {"2024-01-02": 100.0, "2024-01-04": 110.0, "2024-01-05": 0.1},
            "BBB": {"2024-01-02": 20.0, "2024-01-03": 20.5, "2024-01-05": 3.0},
            "CCC": {"2024-01-02": 10.0, "2024-01-05": 11.0},
            "VTI": {d: 100.0 + i for i, d in enumerate(["2024-01-02", "2024-01-03", "2024-01-04", "2024-01-05"])},
        }
        reordered = dict(reversed(list(prices.items())))
        assert list(reordered) != list(prices)
        a = compute_with_trace(events, prices)
        b = compute_with_trace(events, reordered)
        assert a.portfolio == b.portfolio
        assert a.vti == b.vti
        assert [t.to_dict() for t in a.traces] == [t.to_dict() for t in b.traces]
        assert compute(events, prices) == compute(events, reordered)


class TestInvariants:
    def test_negative_holding(self):
        events = [
            _ev(BUY, "2024-01-02", "AAA", 1.0, 100.0),
            _ev(SELL, "2024-01-03", "AAA", 2.0, 100.0),
        ]
        prices = {
            "AAA": {"2024-01-02": 10.0, "2024-01-03": 10.0},
            "VTI": {"2024-01-02": 100.0, "2024-01-03": 100.0},
        }
        with pytest.raises(NegativeHoldingError) as exc:
            compute(events, prices)
        assert exc.value.ticker == "AAA"
        assert exc.value.context["day_key"] == "2024-01-03"
        assert exc.value.context["holding"] == pytest.approx(-1.0)

    def test_negative_benchmark_shares(self):
        events = [
            _ev(BUY, "2024-01-02", "AAA", 1.0, 100.0),
            _ev(SELL, "2024-01-03", "AAA", 1.0, 200.0),
        ]
        prices = {
            "AAA": {"2024-01-02": 10.0, "2024-01-03": 20.0},
            "VTI": {"2024-01-02": 100.0, "2024-01-03": 100.0},
        }
        with pytest.raises(NegativeBenchmarkSharesError) as exc:
            compute(events, prices)
        assert exc.value.kind == "NegativeBenchmarkShares"

    def test_buy_before_sell_within_day(self):
        events = [
            _ev(SELL, "2024-01-02", "AAA", 1.0, 50.0),
            _ev(BUY, "2024-01-02", "AAA", 1.0, 100.0),
        ]
        prices = {"AAA": {"2024-01-02": 10.0}, "VTI": {"2024-01-02": 100.0}}
        out = compute(events, prices)
        assert out.portfolio[0].value == pytest.approx(0.0)
        assert out.vti[0].value == pytest.approx(50.0)

    def test_order_day_events_is_stable(self):
        s1 = _ev(SELL, "2024-01-02", "A", 1.0, 1.0)
        b1 = _ev(BUY, "2024-01-02", "B", 1.0, 1.0)
        b2 = _ev(BUY, "2024-01-02", "C", 1.0, 1.0)
        assert order_day_events([s1, b1, b2]) == [b1, b2, s1]


class TestMissingData:
    def test_missing_anchor(self):
        with pytest.raises(MissingAnchorError) as exc:
            compute([_ev(BUY, "2024-01-02", "AAA", 1.0, 10.0)], {"AAA": {"2024-01-02": 1.0}})
        assert exc.value.ticker == "VTI"

    def test_custom_anchor(self):
        events = [_ev(BUY, "2024-01-02", "AAA", 1.0, 10.0)]
        prices = {"AAA": {"2024-01-02": 1.0}, "SPY": {"2024-01-02": 5.0}}
        out = compute(events, prices, anchor_ticker="SPY")
        assert out.vti[0].value == pytest.approx(10.0)

    def test_missing_price_series(self):
        events = [_ev(BUY, "2024-01-02", "BBB", 1.0, 10.0)]
        with pytest.raises(MissingPriceSeriesError) as exc:
            compute(events, {"VTI": {"2024-01-02": 100.0}})
        assert exc.value.ticker == "BBB"

    def test_bounded_backfill_failure(self):
        events = [_ev(BUY, "2024-01-12", "AAA", 1.0, 10.0)]
        prices = {"AAA": {"2023-12-29": 9.0}, "VTI": {"2024-01-12": 100.0}}
        with pytest.raises(PriceMissingError) as exc:
            compute(events, prices, max_back_trading_days=7)
        assert exc.value.ticker == "AAA"

    def test_empty_events(self):
        out = compute([], {"VTI": {"2024-01-02": 100.0}})
        assert out.resolved_iso_dates_et == []
        assert out.portfolio == [] and out.vti == []


class TestTrace:
    def test_parity_with_plain_compute(self, round_trip):
        events, prices = round_trip
        plain = compute(events, prices)
        traced = compute_with_trace(events, prices)
        assert traced.resolved_iso_dates_et == plain.resolved_iso_dates_et
        assert traced.portfolio == plain.portfolio
        assert traced.vti == plain.vti

    def test_deterministic(self, round_trip):
        events, prices = round_trip
        a = compute_with_trace(events, prices)
        b = compute_with_trace(events, prices)
        assert [t.to_dict() for t in a.traces] == [t.to_dict() for t in b.traces]

    def test_trace_contents(self, round_trip):
        events, prices = round_trip
        traced = compute_with_trace(events, prices)
        first, second = traced.traces
        assert first.day_key == "2024-01-03"
        assert first.resolved_date == "2024-01-02"
        assert first.anchor_shifted
        assert first.event_traces[0].benchmark_delta_shares == pytest.approx(1.0)
        assert first.holdings_after == [{"ticker": "AAA", "shares": 1.0}]
        assert first.portfolio_prices_used[0].used_date == "2024-01-02"
        assert second.holdings_after == []
        assert second.benchmark_shares == pytest.approx(1.0 - 100.0 / 110.0)
        assert second.to_dict()["events"][0]["event"]["type"] == SELL

    def test_on_day_callback_and_tracer(self, round_trip):
        events, prices = round_trip
        seen = []
        traced = compute_with_trace(events, prices, on_day=seen.append)
        assert seen == traced.traces

        tracer = ListTracer()
        compute(events, prices, tracer=tracer)
        assert [t.to_dict() for t in tracer.traces] == [t.to_dict() for t in traced.traces]

    def test_backfilled_price_is_recorded(self):
        events = [_ev(BUY, "2024-01-08", "AAA", 2.0, 100.0)]
        prices = {"AAA": {"2024-01-05": 10.0}, "VTI": {"2024-01-08": 100.0}}
        traced = compute_with_trace(events, prices)
        used = traced.traces[0].portfolio_prices_used[0]
        assert used.backfilled
        assert used.used_date == "2024-01-05"
        assert traced.portfolio[0].value == pytest.approx(20.0)


class TestMerge:
    def test_two_keys_one_resolved_date(self):
        # Saturday key resolves to the Friday anchor bucket
        events = [
            _ev(BUY, "2024-01-05", "AAA", 1.0, 100.0),
            _ev(BUY, "2024-01-06", "AAA", 1.0, 100.0),
        ]
        prices = {"AAA": {"2024-01-05": 10.0}, "VTI": {"2024-01-05": 100.0}}
        traced = compute_with_trace(events, prices)
        assert traced.resolved_iso_dates_et == ["2024-01-05"]
        assert traced.portfolio[0].value == pytest.approx(20.0)
        assert traced.vti[0].value == pytest.approx(200.0)
        assert len(traced.traces) == 2
        assert [t.day_key for t in traced.traces] == ["2024-01-05", "2024-01-06"]

    def test_dates_strictly_ascending(self):
        events = [
            _ev(BUY, "2024-01-02", "AAA", 1.0, 10.0),
            _ev(BUY, "2024-01-03", "AAA", 1.0, 10.0),
            _ev(BUY, "2024-01-06", "AAA", 1.0, 10.0),
            _ev(BUY, "2024-01-09", "AAA", 1.0, 10.0),
        ]
        vti = {d: 100.0 for d in ("2024-01-02", "2024-01-04", "2024-01-05", "2024-01-09")}
        out = compute(events, {"AAA": dict(vti), "VTI": vti})
        dates = out.resolved_iso_dates_et
        assert dates == sorted(set(dates))
        assert len(dates) == len(out.portfolio) == len(out.vti)


class TestApplyDayBucket:
    def test_ledger_not_mutated(self):
        ledger = Ledger(holdings={"AAA": 1.0}, benchmark_shares=1.0)
        anchor = {"2024-01-02": 100.0}
        new_ledger, day = apply_day_bucket(
            ledger,
            "2024-01-02",
            [_ev(BUY, "2024-01-02", "AAA", 1.0, 100.0)],
            anchor_series=anchor,
            price_series_by_ticker={"AAA": {"2024-01-02": 5.0}, "VTI": anchor},
        )
        assert ledger.holdings == {"AAA": 1.0}
        assert ledger.benchmark_shares == 1.0
        assert new_ledger.holdings == {"AAA": 2.0}
        assert new_ledger.benchmark_shares == pytest.approx(2.0)
        assert day.portfolio_value == pytest.approx(10.0)
        assert day.trace is None

    def test_group_events_by_day(self):
        a = _ev(BUY, "2024-01-03", "A", 1.0, 1.0)
        b = _ev(BUY, "2024-01-02", "B", 1.0, 1.0)
        c = _ev(SELL, "2024-01-03", "A", 1.0, 1.0)
        keys, buckets = group_events_by_day([a, b, c])
        assert keys == ["2024-01-02", "2024-01-03"]
        assert buckets["2024-01-03"] == [a, c]


class TestTracers:
    def test_null_tracer_same_numbers(self, round_trip):
        events, prices = round_trip
        assert compute(events, prices, tracer=NullTracer()) == compute(events, prices)

    def test_fanout_and_callback(self, round_trip):
        events, prices = round_trip
        seen = []
        collector = ListTracer()
        compute(events, prices, tracer=FanoutTracer(collector, CallbackTracer(seen.append), None))
        assert len(collector.traces) == 2
        assert seen == collector.traces

    def test_base_tracer_is_abstract(self, round_trip):
        events, prices = round_trip
        with pytest.raises(NotImplementedError):
            compute(events, prices, tracer=ComputeTracer())

from __future__ import annotations

from datetime import date

import pandas as pd
import pytest
from yfinance.exceptions import YFPricesMissingError, YFTzMissingError

from analytics.kpi import (
    InvalidInputError,
    KpiResult,
    calculate,
    compute_symbol_kpis,
    normalise_symbols,
    run_kpi_report,
)
from data_providers.base import PriceRequest, PriceResult, Quote, RetrievalError, quotes_to_frame
from data_providers.yahoo import YahooPriceProvider

START = date(2024, 1, 1)
DAY = 86_400
EPOCH_2024 = 1_704_067_200


def _quotes(adjcloses, closes=None):
    closes = closes or [value + 1.0 for value in adjcloses]
    return [
        Quote(
            timestamp=EPOCH_2024 + position * DAY,
            open=close,
            high=close + 2.0,
            low=close - 2.0,
            close=close,
            adjclose=adj,
            volume=1000,
        )
        for position, (adj, close) in enumerate(zip(adjcloses, closes))
    ]


class FakeProvider:
    """Serves canned quote series per symbol and records every request."""

    def __init__(self, series):
        self.series = series
        self.requests: list[PriceRequest] = []

    def get_price_history(self, request: PriceRequest) -> PriceResult:
        self.requests.append(request)
        outcome = self.series[request.symbol]
        if isinstance(outcome, Exception):
            raise outcome
        return PriceResult(data=quotes_to_frame(outcome), from_cache=False, cache_path=None)


def _assert_absent(result: KpiResult):
    assert result.minimum is None
    assert result.maximum is None
    assert result.prices is None
    assert result.moving_average is None
    assert result.price_change is None
    assert result.last_quote is None
    assert result.last_sma is None
    assert not result.has_data
    assert not result.is_reportable


def test_calculate_populates_every_field():
    quotes = _quotes([10.0, 20.0, 30.0, 40.0])

    result = calculate("ACME", START, quotes, window=2)

    assert result.minimum == 10.0
    assert result.maximum == 40.0
    assert result.moving_average.tolist() == [15.0, 25.0, 35.0]
    assert result.last_sma == 35.0
    assert result.price_change.absolute == pytest.approx(30.0)
    assert result.price_change.fraction == pytest.approx(3.0)
    assert result.last_quote == quotes[-1]
    assert result.is_reportable


def test_calculate_uses_adjusted_close_and_keeps_raw_last_quote():
    quotes = _quotes([10.0, 12.0], closes=[20.0, 24.0])

    result = calculate("ACME", START, quotes, window=1)

    assert result.prices.tolist() == [10.0, 12.0]
    assert result.maximum == 12.0
    assert result.last_quote.close == 24.0


def test_calculate_with_raw_close_field():
    quotes = _quotes([10.0, 12.0], closes=[20.0, 24.0])

    result = calculate("ACME", START, quotes, window=1, price_field="close")

    assert result.minimum == 20.0
    assert result.maximum == 24.0


def test_calculate_empty_series_is_fully_absent():
    _assert_absent(calculate("ACME", START, [], window=3))


def test_calculate_short_series_keeps_empty_moving_average():
    result = calculate("ACME", START, _quotes([1.0, 2.0]), window=5)

    assert result.has_data
    assert result.minimum == 1.0
    assert result.moving_average is not None and result.moving_average.empty
    assert result.last_sma is None
    assert not result.is_reportable


def test_calculate_is_idempotent():
    quotes = _quotes([101.3, 99.7, 104.2, 103.9, 98.1])

    first = calculate("ACME", START, quotes, window=3)
    second = calculate("ACME", START, quotes, window=3)

    assert first == second
    assert first.moving_average.tolist() == second.moving_average.tolist()


def test_calculate_rejects_bad_window():
    with pytest.raises(InvalidInputError):
        calculate("ACME", START, _quotes([1.0]), window=0)


def test_compute_symbol_kpis_absent_on_retrieval_error(caplog):
    provider = FakeProvider({"BAD": RetrievalError("unknown symbol")})

    with caplog.at_level("ERROR"):
        result = compute_symbol_kpis(provider, "BAD", START, 2, end=date(2024, 2, 1))

    _assert_absent(result)
    assert "BAD" in caplog.text


def test_compute_symbol_kpis_empty_series_is_not_an_error(caplog):
    provider = FakeProvider({"NONE": []})

    with caplog.at_level("INFO"):
        result = compute_symbol_kpis(provider, "NONE", START, 2, end=date(2024, 2, 1))

    _assert_absent(result)
    assert not [record for record in caplog.records if record.levelname == "ERROR"]


def test_compute_symbol_kpis_zero_base_price_is_a_symbol_failure():
    provider = FakeProvider({"ZERO": _quotes([0.0, 4.0])})

    result = compute_symbol_kpis(provider, "ZERO", START, 1, end=date(2024, 2, 1))

    _assert_absent(result)


def test_run_kpi_report_failure_does_not_block_next_symbol():
    provider = FakeProvider(
        {
            "BAD": RetrievalError("network down"),
            "GOOD": _quotes([10.0, 20.0, 30.0, 40.0]),
        }
    )

    results = run_kpi_report(provider, ["bad", " good "], START, 2, today=date(2024, 2, 1))

    assert [result.symbol for result in results] == ["BAD", "GOOD"]
    _assert_absent(results[0])
    assert results[1].last_sma == 35.0
    assert [request.symbol for request in provider.requests] == ["BAD", "GOOD"]


def test_run_kpi_report_passes_range_to_provider():
    provider = FakeProvider({"ACME": _quotes([1.0, 2.0])})

    run_kpi_report(provider, ["ACME"], START, 1, today=date(2024, 3, 1))

    request = provider.requests[0]
    assert request.start == START
    assert request.end == date(2024, 3, 1)
    assert request.interval == "1d"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"window": 0},
        {"window": -3},
        {"start": date(2030, 1, 1)},
        {"symbols": ["  ", ""]},
        {"price_field": "high"},
    ],
)
def test_run_kpi_report_invalid_input_makes_no_provider_call(kwargs):
    provider = FakeProvider({})
    arguments = {"symbols": ["ACME"], "start": START, "window": 2}
    arguments.update(kwargs)
    price_field = arguments.pop("price_field", "adjclose")

    with pytest.raises(InvalidInputError):
        run_kpi_report(provider, today=date(2024, 2, 1), price_field=price_field, **arguments)

    assert provider.requests == []


def test_normalise_symbols_keeps_order():
    assert normalise_symbols(["msft", "", " aapl"]) == ["MSFT", "AAPL"]


def test_results_are_independent_per_symbol():
    provider = FakeProvider({"A": _quotes([1.0, 2.0, 3.0]), "B": _quotes([7.0, 8.0, 9.0])})

    together = run_kpi_report(provider, ["A", "B"], START, 2, today=date(2024, 2, 1))
    alone = run_kpi_report(provider, ["B"], START, 2, today=date(2024, 2, 1))

    assert together[1] == alone[0]
    assert isinstance(together[0].prices, pd.Series)


def test_unexpected_provider_error_only_affects_that_symbol(caplog):
    provider = FakeProvider({"ODD": KeyError("adj_close"), "GOOD": _quotes([10.0, 20.0])})

    with caplog.at_level("ERROR"):
        results = run_kpi_report(provider, ["ODD", "GOOD"], START, 1, today=date(2024, 2, 1))

    _assert_absent(results[0])
    assert results[1].is_reportable
    assert "ODD" in caplog.text


def test_short_series_warns_once(caplog):
    provider = FakeProvider({"SHORT": _quotes([1.0, 2.0])})

    with caplog.at_level("WARNING"):
        result = compute_symbol_kpis(provider, "SHORT", START, 5, end=date(2024, 2, 1))

    assert result.has_data
    warnings = [record for record in caplog.records if record.levelname == "WARNING"]
    assert len(warnings) == 1


def _yahoo_history(symbol_outcomes, monkeypatch):
    class Ticker:
        def __init__(self, symbol):
            self.symbol = symbol

        def history(self, **kwargs):
            outcome = symbol_outcomes[self.symbol]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

    monkeypatch.setattr("data_providers.yahoo.yf.Ticker", Ticker)
    monkeypatch.setattr("data_providers.yahoo.time.sleep", lambda _seconds: None)


def _daily_history(adjcloses):
    index = pd.date_range("2024-01-02", periods=len(adjcloses), freq="D", name="Date", tz="America/New_York")
    return pd.DataFrame(
        {
            "Open": adjcloses,
            "High": adjcloses,
            "Low": adjcloses,
            "Close": adjcloses,
            "Adj Close": adjcloses,
            "Volume": [100] * len(adjcloses),
        },
        index=index,
    )


def test_corrupt_cache_for_one_symbol_does_not_stop_the_next(tmp_path, monkeypatch):
    _yahoo_history(
        {"BAD": YFTzMissingError("BAD"), "GOOD": _daily_history([10.0, 20.0, 30.0])},
        monkeypatch,
    )
    provider = YahooPriceProvider(cache_dir=tmp_path, max_retries=1)
    corrupt = provider.cache_file("BAD", "1d")
    corrupt.parent.mkdir(parents=True, exist_ok=True)
    corrupt.write_text("garbage\nnot,a,date\n", encoding="utf-8")

    results = run_kpi_report(provider, ["BAD", "GOOD"], START, 2, today=date(2024, 1, 10))

    _assert_absent(results[0])
    assert results[1].last_sma == 25.0


def test_unknown_yahoo_symbol_is_logged_as_failure(tmp_path, monkeypatch, caplog):
    _yahoo_history({"ZZZZNOTASYMBOL123": YFTzMissingError("ZZZZNOTASYMBOL123")}, monkeypatch)
    provider = YahooPriceProvider(cache_dir=tmp_path, max_retries=1, use_cache=False)

    with caplog.at_level("INFO"):
        result = compute_symbol_kpis(provider, "ZZZZNOTASYMBOL123", START, 2, end=date(2024, 2, 1))

    _assert_absent(result)
    errors = [r for r in caplog.records if r.name == "analytics.kpi" and r.levelname == "ERROR"]
    assert errors and "ZZZZNOTASYMBOL123" in errors[0].getMessage()


def test_empty_yahoo_range_is_not_logged_as_failure(tmp_path, monkeypatch, caplog):
    _yahoo_history({"ACME": YFPricesMissingError("ACME", " (1d 2024-01-06 -> 2024-01-07)")}, monkeypatch)
    provider = YahooPriceProvider(cache_dir=tmp_path, use_cache=False)

    with caplog.at_level("INFO"):
        result = compute_symbol_kpis(provider, "ACME", date(2024, 1, 6), 2, end=date(2024, 1, 7))

    _assert_absent(result)
    assert not [r for r in caplog.records if r.levelname == "ERROR"]

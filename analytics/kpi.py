"""Per-symbol KPI computation and the report run over many symbols."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence

import pandas as pd

from data_providers.base import PriceProvider, Quote, RetrievalError, fetch_quotes
from indicators.extremes import max_of, min_of
from indicators.moving_average import last_value, windowed_moving_average
from indicators.price_change import PriceChange, ZeroBasePriceError, price_change

LOGGER = logging.getLogger(__name__)

PRICE_FIELDS = ("adjclose", "close")


class InvalidInputError(ValueError):
    """Raised for report arguments that are rejected before any retrieval."""


@dataclass(frozen=True, eq=False)
class KpiResult:
    """Derived statistics for one symbol over ``[start, today]``.

    Either every derived field is populated from a non-empty quote series or
    none is. ``moving_average`` may be populated yet empty when the series is
    shorter than ``window``.
    """

    symbol: str
    start: date
    window: int
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    prices: Optional[pd.Series] = None
    moving_average: Optional[pd.Series] = None
    price_change: Optional[PriceChange] = None
    last_quote: Optional[Quote] = None

    @classmethod
    def absent(cls, symbol: str, start: date, window: int) -> "KpiResult":
        return cls(symbol=symbol, start=start, window=window)

    @property
    def has_data(self) -> bool:
        return self.last_quote is not None

    @property
    def last_sma(self) -> Optional[float]:
        return last_value(self.moving_average)

    @property
    def is_reportable(self) -> bool:
        return self.has_data and self.last_sma is not None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KpiResult):
            return NotImplemented
        return (
            (self.symbol, self.start, self.window, self.minimum, self.maximum, self.price_change, self.last_quote)
            == (other.symbol, other.start, other.window, other.minimum, other.maximum, other.price_change, other.last_quote)
            and _series_equal(self.prices, other.prices)
            and _series_equal(self.moving_average, other.moving_average)
        )


def _series_equal(left: Optional[pd.Series], right: Optional[pd.Series]) -> bool:
    if left is None or right is None:
        return left is right
    return left.equals(right)


def _validate_window(window: int) -> None:
    if isinstance(window, bool) or not isinstance(window, int) or window <= 0:
        raise InvalidInputError(f"Moving average window must be a positive integer, got {window!r}")


def price_series(quotes: Sequence[Quote], price_field: str = "adjclose") -> pd.Series:
    """Return ``price_field`` of every quote as a series indexed by timestamp."""

    if price_field not in PRICE_FIELDS:
        raise InvalidInputError(f"Unknown price field {price_field!r}; expected one of {PRICE_FIELDS}")
    return pd.Series(
        [float(getattr(quote, price_field)) for quote in quotes],
        index=pd.Index([quote.timestamp for quote in quotes], name="timestamp", dtype="int64"),
        name=price_field,
        dtype=float,
    )


def calculate(
    symbol: str,
    start: date,
    quotes: Sequence[Quote],
    window: int,
    price_field: str = "adjclose",
) -> KpiResult:
    """Compute min, max, SMA and price change for one symbol's quote series.

    All statistics use ``price_field`` (adjusted close by default); the last raw
    quote is kept alongside for display. An empty series yields the absent
    result. Raises :class:`ZeroBasePriceError` when the relative change is
    undefined.
    """

    _validate_window(window)
    if not quotes:
        return KpiResult.absent(symbol, start, window)

    prices = price_series(quotes, price_field)
    change = price_change(prices)
    return KpiResult(
        symbol=symbol,
        start=start,
        window=window,
        minimum=min_of(prices),
        maximum=max_of(prices),
        prices=prices,
        moving_average=windowed_moving_average(window, prices),
        price_change=change,
        last_quote=quotes[-1],
    )


def compute_symbol_kpis(
    provider: PriceProvider,
    symbol: str,
    start: date,
    window: int,
    *,
    price_field: str = "adjclose",
    interval: str = "1d",
    end: date | None = None,
) -> KpiResult:
    """Fetch and compute KPIs for ``symbol``; failures leave the result absent."""

    try:
        quotes = fetch_quotes(provider, symbol, start, end=end, interval=interval)
    except RetrievalError as exc:
        LOGGER.error(
            "Could not calculate performance metrics for %s from %s. Error: %s",
            symbol,
            start,
            exc,
        )
        return KpiResult.absent(symbol, start, window)
    except Exception as exc:  # pylint: disable=broad-except
        LOGGER.exception("Unexpected error retrieving %s from %s: %s", symbol, start, exc)
        return KpiResult.absent(symbol, start, window)

    if not quotes:
        LOGGER.info("No quotes for %s in range starting %s", symbol, start)
        return KpiResult.absent(symbol, start, window)

    try:
        result = calculate(symbol, start, quotes, window, price_field=price_field)
    except ZeroBasePriceError as exc:
        LOGGER.error(
            "Could not calculate performance metrics for %s from %s. Error: %s",
            symbol,
            start,
            exc,
        )
        return KpiResult.absent(symbol, start, window)

    if result.last_sma is None:
        LOGGER.warning(
            "%s has %s quotes, fewer than the %s-period window; no moving average available",
            symbol,
            len(quotes),
            window,
        )
    return result


def normalise_symbols(symbols: Iterable[str]) -> List[str]:
    """Strip and upper-case symbols, dropping blanks while keeping order."""

    cleaned: List[str] = []
    for raw_symbol in symbols:
        symbol = raw_symbol.strip().upper()
        if symbol:
            cleaned.append(symbol)
    return cleaned


def run_kpi_report(
    provider: PriceProvider,
    symbols: Iterable[str],
    start: date,
    window: int,
    *,
    price_field: str = "adjclose",
    interval: str = "1d",
    today: date | None = None,
) -> List[KpiResult]:
    """Compute KPIs for every symbol in order, one result per symbol.

    Arguments are validated before the first retrieval. A failure for one
    symbol never stops the remaining ones.
    """

    _validate_window(window)
    if price_field not in PRICE_FIELDS:
        raise InvalidInputError(f"Unknown price field {price_field!r}; expected one of {PRICE_FIELDS}")
    today = today or date.today()
    if start > today:
        raise InvalidInputError(f"Start date {start.isoformat()} is in the future")
    cleaned = normalise_symbols(symbols)
    if not cleaned:
        raise InvalidInputError("At least one symbol is required")

    LOGGER.debug("Computing KPIs for %s from %s with a %s-period window", cleaned, start, window)
    return [
        compute_symbol_kpis(
            provider,
            symbol,
            start,
            window,
            price_field=price_field,
            interval=interval,
            end=today,
        )
        for symbol in cleaned
    ]


__all__ = [
    "InvalidInputError",
    "KpiResult",
    "PRICE_FIELDS",
    "calculate",
    "compute_symbol_kpis",
    "normalise_symbols",
    "price_series",
    "run_kpi_report",
]

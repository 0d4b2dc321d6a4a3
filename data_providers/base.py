"""Abstract interfaces and helper utilities for market data providers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, List, Protocol

import pandas as pd

QUOTE_COLUMNS = ["open", "high", "low", "close", "adj_close", "volume"]


class RetrievalError(RuntimeError):
    """Raised when a provider cannot deliver price history for a symbol."""


@dataclass(frozen=True)
class Quote:
    """One price observation; ``timestamp`` is seconds since the epoch (UTC)."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    adjclose: float
    volume: int = 0

    @property
    def observed_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


@dataclass(frozen=True)
class PriceRequest:
    """Parameters for fetching price history for a single ticker."""

    symbol: str
    start: date
    end: date
    interval: str = "1d"


@dataclass(frozen=True)
class PriceResult:
    """Returned data frame and metadata from a provider."""

    data: pd.DataFrame
    from_cache: bool
    cache_path: Path | None


class PriceProvider(Protocol):
    """Protocol describing required price data interface."""

    def get_price_history(self, request: PriceRequest) -> PriceResult:
        """Retrieve historical prices for the given request."""


def _to_epoch_seconds(value) -> int:
    stamp = pd.Timestamp(value)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return int(stamp.timestamp())


def quotes_from_frame(frame: pd.DataFrame) -> List[Quote]:
    """Convert a provider OHLCV frame (date index) into an ascending quote series.

    Naive index values are treated as midnight UTC. Missing ``adj_close`` falls
    back to ``close`` and missing ``volume`` to zero. Rows without a close are
    dropped since they carry no usable observation.
    """

    if frame.empty:
        return []

    missing = {"open", "high", "low", "close"} - set(frame.columns)
    if missing:
        raise RetrievalError(f"Price frame missing required columns: {sorted(missing)}")

    data = frame.dropna(subset=["close"]).sort_index()
    adj = data["adj_close"] if "adj_close" in data.columns else data["close"]
    adj = adj.fillna(data["close"])
    volume = data["volume"].fillna(0) if "volume" in data.columns else pd.Series(0, index=data.index)

    quotes: List[Quote] = []
    for position, stamp in enumerate(data.index):
        quotes.append(
            Quote(
                timestamp=_to_epoch_seconds(stamp),
                open=float(data["open"].iloc[position]),
                high=float(data["high"].iloc[position]),
                low=float(data["low"].iloc[position]),
                close=float(data["close"].iloc[position]),
                adjclose=float(adj.iloc[position]),
                volume=int(volume.iloc[position]),
            )
        )
    return quotes


def quotes_to_frame(quotes: Iterable[Quote]) -> pd.DataFrame:
    """Inverse of :func:`quotes_from_frame`, indexed by UTC-naive dates."""

    rows = list(quotes)
    if not rows:
        empty = pd.DataFrame(columns=QUOTE_COLUMNS)
        empty.index.name = "date"
        return empty

    index = pd.to_datetime([quote.timestamp for quote in rows], unit="s")
    frame = pd.DataFrame(
        {
            "open": [quote.open for quote in rows],
            "high": [quote.high for quote in rows],
            "low": [quote.low for quote in rows],
            "close": [quote.close for quote in rows],
            "adj_close": [quote.adjclose for quote in rows],
            "volume": [quote.volume for quote in rows],
        },
        index=index,
    )
    frame.index.name = "date"
    return frame


def fetch_quotes(
    provider: PriceProvider,
    symbol: str,
    start: date,
    end: date | None = None,
    interval: str = "1d",
) -> List[Quote]:
    """Fetch ``[start, end]`` (``end`` defaults to today) from ``provider`` as quotes."""

    request = PriceRequest(
        symbol=symbol,
        start=start,
        end=end or date.today(),
        interval=interval,
    )
    result = provider.get_price_history(request)
    return quotes_from_frame(result.data)


__all__ = [
    "Quote",
    "PriceRequest",
    "PriceResult",
    "PriceProvider",
    "RetrievalError",
    "QUOTE_COLUMNS",
    "fetch_quotes",
    "quotes_from_frame",
    "quotes_to_frame",
]

"""Yahoo Finance quote source with an on-disk CSV cache."""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timedelta
from pathlib import Path

import pandas as pd
import yfinance as yf
from yfinance.exceptions import YFPricesMissingError

from .base import QUOTE_COLUMNS, PriceRequest, PriceResult, RetrievalError

LOGGER = logging.getLogger(__name__)

_COLUMN_ALIASES = {"adjclose": "adj_close", "adj close": "adj_close"}


def _empty_frame() -> pd.DataFrame:
    frame = pd.DataFrame(columns=QUOTE_COLUMNS)
    frame.index = pd.DatetimeIndex([], name="date")
    return frame


def _is_empty_range(exc: Exception) -> bool:
    """True when Yahoo answered but had no rows for the requested range.

    Yahoo reports a range without trading days as missing prices. Missing
    prices caused by an HTTP error status, a missing timezone (unknown or
    delisted ticker) or a transport error are failures.
    """

    return isinstance(exc, YFPricesMissingError) and "status_code" not in str(exc)


class YahooPriceProvider:
    """Daily OHLCV history from Yahoo Finance, cached per symbol and interval.

    A range with no trading days yields an empty frame. Anything that keeps the
    provider from answering (network, unknown ticker, malformed response,
    unusable cache directory) raises ``RetrievalError``.
    """

    def __init__(
        self,
        cache_dir: Path,
        cache_ttl_days: int = 7,
        max_retries: int = 3,
        backoff_factor: float = 1.5,
        use_cache: bool = True,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.cache_ttl_days = cache_ttl_days
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.use_cache = use_cache

    def get_price_history(self, request: PriceRequest) -> PriceResult:
        if not request.symbol.strip():
            raise RetrievalError("Request symbol must not be blank")
        if request.start > request.end:
            raise RetrievalError(
                f"Request start {request.start} is after end {request.end} for {request.symbol}"
            )

        cache_path = self.cache_file(request.symbol, request.interval)
        if self.use_cache:
            cached = self._read_cache(cache_path, request)
            if cached is not None:
                LOGGER.debug("Serving %s from cache %s", request.symbol, cache_path)
                return PriceResult(data=self._within(cached, request), from_cache=True, cache_path=cache_path)

        LOGGER.info("Downloading values for symbol %s from %s", request.symbol, request.start)
        frame = self._download(request)
        if frame.empty:
            LOGGER.info("Yahoo has no %s rows for %s since %s", request.interval, request.symbol, request.start)
            return PriceResult(data=frame, from_cache=False, cache_path=None)

        written = self._write_cache(cache_path, frame) if self.use_cache else None
        return PriceResult(data=self._within(frame, request), from_cache=False, cache_path=written)

    def cache_file(self, symbol: str, interval: str) -> Path:
        return self.cache_dir / interval / f"{symbol.upper().replace('/', '-')}.csv"

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------
    def _read_cache(self, path: Path, request: PriceRequest) -> pd.DataFrame | None:
        """Return the cached frame when it is fresh, readable and covers the request."""

        if not path.exists():
            return None
        if self.cache_ttl_days > 0:
            age = datetime.now() - datetime.fromtimestamp(path.stat().st_mtime)
            if age > timedelta(days=self.cache_ttl_days):
                return None

        try:
            frame = pd.read_csv(path, parse_dates=["date"], index_col="date")
        except (OSError, ValueError, pd.errors.ParserError) as exc:
            LOGGER.warning("Ignoring unreadable cache %s: %s", path, exc)
            return None
        if list(frame.columns) != QUOTE_COLUMNS or not isinstance(frame.index, pd.DatetimeIndex):
            LOGGER.warning("Ignoring cache %s with unexpected layout", path)
            return None
        if frame.empty:
            return None

        slack = timedelta(days=3 if request.interval.endswith("d") else 1)
        first, last = frame.index.min().date(), frame.index.max().date()
        if first > request.start + slack or last < request.end - slack:
            return None
        return frame

    @staticmethod
    def _write_cache(path: Path, frame: pd.DataFrame) -> Path | None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            frame.to_csv(path, index=True, index_label="date")
        except OSError as exc:
            LOGGER.warning("Could not write cache %s: %s", path, exc)
            return None
        return path

    @staticmethod
    def _within(frame: pd.DataFrame, request: PriceRequest) -> pd.DataFrame:
        days = frame.index.date
        return frame.loc[(days >= request.start) & (days <= request.end)]

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------
    def _download(self, request: PriceRequest) -> pd.DataFrame:
        delay = 1.0
        for attempt in range(1, self.max_retries + 1):
            try:
                raw = self._history(request)
            except Exception as exc:  # yfinance and its HTTP stack raise broad exceptions
                if _is_empty_range(exc):
                    return _empty_frame()
                if attempt == self.max_retries:
                    raise RetrievalError(f"Failed to download data for {request.symbol}: {exc}") from exc
                LOGGER.warning("Attempt %s failed for %s: %s", attempt, request.symbol, exc)
                time.sleep(delay)
                delay *= self.backoff_factor
                continue
            if not isinstance(raw, pd.DataFrame):
                raise RetrievalError(f"Unexpected {type(raw).__name__} from Yahoo for {request.symbol}")
            if raw.empty:
                return _empty_frame()
            return self._normalise(raw)
        raise RetrievalError(f"No download attempts configured for {request.symbol}")

    @staticmethod
    def _history(request: PriceRequest) -> pd.DataFrame:
        return yf.Ticker(request.symbol).history(
            start=request.start.isoformat(),
            end=(request.end + timedelta(days=1)).isoformat(),
            interval=request.interval,
            auto_adjust=False,
            actions=False,
            raise_errors=True,
        )

    @staticmethod
    def _normalise(raw: pd.DataFrame) -> pd.DataFrame:
        frame = raw.rename(columns=lambda col: str(col).strip().lower())
        frame = frame.rename(columns=_COLUMN_ALIASES)
        missing = {"open", "high", "low", "close", "volume"} - set(frame.columns)
        if missing:
            raise RetrievalError(f"Yahoo response missing columns: {sorted(missing)}")
        if "adj_close" not in frame.columns:
            frame["adj_close"] = frame["close"]

        frame = frame[QUOTE_COLUMNS].copy()
        index = pd.DatetimeIndex(frame.index)
        # Daily bars carry exchange-local midnight; keep the calendar date.
        if index.tz is not None:
            index = index.tz_localize(None)
        frame.index = index.rename("date")
        return frame.sort_index()


__all__ = ["YahooPriceProvider"]

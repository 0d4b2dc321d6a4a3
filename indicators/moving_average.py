"""Moving average helpers."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view


def windowed_moving_average(window: int, series: Sequence[float] | pd.Series) -> pd.Series | None:
    """Return the simple moving average over every sliding window of ``window`` values.

    Windows overlap and advance one observation at a time, so an input of
    length ``n`` yields ``n - window + 1`` averages. Each value is labelled with
    the index of the last observation in its window when ``series`` is a
    ``pd.Series``.

    Returns ``None`` for an empty input and an empty series when ``window`` is
    longer than the input.
    """

    if window <= 0:
        raise ValueError("SMA window must be positive")

    values = np.asarray(series, dtype=float)
    if values.size == 0:
        return None

    index = series.index if isinstance(series, pd.Series) else pd.RangeIndex(values.size)
    if window > values.size:
        return pd.Series([], index=index[:0], dtype=float, name="sma")

    # Windows are averaged independently; a window of one returns the input unchanged.
    means = sliding_window_view(values, window).mean(axis=1)
    return pd.Series(means, index=index[window - 1:], name="sma")


def last_value(series: pd.Series | None) -> float | None:
    """Return the most recent value of ``series`` or ``None`` when there is none."""

    if series is None or series.empty:
        return None
    return float(series.iloc[-1])


__all__ = ["windowed_moving_average", "last_value"]

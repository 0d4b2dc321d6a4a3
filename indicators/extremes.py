"""Series extremes that report absence instead of sentinel numbers."""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd


def _as_array(series: Sequence[float] | pd.Series) -> np.ndarray:
    return np.asarray(series, dtype=float)


def min_of(series: Sequence[float] | pd.Series) -> float | None:
    """Smallest value of ``series``, ``None`` when it is empty."""

    values = _as_array(series)
    if values.size == 0:
        return None
    return float(values.min())


def max_of(series: Sequence[float] | pd.Series) -> float | None:
    """Largest value of ``series``, ``None`` when it is empty."""

    values = _as_array(series)
    if values.size == 0:
        return None
    return float(values.max())


__all__ = ["min_of", "max_of"]

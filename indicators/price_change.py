"""First-to-last price change over a series."""

from __future__ import annotations

from typing import NamedTuple, Sequence

import numpy as np
import pandas as pd


class ZeroBasePriceError(ValueError):
    """Raised when the first price is zero and a relative change is undefined."""


class PriceChange(NamedTuple):
    """Magnitude of the move between the first and last price.

    Both fields are non-negative: the change does not say whether the price
    rose or fell.
    """

    fraction: float
    absolute: float

    @property
    def percent(self) -> float:
        return self.fraction * 100.0


def price_change(series: Sequence[float] | pd.Series) -> PriceChange | None:
    """Return the absolute and fractional change from first to last value.

    ``None`` for an empty input. A zero first price raises
    :class:`ZeroBasePriceError` unless the last price is zero as well, in which
    case nothing moved and the change is zero.
    """

    values = np.asarray(series, dtype=float)
    if values.size == 0:
        return None

    first = float(values[0])
    last = float(values[-1])
    absolute = abs(first - last)
    if first == 0:
        if absolute == 0:
            return PriceChange(fraction=0.0, absolute=0.0)
        raise ZeroBasePriceError(
            f"Cannot compute relative change from a zero starting price (last={last})"
        )
    return PriceChange(fraction=absolute / first, absolute=absolute)


__all__ = ["PriceChange", "ZeroBasePriceError", "price_change"]

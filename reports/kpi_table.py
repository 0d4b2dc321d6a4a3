"""Rendering of KPI results into records, frames and report lines."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from analytics.kpi import KpiResult

LOGGER = logging.getLogger(__name__)

REPORT_COLUMNS = ["timestamp", "symbol", "price", "change_pct", "min", "max", "sma"]
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def kpi_record(result: KpiResult, date_format: str = DEFAULT_DATE_FORMAT) -> Optional[Dict[str, Any]]:
    """Return the numeric report record for ``result``, ``None`` if it has nothing to report."""

    if not result.is_reportable:
        return None
    quote = result.last_quote
    return {
        "timestamp": quote.observed_at.strftime(date_format),
        "symbol": result.symbol,
        "price": quote.close,
        "change_pct": result.price_change.percent,
        "min": result.minimum,
        "max": result.maximum,
        "sma": result.last_sma,
    }


def _records(results: Iterable[KpiResult], date_format: str) -> List[Dict[str, Any]]:
    rows = []
    for result in results:
        record = kpi_record(result, date_format)
        if record is None:
            continue
        rows.append(record)
    return rows


def build_kpi_report(results: Iterable[KpiResult], date_format: str = DEFAULT_DATE_FORMAT) -> pd.DataFrame:
    rows = _records(results, date_format)
    if not rows:
        return pd.DataFrame(columns=REPORT_COLUMNS)
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)


def format_kpi_lines(report: pd.DataFrame, window: int) -> List[str]:
    """Header plus one comma separated line per row of a KPI report frame."""

    lines = [f"period start,symbol,price,change %,min,max,{window}d avg"]
    for row in report.to_dict(orient="records"):
        lines.append(
            f"{row['timestamp']},{row['symbol']},${row['price']:.2f},{row['change_pct']:.2f}%,"
            f"${row['min']:.2f},${row['max']:.2f},{row['sma']:.2f}"
        )
    return lines


def write_kpi_report(report: pd.DataFrame, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    report.to_csv(path, index=False, float_format="%.2f")
    LOGGER.info("KPI report saved to %s", path)
    return path


__all__ = [
    "REPORT_COLUMNS",
    "build_kpi_report",
    "format_kpi_lines",
    "kpi_record",
    "write_kpi_report",
]

"""High-level analytical helpers (per-symbol KPIs and report runs)."""

from .kpi import (  # noqa: F401
    InvalidInputError,
    KpiResult,
    calculate,
    compute_symbol_kpis,
    run_kpi_report,
)

__all__ = [
    "InvalidInputError",
    "KpiResult",
    "calculate",
    "compute_symbol_kpis",
    "run_kpi_report",
]

"""CLI entry point for the stock KPI reporter."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional, Sequence

from analytics.kpi import PRICE_FIELDS, InvalidInputError, run_kpi_report
from reports.kpi_table import build_kpi_report, format_kpi_lines, write_kpi_report
from stock_kpi.config_manager import ConfigError, ConfigManager, StockKpiConfig

if TYPE_CHECKING:
    from data_providers.yahoo import YahooPriceProvider

logger = logging.getLogger("stock_kpi.cli")


@dataclass
class AppContext:
    manager: ConfigManager
    config: StockKpiConfig


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def build_context(args: argparse.Namespace) -> AppContext:
    manager_kwargs: Dict[str, Path] = {}
    if args.defaults:
        manager_kwargs["default_path"] = Path(args.defaults)
    if args.settings:
        manager_kwargs["user_path"] = Path(args.settings)
    manager = ConfigManager(**manager_kwargs)
    config = manager.load(force_reload=True)
    return AppContext(manager=manager, config=config)


def parse_iso_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD") from exc


def positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected an integer, got '{value}'") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"Window must be positive, got {parsed}")
    return parsed


def build_price_provider(config: StockKpiConfig, use_cache: bool = True) -> "YahooPriceProvider":
    try:
        from data_providers.yahoo import YahooPriceProvider
    except ModuleNotFoundError as exc:  # pragma: no cover - dependency hint
        raise RuntimeError(
            "Yahoo Finance price downloads require the `yfinance` package. Install it via `pip install yfinance`."
        ) from exc

    sources = config.data_sources
    return YahooPriceProvider(
        cache_dir=config.storage.price_cache_dir,
        cache_ttl_days=sources.cache_days,
        max_retries=sources.max_retries,
        backoff_factor=sources.backoff_factor,
        use_cache=use_cache,
    )


def handle_report(args: argparse.Namespace, ctx: AppContext) -> int:
    config = ctx.config
    window = args.window or config.reporting.default_window
    price_field = args.price_field or config.reporting.price_field
    logger.info(
        "Starting up with symbols=%s from=%s window=%s price_field=%s",
        args.symbols,
        args.start,
        window,
        price_field,
    )

    provider = build_price_provider(config, use_cache=not args.no_cache)
    try:
        results = run_kpi_report(
            provider,
            args.symbols,
            args.start,
            window,
            price_field=price_field,
            interval=config.data_sources.interval,
        )
    except InvalidInputError as exc:
        logger.error("%s", exc)
        return 2

    report = build_kpi_report(results, config.reporting.date_format)
    for line in format_kpi_lines(report, window):
        print(line)

    if args.output:
        write_kpi_report(report, args.output)

    skipped = [result.symbol for result in results if not result.is_reportable]
    if skipped:
        logger.info("No record produced for: %s", ", ".join(skipped))
    return 0


def handle_config(args: argparse.Namespace, ctx: AppContext) -> int:
    print(json.dumps(ctx.manager.to_dict(), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stock KPI reporter CLI")
    parser.add_argument("--settings", type=Path, help="Path to user settings override JSON")
    parser.add_argument("--defaults", type=Path, help="Path to alternate default settings JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    report = subparsers.add_parser("report", help="Compute min/max/SMA/price change per symbol")
    report.add_argument("-s", "--symbols", nargs="+", required=True, help="Security symbols to gather metrics from")
    report.add_argument(
        "-f",
        "--from",
        dest="start",
        type=parse_iso_date,
        required=True,
        help="Date from which metrics will be calculated (YYYY-MM-DD)",
    )
    report.add_argument(
        "-n",
        "--window",
        type=positive_int,
        help="Days to be used for the simple moving average (default: reporting.default_window)",
    )
    report.add_argument(
        "--price-field",
        choices=PRICE_FIELDS,
        help="Price used for statistics (default: reporting.price_field)",
    )
    report.add_argument("--output", type=Path, help="Optional CSV path for the report")
    report.add_argument("--no-cache", action="store_true", help="Bypass the on-disk price cache")
    report.set_defaults(handler=handle_report)

    show_config = subparsers.add_parser("config", help="Print the effective configuration")
    show_config.set_defaults(handler=handle_config)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    if not hasattr(args, "handler"):
        parser.print_help()
        return 0

    try:
        ctx = build_context(args)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return 1
    return args.handler(args, ctx)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())

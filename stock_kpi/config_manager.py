"""Configuration management utilities for the KPI reporter."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from analytics.kpi import PRICE_FIELDS

DEFAULT_SETTINGS_PATH = Path(__file__).with_name("default_settings.json")
SUPPORTED_INTERVALS = {"1d", "5d", "1wk", "1mo", "3mo"}


class ConfigError(Exception):
    """Raised when configuration files are missing or invalid."""


@dataclass
class DataSourcesConfig:
    interval: str = "1d"
    cache_days: int = 7
    max_retries: int = 3
    backoff_factor: float = 1.5


@dataclass
class ReportingConfig:
    default_window: int = 30
    price_field: str = "adjclose"
    date_format: str = "%Y-%m-%dT%H:%M:%S"


@dataclass
class StorageConfig:
    price_cache_dir: Path


@dataclass
class StockKpiConfig:
    data_sources: DataSourcesConfig
    reporting: ReportingConfig
    storage: StorageConfig

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigManager:
    """Loads and validates configuration data from files and environment variables."""

    def __init__(
        self,
        default_path: Path | str = DEFAULT_SETTINGS_PATH,
        user_path: Path | str = Path("config/settings.local.json"),
        env_prefix: str = "SK_",
    ) -> None:
        self.default_path = Path(default_path)
        self.user_path = Path(user_path)
        self.env_prefix = env_prefix
        self._cached_config: Optional[StockKpiConfig] = None

    def load(self, force_reload: bool = False) -> StockKpiConfig:
        """Load configuration from defaults, user overrides, and environment."""
        if self._cached_config is not None and not force_reload:
            return self._cached_config

        base_config = self._load_default_config()
        merged_config = self._merge_user_overrides(base_config)
        merged_config = self._apply_env_overrides(merged_config)

        config = self._build_config(merged_config)
        self._validate_config(config)
        self._ensure_storage_paths(config)

        self._cached_config = config
        return config

    def clear_cache(self) -> None:
        """Clear the cached configuration instance."""
        self._cached_config = None

    # ------------------------------------------------------------------
    # Loading helpers
    # ------------------------------------------------------------------
    def _load_default_config(self) -> Dict[str, Any]:
        if not self.default_path.exists():
            raise ConfigError(f"Default configuration file not found: {self.default_path}")

        with self.default_path.open("r", encoding="utf-8") as handle:
            try:
                return json.load(handle)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Unable to parse default configuration: {exc}") from exc

    def _merge_user_overrides(self, base: Dict[str, Any]) -> Dict[str, Any]:
        data = json.loads(json.dumps(base))  # deep copy via JSON to keep types JSON-compatible
        if self.user_path.exists():
            with self.user_path.open("r", encoding="utf-8") as handle:
                try:
                    overrides = json.load(handle)
                except json.JSONDecodeError as exc:
                    raise ConfigError(f"Unable to parse user configuration: {exc}") from exc
            self._deep_merge(data, overrides)
        return data

    def _apply_env_overrides(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = json.loads(json.dumps(data))
        prefix_len = len(self.env_prefix)
        for key, value in os.environ.items():
            if not key.startswith(self.env_prefix):
                continue
            path_parts = key[prefix_len:].lower().split("__")
            parsed_value = self._parse_env_value(value)
            self._set_nested_value(result, path_parts, parsed_value)
        return result

    # ------------------------------------------------------------------
    # Build dataclasses
    # ------------------------------------------------------------------
    def _build_config(self, data: Dict[str, Any]) -> StockKpiConfig:
        try:
            sources_data = data.get("data_sources", {})
            sources = DataSourcesConfig(
                interval=str(sources_data.get("interval", "1d")),
                cache_days=int(sources_data.get("cache_days", 7)),
                max_retries=int(sources_data.get("max_retries", 3)),
                backoff_factor=float(sources_data.get("backoff_factor", 1.5)),
            )
            reporting = ReportingConfig(**data.get("reporting", {}))
            storage = StorageConfig(**{
                key: Path(value)
                for key, value in data["storage"].items()
            })
        except KeyError as exc:
            raise ConfigError(f"Missing required configuration section: {exc}") from exc
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration field: {exc}") from exc

        return StockKpiConfig(
            data_sources=sources,
            reporting=reporting,
            storage=storage,
        )

    # ------------------------------------------------------------------
    # Validation & utilities
    # ------------------------------------------------------------------
    def _validate_config(self, config: StockKpiConfig) -> None:
        sources = config.data_sources
        if sources.interval not in SUPPORTED_INTERVALS:
            raise ConfigError(
                f"data_sources.interval must be one of {sorted(SUPPORTED_INTERVALS)}"
            )
        if sources.cache_days < 0:
            raise ConfigError("data_sources.cache_days must be non-negative")
        if sources.max_retries <= 0:
            raise ConfigError("data_sources.max_retries must be greater than zero")
        if sources.backoff_factor < 1:
            raise ConfigError("data_sources.backoff_factor must be at least 1.0")

        reporting = config.reporting
        if not isinstance(reporting.default_window, int) or reporting.default_window <= 0:
            raise ConfigError("reporting.default_window must be a positive integer")
        if reporting.price_field not in PRICE_FIELDS:
            raise ConfigError(f"reporting.price_field must be one of {sorted(PRICE_FIELDS)}")
        if not self._is_valid_date_format(reporting.date_format):
            raise ConfigError("reporting.date_format is not a valid strftime pattern")

        for path in config.storage.__dict__.values():
            if not isinstance(path, Path):
                raise ConfigError("Storage paths must be valid paths")

    def _ensure_storage_paths(self, config: StockKpiConfig) -> None:
        for path in config.storage.__dict__.values():
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise ConfigError(f"Unable to create storage directory {path}: {exc}") from exc

    @staticmethod
    def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> None:
        for key, value in overrides.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                ConfigManager._deep_merge(base[key], value)
            else:
                base[key] = value

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        value = value.strip()
        if not value:
            return value
        lowered = value.lower()
        if lowered in {"true", "false"}:
            return lowered == "true"
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value

    @staticmethod
    def _is_valid_date_format(value: str) -> bool:
        if not value or "%" not in value:
            return False
        try:
            datetime(2024, 1, 2, 3, 4, 5).strftime(value)
        except ValueError:
            return False
        return True

    @staticmethod
    def _set_nested_value(target: Dict[str, Any], path_parts: list[str], value: Any) -> None:
        current = target
        for part in path_parts[:-1]:
            if part not in current or not isinstance(current[part], dict):
                current[part] = {}
            current = current[part]
        current[path_parts[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return the currently cached configuration as a JSON-friendly dictionary."""
        config = self.load()
        data = config.as_dict()
        data["storage"] = {key: str(value) for key, value in data["storage"].items()}
        return data


__all__ = [
    "ConfigError",
    "ConfigManager",
    "StockKpiConfig",
    "DataSourcesConfig",
    "ReportingConfig",
    "StorageConfig",
    "DEFAULT_SETTINGS_PATH",
]

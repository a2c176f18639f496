#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration System for the portfolio vs benchmark tool
Handles YAML configuration loading, validation, and type conversion.
"""

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..shared.models import DEFAULT_ANCHOR_TICKER, DEFAULT_MAX_BACK_TRADING_DAYS
from .price_source import DEFAULT_BASE_URL
from .transforms import VALUE_MODES

PRICE_MODES = ("close", "adjclose")
FETCH_FAILURE_POLICIES = ("skip", "abort")
VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ConfigError(Exception):
    """Configuration-related errors"""
    pass


@dataclass
class ComputeConfig:
    """Valuation core parameters"""
    anchor_ticker: str = DEFAULT_ANCHOR_TICKER
    max_back_trading_days: int = DEFAULT_MAX_BACK_TRADING_DAYS
    buy_only: bool = True           # drop SELL events before computing
    apply_splits: bool = True

    def __post_init__(self):
        self.anchor_ticker = str(self.anchor_ticker or "").strip().upper()
        if not self.anchor_ticker:
            raise ValueError("anchor_ticker cannot be empty")
        if int(self.max_back_trading_days) < 0:
            raise ValueError("max_back_trading_days must be >= 0")
        self.max_back_trading_days = int(self.max_back_trading_days)
        # Split normalization only rescales BUYs; SELL share counts would stay unadjusted
        if self.apply_splits and not self.buy_only:
            raise ValueError("compute.apply_splits requires compute.buy_only (SELL events are never split-adjusted)")


@dataclass
class PricesConfig:
    """Price download parameters"""
    mode: str = "close"             # close | adjclose
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 10.0
    max_retries: int = 3
    backoff_base_s: float = 1.0
    on_fetch_failure: str = "skip"  # skip | abort (anchor always aborts)
    cache_dir: Optional[str] = None

    def __post_init__(self):
        self.mode = str(self.mode or "close").strip().lower()
        if self.mode not in PRICE_MODES:
            raise ValueError(f"prices.mode must be one of {list(PRICE_MODES)}")
        if not self.base_url:
            raise ValueError("prices.base_url cannot be empty")
        if self.timeout_s <= 0:
            raise ValueError("prices.timeout_s must be positive")
        if int(self.max_retries) < 0:
            raise ValueError("prices.max_retries must be >= 0")
        self.max_retries = int(self.max_retries)
        if self.backoff_base_s < 0:
            raise ValueError("prices.backoff_base_s must be >= 0")
        self.on_fetch_failure = str(self.on_fetch_failure or "skip").strip().lower()
        if self.on_fetch_failure not in FETCH_FAILURE_POLICIES:
            raise ValueError(f"prices.on_fetch_failure must be one of {list(FETCH_FAILURE_POLICIES)}")


@dataclass
class OutputConfig:
    """Output configuration for series, charts and trace dumps"""
    dir: str = "output"
    value_mode: str = "excess"      # amount | percent | excess
    include_chart: bool = True
    include_debug_dump: bool = True
    dpi: int = 150
    chart_width: float = 12.0
    chart_height: float = 6.0

    def __post_init__(self):
        self.value_mode = str(self.value_mode or "").strip().lower()
        if self.value_mode not in VALUE_MODES:
            raise ValueError(f"output.value_mode must be one of {list(VALUE_MODES)}")
        if self.dpi <= 0:
            raise ValueError("DPI must be positive")
        if self.chart_width <= 0 or self.chart_height <= 0:
            raise ValueError("Chart dimensions must be positive")


@dataclass
class Settings:
    """Main configuration"""
    compute: ComputeConfig = field(default_factory=ComputeConfig)
    prices: PricesConfig = field(default_factory=PricesConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    logging_level: str = "INFO"

    def __post_init__(self):
        if str(self.logging_level).upper() not in VALID_LEVELS:
            raise ValueError(f"logging_level must be one of: {VALID_LEVELS}")
        self.logging_level = str(self.logging_level).upper()


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' section must be a mapping")
    return value


def _load_raw_config(config_path: str) -> Dict[str, Any]:
    """
    Load raw configuration from YAML file

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read {config_path}: {e}")

    if raw_config is None:
        return {}
    if not isinstance(raw_config, dict):
        raise ConfigError(f"Configuration must be a YAML mapping, got {type(raw_config)}")
    return raw_config


def build_settings(config_dict: Dict[str, Any]) -> Settings:
    """
    Build Settings from a raw mapping (missing keys take defaults)

    Raises:
        ConfigError: If configuration is invalid
    """
    try:
        compute_raw = _section(config_dict, "compute")
        prices_raw = _section(config_dict, "prices")
        output_raw = _section(config_dict, "output")
        logging_raw = _section(config_dict, "logging")

        defaults_p = PricesConfig()
        defaults_o = OutputConfig()
        return Settings(
            compute=ComputeConfig(
                anchor_ticker=compute_raw.get("anchor_ticker", DEFAULT_ANCHOR_TICKER),
                max_back_trading_days=compute_raw.get("max_back_trading_days", DEFAULT_MAX_BACK_TRADING_DAYS),
                buy_only=bool(compute_raw.get("buy_only", True)),
                apply_splits=bool(compute_raw.get("apply_splits", True)),
            ),
            prices=PricesConfig(
                mode=prices_raw.get("mode", defaults_p.mode),
                base_url=prices_raw.get("base_url", defaults_p.base_url),
                timeout_s=float(prices_raw.get("timeout_s", defaults_p.timeout_s)),
                max_retries=prices_raw.get("max_retries", defaults_p.max_retries),
                backoff_base_s=float(prices_raw.get("backoff_base_s", defaults_p.backoff_base_s)),
                on_fetch_failure=prices_raw.get("on_fetch_failure", defaults_p.on_fetch_failure),
                cache_dir=prices_raw.get("cache_dir"),
            ),
            output=OutputConfig(
                dir=str(output_raw.get("dir", defaults_o.dir)),
                value_mode=output_raw.get("value_mode", defaults_o.value_mode),
                include_chart=bool(output_raw.get("include_chart", True)),
                include_debug_dump=bool(output_raw.get("include_debug_dump", True)),
                dpi=int(output_raw.get("dpi", defaults_o.dpi)),
                chart_width=float(output_raw.get("chart_width", defaults_o.chart_width)),
                chart_height=float(output_raw.get("chart_height", defaults_o.chart_height)),
            ),
            logging_level=str(logging_raw.get("level", "INFO")),
        )
    except ConfigError:
        raise
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Configuration validation failed: {e}")


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load and validate settings from a YAML file; defaults when no path is given

    Raises:
        ConfigError: If configuration cannot be loaded or is invalid
    """
    if not config_path:
        return Settings()
    return build_settings(_load_raw_config(config_path))


def apply_cli_overrides(settings: Settings, **overrides) -> Settings:
    """
    Apply command-line overrides to a copy of the settings

    Recognized keys: anchor, price_mode, value_mode, output_dir, log_level,
    on_fetch_failure, cache_dir. None values are ignored.

    Raises:
        ConfigError: If overrides are invalid
    """
    updated = copy.deepcopy(settings)
    try:
        if overrides.get("anchor"):
            updated.compute.anchor_ticker = overrides["anchor"]
        if overrides.get("price_mode"):
            updated.prices.mode = overrides["price_mode"]
        if overrides.get("on_fetch_failure"):
            updated.prices.on_fetch_failure = overrides["on_fetch_failure"]
        if overrides.get("cache_dir"):
            updated.prices.cache_dir = str(overrides["cache_dir"])
        if overrides.get("value_mode"):
            updated.output.value_mode = overrides["value_mode"]
        if overrides.get("output_dir"):
            updated.output.dir = str(overrides["output_dir"])
        if overrides.get("log_level"):
            updated.logging_level = overrides["log_level"]

        # Re-validate after overrides
        updated.compute.__post_init__()
        updated.prices.__post_init__()
        updated.output.__post_init__()
        updated.__post_init__()
    except (ValueError, TypeError) as e:
        raise ConfigError(f"Failed to apply CLI overrides: {e}")

    logging.getLogger(__name__).debug("Effective settings: %s", updated)
    return updated

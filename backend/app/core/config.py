"""
Application configuration utilities.

This module defines the ``Settings`` class used throughout the service for
environment variables and provides helper functions to load YAML files
containing the forecasting and reorder business rules.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Dict

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API server configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Seed data (products.csv / sales.csv) and YAML rule files
    data_dir: str = "data"
    config_dir: str = "configs"


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return a cached instance of ``Settings``.

    Using a cache ensures that environment variables are only read once.
    """
    return Settings()


def load_yaml(file_path: str) -> dict:
    """Load a YAML file from the given path and return its contents.

    If the file does not exist, an empty dictionary is returned.
    """
    if not os.path.exists(file_path):
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# Defaults mirrored by configs/settings.yaml; the YAML file overrides them.
DEFAULT_RULES: Dict[str, Any] = {
    "history_window_days": 90,
    "min_history_points": 7,
    "safety_stock_ratio": 0.2,
    "critical_stock_floor": 5,
    "default_daily_demand": 1.0,
    "stockout_buffer_days": 2,
    "cost_model": "order_value",
    "carrying_cost_rate": 0.25,
}


def load_rules(config_root: str | None = None) -> Dict[str, Any]:
    """Return ``DEFAULT_RULES`` overlaid with ``<config_root>/settings.yaml``."""

    root = config_root or get_settings().config_dir
    loaded = load_yaml(os.path.join(root, "settings.yaml"))
    rules = DEFAULT_RULES.copy()
    if isinstance(loaded, dict):
        rules.update({k: v for k, v in loaded.items() if v is not None})
    return rules

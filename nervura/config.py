"""
Configuration Management

Centralized configuration from environment variables with sensible defaults,
plus TOML run configuration (packaged defaults overlaid with a user file).
"""

import os
import tomllib
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Optional


class Config:
    """Application configuration."""

    # Storage
    DATA_DIR = Path(os.environ.get("NERVURA_DATA_DIR", "./data"))
    BACKEND = os.environ.get("NERVURA_BACKEND", "json")
    EXPORT_DIR = Path(os.environ.get("NERVURA_EXPORT_DIR", "./exports"))

    # Static genus -> family lookup (JSON object)
    GENUS_TABLE = os.environ.get("NERVURA_GENUS_TABLE")

    # Position used when the device cannot get a fix (UFRRJ, Seropédica)
    DEFAULT_LAT = float(os.environ.get("NERVURA_DEFAULT_LAT", "-22.7603"))
    DEFAULT_LNG = float(os.environ.get("NERVURA_DEFAULT_LNG", "-43.6804"))

    # Logging
    LOG_LEVEL = os.environ.get("NERVURA_LOG_LEVEL", "INFO")
    LOG_JSON = os.environ.get("NERVURA_LOG_JSON", "false").lower() == "true"

    @classmethod
    def validate(cls):
        """Validate configuration and raise errors for unusable values."""
        if cls.BACKEND not in {"json", "sqlite", "memory"}:
            raise ValueError(
                f"NERVURA_BACKEND must be one of json, sqlite, memory; got '{cls.BACKEND}'"
            )
        if not -90.0 <= cls.DEFAULT_LAT <= 90.0 or not -180.0 <= cls.DEFAULT_LNG <= 180.0:
            raise ValueError("NERVURA_DEFAULT_LAT/LNG are outside valid coordinate ranges")


def get_config() -> Config:
    """Get validated configuration."""
    Config.validate()
    return Config


def load_config(config_path: Optional[Path]) -> Dict[str, Any]:
    """Packaged defaults, deep-merged with ``config_path`` when given."""
    cfg_path = resources.files("nervura").joinpath("config.default.toml")
    with cfg_path.open("rb") as f:
        config = tomllib.load(f)
    if config_path:
        with Path(config_path).open("rb") as f:
            user_cfg = tomllib.load(f)
        _deep_update(config, user_cfg)
    return config


def _deep_update(d: Dict[str, Any], u: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in u.items():
        if isinstance(v, dict) and isinstance(d.get(k), dict):
            _deep_update(d[k], v)
        else:
            d[k] = v
    return d

"""Application settings — merges config YAML files with .env overrides via Pydantic Settings."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_CONFIG_DIR = _PROJECT_ROOT / "config"


def _load_yaml(profile: str = "default") -> dict[str, Any]:
    """Load and merge YAML config files.

    Loads ``default.yaml`` first, then overlays the requested profile.
    """
    base: dict[str, Any] = {}
    default_path = _CONFIG_DIR / "default.yaml"
    if default_path.exists():
        with open(default_path) as f:
            base = yaml.safe_load(f) or {}

    if profile != "default":
        overlay_path = _CONFIG_DIR / f"{profile}.yaml"
        if overlay_path.exists():
            with open(overlay_path) as f:
                overlay = yaml.safe_load(f) or {}
            base = _deep_merge(base, overlay)
    return base


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (override wins)."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class ExchangeSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="EXCHANGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = "binance"
    sandbox: bool = True
    dry: bool = True
    api_key: str = ""
    api_secret: str = ""
    rate_limit: int = 50
    account_types: list[str] = ["spot"]


class FluxSettings(BaseSettings):
    """Poll interval (seconds) per flux kind."""

    account_interval: float = 10.0
    position_interval: float = 1.0
    order_interval: float = 5.0
    trade_interval: float = 5.0
    ticker_interval: float = 5.0
    fetch_timeout: float = 30.0
    trade_history_limit: int = 100


class DrySettings(BaseSettings):
    """Simulated execution used when ``exchange.dry`` is set."""

    account_name: str = "trade"
    fee_rate: float = 0.001
    initial_balances: dict[str, float] = {"BTC": 1.0, "ETH": 10.0, "USDT": 1000.0}


class StrategySettings(BaseSettings):
    """Parameters of the bundled sample strategy."""

    currency_pairs: list[str] = ["ETH/BTC"]
    account_name: str = "trade"
    amount: float = 0.01
    stop_gain_percentage: float | None = 10.0
    stop_loss_percentage: float | None = 5.0


class DatabaseSettings(BaseSettings):
    path: str = "data/tradeflux.db"


class LoggingSettings(BaseSettings):
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Build order:
    1. Load ``config/default.yaml``
    2. Overlay profile YAML (e.g. ``live.yaml``)
    3. Override with environment variables / ``.env``
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    exchange: ExchangeSettings = Field(default_factory=ExchangeSettings)
    flux: FluxSettings = Field(default_factory=FluxSettings)
    dry: DrySettings = Field(default_factory=DrySettings)
    strategy: StrategySettings = Field(default_factory=StrategySettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(profile: str = "default") -> Settings:
    """Create a ``Settings`` instance from YAML + env vars.

    Parameters
    ----------
    profile:
        Config profile name (maps to ``config/<profile>.yaml``).
        Use ``"dry"`` or ``"live"``.
    """
    yaml_data = _load_yaml(profile)

    return Settings(
        exchange=ExchangeSettings(**(yaml_data.get("exchange", {}))),
        flux=FluxSettings(**(yaml_data.get("flux", {}))),
        dry=DrySettings(**(yaml_data.get("dry", {}))),
        strategy=StrategySettings(**(yaml_data.get("strategy", {}))),
        database=DatabaseSettings(**(yaml_data.get("database", {}))),
        logging=LoggingSettings(**(yaml_data.get("logging", {}))),
    )

"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir() -> Path:
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = config_dir or _find_config_dir()
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config. Missing keys fall back to built-in defaults."""

    def __init__(
        self,
        *,
        storage: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
        amm: dict[str, Any] | None = None,
        users: dict[str, Any] | None = None,
        markets: dict[str, Any] | None = None,
        settlement: dict[str, Any] | None = None,
        simulation: dict[str, Any] | None = None,
    ):
        self.storage = storage or {}
        self.logging = logging or {}
        self.amm = amm or {}
        self.users = users or {}
        self.markets = markets or {}
        self.settlement = settlement or {}
        self.simulation = simulation or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            storage=raw.get("storage"),
            logging=raw.get("logging"),
            amm=raw.get("amm"),
            users=raw.get("users"),
            markets=raw.get("markets"),
            settlement=raw.get("settlement"),
            simulation=raw.get("simulation"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/winzen.duckdb")

    @property
    def default_liquidity(self) -> float:
        return float(self.amm.get("default_liquidity", 1000.0))

    @property
    def initial_probability(self) -> float:
        return float(self.amm.get("initial_probability", 50.0))

    @property
    def initial_balance(self) -> int:
        return int(self.users.get("initial_balance", 1000))

    @property
    def initial_elo(self) -> int:
        return int(self.users.get("initial_elo", 1000))

    @property
    def creator_deposit(self) -> int:
        return int(self.markets.get("creator_deposit", 100))

    @property
    def refund_min_participants(self) -> int:
        return int(self.markets.get("refund_min_participants", 3))

    @property
    def refund_min_volume(self) -> int:
        return int(self.markets.get("refund_min_volume", 500))

    @property
    def creator_reward_per_participant(self) -> float:
        return float(self.markets.get("creator_reward_per_participant", 10))

    @property
    def creator_reward_per_volume(self) -> float:
        return float(self.markets.get("creator_reward_per_volume", 0.02))

    @property
    def creator_reward_cap(self) -> int:
        return int(self.markets.get("creator_reward_cap", 500))

    @property
    def elo_k(self) -> int:
        return int(self.settlement.get("elo_k", 32))

    @property
    def near_miss_threshold(self) -> float:
        return float(self.settlement.get("near_miss_threshold", 0.35))

    @property
    def near_miss_credit(self) -> int:
        return int(self.settlement.get("near_miss_credit", 50))

    @property
    def near_miss_xp(self) -> int:
        return int(self.settlement.get("near_miss_xp", 10))

    @property
    def win_xp(self) -> int:
        return int(self.settlement.get("win_xp", 50))

    @property
    def place_bet_xp(self) -> int:
        return int(self.settlement.get("place_bet_xp", 20))

    @property
    def strict_missing_users(self) -> bool:
        return bool(self.settlement.get("strict_missing_users", False))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_SOURCES = ("contract", "indexer", "local")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskConfig:
    safest_multiplier: float = 2.2
    mid_multiplier: float = 1.5


@dataclass(frozen=True)
class CollateralsConfig:
    deprecated: tuple[str, ...] = ()
    aliases: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ReconcilerConfig:
    source_precedence: tuple[str, ...] = _SOURCES


@dataclass(frozen=True)
class DisplayConfig:
    ratio_decimals: int = 2
    price_decimals: int = 4
    amount_decimals: int = 4


@dataclass(frozen=True)
class AppConfig:
    log_level: str = "INFO"
    risk: RiskConfig = field(default_factory=RiskConfig)
    collaterals: CollateralsConfig = field(default_factory=CollateralsConfig)
    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    return RiskConfig(
        safest_multiplier=float(raw.get("safest_multiplier", 2.2)),
        mid_multiplier=float(raw.get("mid_multiplier", 1.5)),
    )


def _build_collaterals(raw: dict[str, Any]) -> CollateralsConfig:
    return CollateralsConfig(
        deprecated=tuple(str(c).upper() for c in raw.get("deprecated") or []),
        aliases={str(k).upper(): str(v) for k, v in (raw.get("aliases") or {}).items()},
    )


def _build_reconciler(raw: dict[str, Any]) -> ReconcilerConfig:
    precedence = raw.get("source_precedence") or list(_SOURCES)
    return ReconcilerConfig(
        source_precedence=tuple(str(s).strip().lower() for s in precedence),
    )


def _build_display(raw: dict[str, Any]) -> DisplayConfig:
    return DisplayConfig(
        ratio_decimals=int(raw.get("ratio_decimals", 2)),
        price_decimals=int(raw.get("price_decimals", 4)),
        amount_decimals=int(raw.get("amount_decimals", 4)),
    )


def _build_app(raw: dict[str, Any]) -> AppConfig:
    return AppConfig(
        log_level=str(raw.get("log_level") or "INFO"),
        risk=_build_risk(raw.get("risk") or {}),
        collaterals=_build_collaterals(raw.get("collaterals") or {}),
        reconciler=_build_reconciler(raw.get("reconciler") or {}),
        display=_build_display(raw.get("display") or {}),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def default_config() -> AppConfig:
    """Built-in defaults; touches neither the filesystem nor the environment."""
    return AppConfig()


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)
    cfg = _build_app(raw)

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    risk = cfg.risk
    if risk.safest_multiplier <= 0 or risk.mid_multiplier <= 0:
        raise ValueError("Risk multipliers must be positive")
    if not risk.safest_multiplier > risk.mid_multiplier >= 1:
        raise ValueError(
            f"Risk multipliers must satisfy safest > mid >= 1, got "
            f"safest={risk.safest_multiplier} mid={risk.mid_multiplier}"
        )

    precedence = cfg.reconciler.source_precedence
    if sorted(precedence) != sorted(_SOURCES):
        raise ValueError(
            f"source_precedence must list each of {', '.join(_SOURCES)} exactly once, "
            f"got {list(precedence)}"
        )

    display = cfg.display
    for name in ("ratio_decimals", "price_decimals", "amount_decimals"):
        if getattr(display, name) < 0:
            raise ValueError(f"display.{name} must be non-negative")

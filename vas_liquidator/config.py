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

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
SUPPORTED_PRICE_PROVIDERS = frozenset({"pyth"})

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_url: str = ""
    chain_id: int = 175188
    rpc_timeout: int = 30
    tx_receipt_timeout: int = 120
    engine_address: str = ""
    vas_address: str = ""


@dataclass(frozen=True)
class LiquidationConfig:
    threshold: int = 50
    precision: int = 100
    common_decimals: int = 18
    user_scan_blocks: int = 1000
    check_interval_minutes: int = 5


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network"
    timeout: int = 15


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class RegistryConfig:
    database_url: str = "sqlite:///liquidator.db"


@dataclass(frozen=True)
class SignerConfig:
    # Liquidator address (lowercase) -> private key.
    private_keys: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8080
    cron_secret: str = ""
    request_timeout: int = 240


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    chain: ChainConfig = field(default_factory=ChainConfig)
    liquidation: LiquidationConfig = field(default_factory=LiquidationConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    signer: SignerConfig = field(default_factory=SignerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


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


def _build_chain(raw: dict[str, Any]) -> ChainConfig:
    return ChainConfig(
        rpc_url=raw.get("rpc_url", ""),
        chain_id=int(raw.get("chain_id", ChainConfig.chain_id)),
        rpc_timeout=int(raw.get("rpc_timeout", 30)),
        tx_receipt_timeout=int(raw.get("tx_receipt_timeout", 120)),
        engine_address=raw.get("engine_address", ""),
        vas_address=raw.get("vas_address", ""),
    )


def _build_liquidation(raw: dict[str, Any]) -> LiquidationConfig:
    return LiquidationConfig(
        threshold=int(raw.get("threshold", 50)),
        precision=int(raw.get("precision", 100)),
        common_decimals=int(raw.get("common_decimals", 18)),
        user_scan_blocks=int(raw.get("user_scan_blocks", 1000)),
        check_interval_minutes=int(raw.get("check_interval_minutes", 5)),
    )


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            timeout=int(pyth_raw.get("timeout", 15)),
        ),
    )


def _build_registry(raw: dict[str, Any]) -> RegistryConfig:
    return RegistryConfig(
        database_url=raw.get("database_url", RegistryConfig.database_url),
    )


def _build_signer(raw: dict[str, Any]) -> SignerConfig:
    keys = raw.get("private_keys", {}) or {}
    return SignerConfig(
        private_keys={str(addr).lower(): key for addr, key in keys.items() if key},
    )


def _build_server(raw: dict[str, Any]) -> ServerConfig:
    return ServerConfig(
        host=raw.get("host", "0.0.0.0"),
        port=int(raw.get("port", 8080)),
        cron_secret=raw.get("cron_secret", ""),
        request_timeout=int(raw.get("request_timeout", 240)),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            bot_token=tg.get("bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

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

    cfg = AppConfig(
        chain=_build_chain(raw.get("chain", {})),
        liquidation=_build_liquidation(raw.get("liquidation", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        registry=_build_registry(raw.get("registry", {})),
        signer=_build_signer(raw.get("signer", {})),
        server=_build_server(raw.get("server", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.chain.rpc_url:
        raise ValueError("chain.rpc_url must be configured")

    for name in ("engine_address", "vas_address"):
        value = getattr(cfg.chain, name)
        if not ADDRESS_RE.match(value):
            raise ValueError(f"chain.{name} is not a valid address: '{value}'")

    liq = cfg.liquidation
    if liq.precision <= 0 or not 0 < liq.threshold <= liq.precision:
        raise ValueError(
            "liquidation.threshold must be in (0, precision], "
            f"got {liq.threshold}/{liq.precision}"
        )

    if cfg.price_oracle.provider not in SUPPORTED_PRICE_PROVIDERS:
        raise ValueError(
            f"price_oracle.provider '{cfg.price_oracle.provider}' is not supported, "
            f"expected one of {sorted(SUPPORTED_PRICE_PROVIDERS)}"
        )

    if not cfg.registry.database_url:
        raise ValueError("registry.database_url must be configured")

    for address in cfg.signer.private_keys:
        if not ADDRESS_RE.match(address):
            raise ValueError(f"signer.private_keys has an invalid address: '{address}'")

    if cfg.notifications.telegram.enabled and not cfg.notifications.telegram.chat_id:
        raise ValueError("notifications.telegram.chat_id is required when enabled")

"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from vas_liquidator.config import (
    AppConfig,
    ChainConfig,
    LiquidationConfig,
    NotificationsConfig,
    PriceOracleConfig,
    PythConfig,
    RegistryConfig,
    ServerConfig,
    SignerConfig,
    TelegramConfig,
)
from vas_liquidator.models import Position, PriceQuote, PriceUpdate, TokenBalance

ENGINE = "0x1111111111111111111111111111111111111111"
VAS = "0x2222222222222222222222222222222222222222"
WETH = "0x3333333333333333333333333333333333333333"
WBTC = "0x4444444444444444444444444444444444444444"
USER = "0x5555555555555555555555555555555555555555"
LIQUIDATOR = "0x6666666666666666666666666666666666666666"

ETH_FEED = "ff61491a931112ddf1bd8147cd1b641375f79f5825126d665480874634fd0ace"
BTC_FEED = "e62df6c8b4a85fe1a67db44dc12de5db330f7ac66b72dc658afedf0f4a415b43"

VAS_UNIT = 10**18


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_url="http://localhost:8545",
        chain_id=31337,
        rpc_timeout=5,
        tx_receipt_timeout=10,
        engine_address=ENGINE,
        vas_address=VAS,
    )


@pytest.fixture()
def sample_app_config(sample_chain_config: ChainConfig, tmp_path: Path) -> AppConfig:
    return AppConfig(
        chain=sample_chain_config,
        liquidation=LiquidationConfig(check_interval_minutes=1),
        price_oracle=PriceOracleConfig(
            provider="pyth",
            pyth=PythConfig(hermes_url="https://hermes.example.com", timeout=5),
        ),
        registry=RegistryConfig(database_url=f"sqlite:///{tmp_path / 'registry.db'}"),
        signer=SignerConfig(),
        server=ServerConfig(cron_secret="s3cret", request_timeout=5),
        notifications=NotificationsConfig(telegram=TelegramConfig(enabled=False)),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_prices() -> PriceUpdate:
    """ETH at $2,000 and BTC at $60,000 (expo -8)."""
    return PriceUpdate(
        quotes={
            ETH_FEED: PriceQuote(ETH_FEED, 2000 * 10**8, -8, 1_700_000_000),
            BTC_FEED: PriceQuote(BTC_FEED, 60000 * 10**8, -8, 1_700_000_001),
        },
        update_data=("504e4155aa", "504e4155bb"),
        publish_times=(1_700_000_000, 1_700_000_001),
    )


@pytest.fixture()
def sample_balances() -> tuple[TokenBalance, ...]:
    """2 WETH ($4,000) and 0.1 WBTC ($6,000)."""
    return (
        TokenBalance(token=WETH, amount=2 * 10**18, decimals=18, price_feed_id=ETH_FEED),
        TokenBalance(token=WBTC, amount=10**7, decimals=8, price_feed_id=BTC_FEED),
    )


@pytest.fixture()
def unhealthy_position(sample_balances: tuple[TokenBalance, ...]) -> Position:
    """$10,000 collateral backing 6,000 VAS: ceiling is 5,000, HF 5/6."""
    return Position(user=USER, total_debt=6000 * VAS_UNIT, balances=sample_balances)


@pytest.fixture()
def healthy_position(sample_balances: tuple[TokenBalance, ...]) -> Position:
    return Position(user=USER, total_debt=1000 * VAS_UNIT, balances=sample_balances)


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    chain:
      rpc_url: "http://localhost:8545"
      chain_id: 31337
      rpc_timeout: 10
      engine_address: "{ENGINE}"
      vas_address: "{VAS}"
    liquidation:
      threshold: 50
      precision: 100
      user_scan_blocks: 500
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        timeout: 7
    registry:
      database_url: "sqlite:///test.db"
    signer:
      private_keys:
        "0xAbCdEf0000000000000000000000000000000001": "0xabc"
    server:
      port: 9000
      cron_secret: "cron"
    notifications:
      telegram:
        enabled: true
        bot_token: "tok"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file

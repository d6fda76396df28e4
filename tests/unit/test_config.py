"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from tests.conftest import ENGINE, VAS
from vas_liquidator.config import (
    AppConfig,
    ChainConfig,
    LiquidationConfig,
    NotificationsConfig,
    PriceOracleConfig,
    RegistryConfig,
    SignerConfig,
    TelegramConfig,
    _interpolate_env,
    _validate,
    load_config,
)


def _valid_config(**overrides) -> AppConfig:
    values = {
        "chain": ChainConfig(
            rpc_url="http://localhost:8545", engine_address=ENGINE, vas_address=VAS
        ),
    }
    values.update(overrides)
    return AppConfig(**values)


class TestInterpolateEnv:
    def test_simple_substitution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MY_VAR", "hello")
        assert _interpolate_env("${MY_VAR}") == "hello"

    def test_missing_var_becomes_empty(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("NONEXISTENT_VAR_XYZ", raising=False)
        assert _interpolate_env("${NONEXISTENT_VAR_XYZ}") == ""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOK", "secret")
        result = _interpolate_env({"key": "${TOK}", "plain": "text"})
        assert result == {"key": "secret", "plain": "text"}

    def test_nested_list(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "x")
        assert _interpolate_env(["${A}", "y"]) == ["x", "y"]

    def test_non_string_passthrough(self) -> None:
        assert _interpolate_env(42) == 42
        assert _interpolate_env(True) is True


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.chain.chain_id == 31337
        assert cfg.chain.rpc_timeout == 10
        assert cfg.chain.engine_address == ENGINE
        assert cfg.liquidation.user_scan_blocks == 500
        assert cfg.price_oracle.pyth.timeout == 7
        assert cfg.server.port == 9000
        assert cfg.server.cron_secret == "cron"

    def test_defaults_fill_missing_fields(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.chain.tx_receipt_timeout == 120
        assert cfg.liquidation.common_decimals == 18
        assert cfg.liquidation.check_interval_minutes == 5
        assert cfg.server.request_timeout == 240

    def test_signer_addresses_lowercased(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.signer.private_keys == {
            "0xabcdef0000000000000000000000000000000001": "0xabc"
        }

    def test_chat_id_coerced_to_string(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.notifications.telegram.chat_id == "999"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.yaml")

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_RPC_URL", "http://rpc.example.com")
        monkeypatch.setenv("TEST_CRON_SECRET", "from-env")
        yaml_content = f"""\
chain:
  rpc_url: "${{TEST_RPC_URL}}"
  engine_address: "{ENGINE}"
  vas_address: "{VAS}"
server:
  cron_secret: "${{TEST_CRON_SECRET}}"
"""
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(yaml_content)
        cfg = load_config(cfg_file)
        assert cfg.chain.rpc_url == "http://rpc.example.com"
        assert cfg.server.cron_secret == "from-env"

    def test_empty_signer_keys_dropped(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.delenv("UNSET_KEY_XYZ", raising=False)
        yaml_content = f"""\
chain:
  rpc_url: "http://localhost:8545"
  engine_address: "{ENGINE}"
  vas_address: "{VAS}"
signer:
  private_keys:
    "0x6666666666666666666666666666666666666666": "${{UNSET_KEY_XYZ}}"
"""
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(yaml_content)
        assert load_config(cfg_file).signer.private_keys == {}

    def test_invalid_yaml_config_raises(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text('chain:\n  rpc_url: "http://x"\n  engine_address: "0x12"\n')
        with pytest.raises(ValueError, match="engine_address"):
            load_config(cfg_file)


class TestValidation:
    def test_valid_config_passes(self) -> None:
        _validate(_valid_config())

    def test_missing_rpc_url(self) -> None:
        cfg = _valid_config(chain=ChainConfig(engine_address=ENGINE, vas_address=VAS))
        with pytest.raises(ValueError, match="rpc_url"):
            _validate(cfg)

    def test_invalid_vas_address(self) -> None:
        cfg = _valid_config(
            chain=ChainConfig(rpc_url="http://x", engine_address=ENGINE, vas_address="0x1")
        )
        with pytest.raises(ValueError, match="vas_address"):
            _validate(cfg)

    def test_threshold_above_precision(self) -> None:
        cfg = _valid_config(liquidation=LiquidationConfig(threshold=150, precision=100))
        with pytest.raises(ValueError, match="threshold"):
            _validate(cfg)

    def test_zero_threshold(self) -> None:
        cfg = _valid_config(liquidation=LiquidationConfig(threshold=0))
        with pytest.raises(ValueError, match="threshold"):
            _validate(cfg)

    def test_threshold_equal_to_precision_allowed(self) -> None:
        _validate(_valid_config(liquidation=LiquidationConfig(threshold=100, precision=100)))

    def test_unsupported_price_provider(self) -> None:
        cfg = _valid_config(price_oracle=PriceOracleConfig(provider="chainlink"))
        with pytest.raises(ValueError, match="provider"):
            _validate(cfg)

    def test_empty_database_url(self) -> None:
        cfg = _valid_config(registry=RegistryConfig(database_url=""))
        with pytest.raises(ValueError, match="database_url"):
            _validate(cfg)

    def test_invalid_signer_address(self) -> None:
        cfg = _valid_config(signer=SignerConfig(private_keys={"not-an-address": "0x1"}))
        with pytest.raises(ValueError, match="signer"):
            _validate(cfg)

    def test_telegram_enabled_without_chat_id(self) -> None:
        cfg = _valid_config(
            notifications=NotificationsConfig(
                telegram=TelegramConfig(enabled=True, bot_token="tok", chat_id="")
            )
        )
        with pytest.raises(ValueError, match="chat_id"):
            _validate(cfg)

    def test_telegram_disabled_without_chat_id(self) -> None:
        _validate(_valid_config(notifications=NotificationsConfig()))

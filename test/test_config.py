"""Unit tests for configuration loading."""

import json

import pytest

from token_federator.config import (
    AppConfig,
    ChainConfig,
    GasPolicyConfig,
    MonitoringConfig,
    TelegramConfig,
)
from token_federator.errors import ConfigError

from conftest import BRIDGE_ADDRESS, CONFIRMATION_TABLE, MULTISIG_ADDRESS, TEST_PRIVATE_KEY

SIDE_BRIDGE = "0x" + "55" * 20


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Minimal valid environment."""
    table_path = tmp_path / "confirmations.json"
    table_path.write_text(json.dumps(CONFIRMATION_TABLE))

    values = {
        "MAINCHAIN_RPC_URL": "http://mainchain:8545",
        "MAINCHAIN_BRIDGE_ADDRESS": BRIDGE_ADDRESS.lower(),
        "SIDECHAIN_RPC_URL": "https://sidechain:8545",
        "SIDECHAIN_BRIDGE_ADDRESS": SIDE_BRIDGE,
        "FEDERATOR_PRIVATE_KEY": TEST_PRIVATE_KEY,
        "CONFIRMATION_TABLE_PATH": str(table_path),
        "STORAGE_PATH": str(tmp_path / "db"),
    }
    for name in (
        "MAINCHAIN_MULTISIG_ADDRESS", "SIDECHAIN_MULTISIG_ADDRESS", "MAINCHAIN_FROM_BLOCK",
        "SIDECHAIN_FROM_BLOCK", "FEDERATOR_KEY_FILE", "RUN_EVERY_MINUTES", "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_GROUP_ID", "FEDERATOR_INSTANCE_ID", "PRIMARY_CHAIN_ID", "GAS_PRICE_MULTIPLIER",
        "MAX_BLOCK_RANGE", "MAX_BLOCKS_PER_CYCLE", "LOOKBACK_BLOCKS", "REQUEST_TIMEOUT",
        "RECEIPT_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    for name, value in values.items():
        monkeypatch.setenv(name, value)
    return values


class TestAppConfigFromEnv:
    """Test suite for AppConfig.from_env."""

    def test_minimal_environment(self, env):
        """Test defaults apply when only required variables are set."""
        config = AppConfig.from_env()

        assert config.mainchain.bridge_address == BRIDGE_ADDRESS
        assert config.sidechain.rpc_url == "https://sidechain:8545"
        assert config.mainchain.multisig_address is None
        assert config.monitoring.polling_interval_minutes == 2
        assert config.gas_policy == GasPolicyConfig()
        assert config.telegram.enabled is False
        assert config.confirmation_policy.min_confirmation(97) == 10

    def test_optional_variables(self, env, monkeypatch):
        """Test optional variables override defaults."""
        monkeypatch.setenv("SIDECHAIN_MULTISIG_ADDRESS", MULTISIG_ADDRESS.lower())
        monkeypatch.setenv("MAINCHAIN_FROM_BLOCK", "1200")
        monkeypatch.setenv("RUN_EVERY_MINUTES", "5")
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
        monkeypatch.setenv("TELEGRAM_GROUP_ID", "-100")
        monkeypatch.setenv("FEDERATOR_INSTANCE_ID", "fed-1")
        monkeypatch.setenv("PRIMARY_CHAIN_ID", "97")
        monkeypatch.setenv("GAS_PRICE_MULTIPLIER", "1.2")
        monkeypatch.setenv("MAX_BLOCK_RANGE", "500")

        config = AppConfig.from_env()

        assert config.sidechain.multisig_address == MULTISIG_ADDRESS
        assert config.mainchain.from_block == 1200
        assert config.monitoring.polling_interval_minutes == 5
        assert config.monitoring.max_block_range == 500
        assert config.telegram.enabled is True
        assert config.federator_instance_id == "fed-1"
        assert config.gas_policy == GasPolicyConfig(primary_chain_id=97, multiplier=1.2)

    def test_key_file(self, env, monkeypatch, tmp_path):
        """Test the signing key can come from a file."""
        key_file = tmp_path / "federator.key"
        key_file.write_text(TEST_PRIVATE_KEY + "\n")
        monkeypatch.delenv("FEDERATOR_PRIVATE_KEY")
        monkeypatch.setenv("FEDERATOR_KEY_FILE", str(key_file))

        assert AppConfig.from_env().private_key == TEST_PRIVATE_KEY

    @pytest.mark.parametrize("missing", [
        "MAINCHAIN_RPC_URL",
        "SIDECHAIN_BRIDGE_ADDRESS",
        "FEDERATOR_PRIVATE_KEY",
        "CONFIRMATION_TABLE_PATH",
    ])
    def test_missing_required_variable(self, env, monkeypatch, missing):
        """Test each required variable is enforced."""
        monkeypatch.delenv(missing)

        with pytest.raises(ConfigError):
            AppConfig.from_env()

    @pytest.mark.parametrize("name,value", [
        ("FEDERATOR_PRIVATE_KEY", "0x1234"),
        ("MAINCHAIN_RPC_URL", "ws://mainchain:8546"),
        ("SIDECHAIN_BRIDGE_ADDRESS", "0xnot-an-address"),
        ("MAINCHAIN_FROM_BLOCK", "latest"),
        ("RUN_EVERY_MINUTES", "0"),
        ("GAS_PRICE_MULTIPLIER", "0.5"),
        ("MAX_BLOCK_RANGE", "many"),
        ("CONFIRMATION_TABLE_PATH", "/nonexistent/confirmations.json"),
    ])
    def test_invalid_variable(self, env, monkeypatch, name, value):
        """Test malformed values raise ConfigError."""
        monkeypatch.setenv(name, value)

        with pytest.raises(ConfigError):
            AppConfig.from_env()

    def test_private_key_hidden_from_repr(self, env):
        """Test the signing key never shows up in logs of the config."""
        assert TEST_PRIVATE_KEY not in repr(AppConfig.from_env())


class TestDirections:
    """Test suite for AppConfig.directions."""

    def test_source_and_destination_swap(self, env, monkeypatch):
        """Test the reverse direction swaps the two chains."""
        monkeypatch.setenv("MAINCHAIN_MULTISIG_ADDRESS", MULTISIG_ADDRESS)
        config = AppConfig.from_env()

        forward, reverse = config.directions()

        assert forward.direction == "main-fed"
        assert forward.source is config.mainchain
        assert forward.destination is config.sidechain
        assert forward.multisig_address is None

        assert reverse.direction == "side-fed"
        assert reverse.source is config.sidechain
        assert reverse.destination is config.mainchain
        assert reverse.multisig_address == MULTISIG_ADDRESS

        assert forward.private_key == reverse.private_key == TEST_PRIVATE_KEY


class TestConfigValidation:
    """Test suite for the individual config records."""

    def test_chain_address_checksummed(self):
        """Test bridge addresses are stored checksummed."""
        chain = ChainConfig("mainchain", "http://localhost:8545", BRIDGE_ADDRESS.lower())

        assert chain.bridge_address == BRIDGE_ADDRESS

    def test_negative_from_block(self):
        """Test a negative starting block is rejected."""
        with pytest.raises(ConfigError):
            ChainConfig("mainchain", "http://localhost:8545", BRIDGE_ADDRESS, from_block=-1)

    def test_monitoring_limits(self):
        """Test the cycle bound cannot be smaller than one page."""
        with pytest.raises(ConfigError):
            MonitoringConfig(max_block_range=1000, max_blocks_per_cycle=10)

    def test_telegram_enabled(self):
        """Test Telegram is enabled only with both token and group."""
        assert TelegramConfig(token="t", group_id="g").enabled
        assert not TelegramConfig(token="t").enabled

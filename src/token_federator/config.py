#!/usr/bin/env python3
"""Configuration management for the token bridge federator.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded once at startup from environment variables; the
confirmation table comes from a JSON file named by CONFIRMATION_TABLE_PATH.
Two FederatorConfig values are derived from one AppConfig, one per direction,
with source and destination swapped.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from eth_account import Account
from web3 import Web3

from .confirmation_policy import ConfirmationPolicy
from .errors import ConfigError

# Get logger for this module
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChainConfig:
    """Configuration of one ledger.

    Attributes:
        name: Label used in logs and env variable names (``mainchain``/``sidechain``)
        rpc_url: HTTP(S) RPC endpoint
        bridge_address: Checksummed address of the Bridge contract
        multisig_address: Optional multisig that must approve calls to this Bridge
        from_block: First block to scan when no checkpoint exists
    """

    name: str
    rpc_url: str
    bridge_address: str
    multisig_address: str | None = None
    from_block: int | None = None

    def __post_init__(self) -> None:
        """Validate chain configuration."""
        prefix = self.name.upper()
        if not self.rpc_url:
            raise ConfigError(f"{self.name} RPC URL is required ({prefix}_RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ("http", "https"):
            raise ConfigError(
                f"Invalid {self.name} RPC URL scheme: {parsed.scheme}. Expected http or https"
            )

        if not self.bridge_address:
            raise ConfigError(f"{self.name} bridge address is required ({prefix}_BRIDGE_ADDRESS)")
        if not Web3.is_address(self.bridge_address):
            raise ConfigError(f"Invalid {self.name} bridge address: {self.bridge_address}")
        object.__setattr__(self, "bridge_address", Web3.to_checksum_address(self.bridge_address))

        if self.multisig_address:
            if not Web3.is_address(self.multisig_address):
                raise ConfigError(f"Invalid {self.name} multisig address: {self.multisig_address}")
            object.__setattr__(
                self, "multisig_address", Web3.to_checksum_address(self.multisig_address)
            )
        else:
            object.__setattr__(self, "multisig_address", None)

        if self.from_block is not None and self.from_block < 0:
            raise ConfigError(f"{self.name} from block must be non-negative, got {self.from_block}")


@dataclass(frozen=True, slots=True)
class GasPolicyConfig:
    """Chain-specific gas price policy.

    The node's gas price is multiplied by ``multiplier`` only when the
    destination chain is ``primary_chain_id``.
    """

    primary_chain_id: int = 1
    multiplier: float = 1.5

    def __post_init__(self) -> None:
        if self.multiplier < 1:
            raise ConfigError(f"Gas price multiplier must be at least 1, got {self.multiplier}")


@dataclass(frozen=True, slots=True)
class MonitoringConfig:
    """Configuration for scanning and network limits."""

    polling_interval_minutes: float = 2  # minutes between cycles
    max_block_range: int = 1000  # blocks per get_logs page
    max_blocks_per_cycle: int = 10_000  # blocks scanned in one cycle
    lookback_blocks: int = 100  # blocks to look back without checkpoint or from block
    request_timeout: int = 30  # HTTP request timeout in seconds
    receipt_timeout: int = 300  # seconds to wait for inclusion

    def __post_init__(self) -> None:
        """Validate monitoring configuration."""
        if self.polling_interval_minutes <= 0:
            raise ConfigError(
                f"Polling interval must be positive, got {self.polling_interval_minutes}"
            )
        if self.max_block_range <= 0:
            raise ConfigError(f"Max block range must be positive, got {self.max_block_range}")
        if self.max_blocks_per_cycle < self.max_block_range:
            raise ConfigError(
                f"Max blocks per cycle ({self.max_blocks_per_cycle}) must be at least "
                f"the max block range ({self.max_block_range})"
            )
        if self.lookback_blocks < 0:
            raise ConfigError(f"Lookback blocks must be non-negative, got {self.lookback_blocks}")
        if self.request_timeout <= 0:
            raise ConfigError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.receipt_timeout <= 0:
            raise ConfigError(f"Receipt timeout must be positive, got {self.receipt_timeout}")


@dataclass(frozen=True, slots=True)
class TelegramConfig:
    """Optional chat sink for operational alerts."""

    token: str = ""
    group_id: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.group_id)


def _validate_private_key(private_key: str) -> None:
    if not private_key:
        raise ConfigError(
            "Signing key is required (FEDERATOR_PRIVATE_KEY or FEDERATOR_KEY_FILE)"
        )
    try:
        Account.from_key(private_key)
    except Exception as e:
        raise ConfigError(f"Invalid federator private key format: {type(e).__name__}") from None


@dataclass(frozen=True, slots=True)
class FederatorConfig:
    """Immutable configuration of one relay direction.

    Attributes:
        direction: Name of the direction, also the checkpoint sub-directory
        source: Chain watched for Cross events
        destination: Chain receiving acceptTransfer calls
        confirmation_policy: Confirmation tiers keyed by destination chain id
        private_key: Relay signing key
        storage_path: Directory holding this direction's durable state
        gas_policy: Destination gas price policy
        monitoring: Scan and timeout limits
    """

    direction: str
    source: ChainConfig
    destination: ChainConfig
    confirmation_policy: ConfirmationPolicy
    private_key: str = field(repr=False)
    storage_path: str
    gas_policy: GasPolicyConfig = field(default_factory=GasPolicyConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def __post_init__(self) -> None:
        _validate_private_key(self.private_key)
        if not self.storage_path:
            raise ConfigError("Storage path is required (STORAGE_PATH)")

    @property
    def multisig_address(self) -> str | None:
        """Multisig guarding the destination Bridge, if any."""
        return self.destination.multisig_address


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Process-wide configuration shared by both directions."""

    mainchain: ChainConfig
    sidechain: ChainConfig
    confirmation_policy: ConfirmationPolicy
    private_key: str = field(repr=False)
    storage_path: str = "./db"
    federator_instance_id: str = ""
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    gas_policy: GasPolicyConfig = field(default_factory=GasPolicyConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def __post_init__(self) -> None:
        _validate_private_key(self.private_key)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Load configuration from environment variables.

        Returns:
            AppConfig instance with loaded values

        Raises:
            ConfigError: If required environment variables are missing or invalid
        """
        mainchain = _chain_from_env("mainchain")
        sidechain = _chain_from_env("sidechain")

        private_key = os.environ.get("FEDERATOR_PRIVATE_KEY", "").strip()
        if not private_key and (key_file := os.environ.get("FEDERATOR_KEY_FILE")):
            try:
                private_key = Path(key_file).read_text().strip()
            except OSError as e:
                raise ConfigError(f"Cannot read federator key file {key_file}: {e}") from e

        table_path = os.environ.get("CONFIRMATION_TABLE_PATH", "")
        if not table_path:
            raise ConfigError(
                "CONFIRMATION_TABLE_PATH environment variable is required. "
                "It should point to the JSON confirmation table."
            )
        confirmation_policy = ConfirmationPolicy.from_file(table_path)

        telegram = TelegramConfig(
            token=os.environ.get("TELEGRAM_BOT_TOKEN", "").strip(),
            group_id=os.environ.get("TELEGRAM_GROUP_ID", "").strip(),
        )

        gas_policy = GasPolicyConfig(
            primary_chain_id=_int_env("PRIMARY_CHAIN_ID", 1),
            multiplier=_float_env("GAS_PRICE_MULTIPLIER", 1.5),
        )

        monitoring = MonitoringConfig(
            polling_interval_minutes=_float_env("RUN_EVERY_MINUTES", 2),
            max_block_range=_int_env("MAX_BLOCK_RANGE", 1000),
            max_blocks_per_cycle=_int_env("MAX_BLOCKS_PER_CYCLE", 10_000),
            lookback_blocks=_int_env("LOOKBACK_BLOCKS", 100),
            request_timeout=_int_env("REQUEST_TIMEOUT", 30),
            receipt_timeout=_int_env("RECEIPT_TIMEOUT", 300),
        )

        return cls(
            mainchain=mainchain,
            sidechain=sidechain,
            confirmation_policy=confirmation_policy,
            private_key=private_key,
            storage_path=os.environ.get("STORAGE_PATH", "./db"),
            federator_instance_id=os.environ.get("FEDERATOR_INSTANCE_ID", ""),
            telegram=telegram,
            gas_policy=gas_policy,
            monitoring=monitoring,
        )

    def directions(self) -> tuple[FederatorConfig, FederatorConfig]:
        """Build the forward (main to side) and reverse (side to main) configurations."""
        main_federator = FederatorConfig(
            direction="main-fed",
            source=self.mainchain,
            destination=self.sidechain,
            confirmation_policy=self.confirmation_policy,
            private_key=self.private_key,
            storage_path=self.storage_path,
            gas_policy=self.gas_policy,
            monitoring=self.monitoring,
        )
        side_federator = FederatorConfig(
            direction="side-fed",
            source=self.sidechain,
            destination=self.mainchain,
            confirmation_policy=self.confirmation_policy,
            private_key=self.private_key,
            storage_path=self.storage_path,
            gas_policy=self.gas_policy,
            monitoring=self.monitoring,
        )
        return main_federator, side_federator

    def log_config(self) -> None:
        """Log the configuration in a readable format, hiding secrets."""
        logger.info("=" * 60)
        logger.info("Token Bridge Federator Configuration")
        logger.info("=" * 60)

        for chain in (self.mainchain, self.sidechain):
            logger.info(f"{chain.name.capitalize()}:")
            logger.info(f"  RPC URL: {chain.rpc_url}")
            logger.info(f"  Bridge: {chain.bridge_address}")
            logger.info(f"  Multisig: {chain.multisig_address or '[NONE]'}")
            if chain.from_block is not None:
                logger.info(f"  From Block: {chain.from_block}")

        logger.info("Monitoring Settings:")
        logger.info(f"  Run Every: {self.monitoring.polling_interval_minutes} minutes")
        logger.info(f"  Max Block Range: {self.monitoring.max_block_range}")
        logger.info(f"  Max Blocks Per Cycle: {self.monitoring.max_blocks_per_cycle}")
        logger.info(f"  Request Timeout: {self.monitoring.request_timeout} seconds")
        logger.info(f"  Receipt Timeout: {self.monitoring.receipt_timeout} seconds")

        logger.info("Federator Settings:")
        logger.info(f"  Storage Path: {self.storage_path}")
        logger.info(f"  Instance ID: {self.federator_instance_id or '[NONE]'}")
        logger.info(f"  Private Key: {'[SET]' if self.private_key else '[NOT SET]'}")
        logger.info(f"  Telegram: {'[ENABLED]' if self.telegram.enabled else '[DISABLED]'}")
        logger.info(
            f"  Gas Policy: x{self.gas_policy.multiplier} on chain {self.gas_policy.primary_chain_id}"
        )
        logger.info("=" * 60)


def _chain_from_env(name: str) -> ChainConfig:
    prefix = name.upper()
    rpc_url = os.environ.get(f"{prefix}_RPC_URL", "")
    if not rpc_url:
        raise ConfigError(f"{prefix}_RPC_URL environment variable is required.")

    bridge_address = os.environ.get(f"{prefix}_BRIDGE_ADDRESS", "")
    if not bridge_address:
        raise ConfigError(
            f"{prefix}_BRIDGE_ADDRESS environment variable is required. "
            f"This should be the Bridge contract address on the {name}."
        )

    from_block = os.environ.get(f"{prefix}_FROM_BLOCK")
    return ChainConfig(
        name=name,
        rpc_url=rpc_url,
        bridge_address=bridge_address,
        multisig_address=os.environ.get(f"{prefix}_MULTISIG_ADDRESS") or None,
        from_block=_parse_int(f"{prefix}_FROM_BLOCK", from_block) if from_block else None,
    )


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    return _parse_int(name, value) if value else default


def _float_env(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None

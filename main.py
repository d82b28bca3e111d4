#!/usr/bin/env python3
"""Entry point for the token bridge federator daemon.

Loads configuration from the environment, builds the forward and reverse
federators and runs them until a shutdown signal arrives.
"""

import argparse
import asyncio
import logging
import os
import sys

from src.token_federator.checkpoint import RelayLedger
from src.token_federator.config import AppConfig
from src.token_federator.errors import ConfigError
from src.token_federator.service import FederatorService

# Get logger for this module
logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def clear_parked(config: AppConfig, tx_id: str) -> int:
    """Release a parked transfer in every direction that holds it."""
    cleared = [
        direction.direction
        for direction in config.directions()
        if RelayLedger(direction.storage_path, direction.direction).clear(tx_id)
    ]
    if not cleared:
        logger.error(f"Transfer {tx_id} is not in any relay ledger under {config.storage_path}")
        return 1
    logger.info(f"Released {tx_id} in {', '.join(cleared)}")
    return 0


async def main() -> int:
    """Main entry point for the federator.

    Returns:
        Process exit code
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Token Bridge Federator - relay Cross events between two bridged ledgers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  MAINCHAIN_RPC_URL / SIDECHAIN_RPC_URL                 - RPC endpoints
  MAINCHAIN_BRIDGE_ADDRESS / SIDECHAIN_BRIDGE_ADDRESS   - Bridge contracts
  MAINCHAIN_MULTISIG_ADDRESS / SIDECHAIN_MULTISIG_ADDRESS - Optional multisig per chain
  FEDERATOR_PRIVATE_KEY or FEDERATOR_KEY_FILE           - Signing key
  CONFIRMATION_TABLE_PATH                               - JSON confirmation table
  RUN_EVERY_MINUTES                                     - Polling interval (default: 2)
  STORAGE_PATH                                          - Checkpoint directory (default: ./db)
  TELEGRAM_BOT_TOKEN / TELEGRAM_GROUP_ID                - Optional alert sink
  LOG_LEVEL                                             - Logging level
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Run a single cycle of both directions and exit"
    )
    parser.add_argument(
        "--clear-parked",
        metavar="TX_ID",
        help="Remove a reverted transfer from the relay ledgers so it is submitted again"
    )
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("=== Token Bridge Federator Starting ===")

    try:
        if args.clear_parked:
            return clear_parked(AppConfig.from_env(), args.clear_parked)
        service: FederatorService = FederatorService.from_env()
    except ConfigError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - MAINCHAIN_RPC_URL, MAINCHAIN_BRIDGE_ADDRESS")
        logger.error("  - SIDECHAIN_RPC_URL, SIDECHAIN_BRIDGE_ADDRESS")
        logger.error("  - FEDERATOR_PRIVATE_KEY or FEDERATOR_KEY_FILE")
        logger.error("  - CONFIRMATION_TABLE_PATH")
        return 1

    if args.once:
        results = await service.run_once()
        await service.notifier.close()
        for result in results:
            logger.info(f"{result.direction}: {result.state.value}")
        return 0

    await service.run()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

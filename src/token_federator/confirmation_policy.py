"""
Confirmation depth policy.

Maps a transfer (destination chain, token symbol, amount) to the number of
source chain confirmations required before it may be relayed. Larger
transfers wait longer.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from .errors import ConfigError, PolicyError
from .models import CrossEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConfirmationTier:
    """Transfers of at least ``amount`` whole tokens need ``confirmations`` blocks."""

    amount: Decimal
    confirmations: int


@dataclass(frozen=True, slots=True)
class ChainConfirmationTable:
    """Confirmation tiers of one chain.

    Attributes:
        default: Confirmations for symbols without tiers
        min_confirmation: Floor applied to every result
        tiers: Ascending tier list per token symbol
    """

    default: int
    min_confirmation: int
    tiers: Mapping[str, tuple[ConfirmationTier, ...]]

    @classmethod
    def parse(cls, chain_id: int, raw: Any) -> "ChainConfirmationTable":
        """
        Parse and validate one chain entry of the confirmation table.

        Args:
            chain_id: Chain the entry belongs to (for error messages)
            raw: Mapping with ``default``, ``minConfirmation`` and one list per symbol

        Raises:
            PolicyError: If the entry is malformed or tiers are not monotonic
        """
        if not isinstance(raw, Mapping):
            raise PolicyError(f"Confirmation table for chain {chain_id} must be an object")

        default = _non_negative_int(raw.get("default"), f"chain {chain_id} default")
        min_confirmation = _non_negative_int(
            raw.get("minConfirmation"), f"chain {chain_id} minConfirmation"
        )

        tiers: dict[str, tuple[ConfirmationTier, ...]] = {}
        for symbol, entries in raw.items():
            if symbol in ("default", "minConfirmation"):
                continue
            if not isinstance(entries, list) or not entries:
                raise PolicyError(f"Tiers for {symbol} on chain {chain_id} must be a non-empty list")

            parsed: list[ConfirmationTier] = []
            for entry in entries:
                if not isinstance(entry, Mapping):
                    raise PolicyError(f"Tier for {symbol} on chain {chain_id} must be an object")
                try:
                    amount = Decimal(str(entry.get("amount")))
                except InvalidOperation:
                    raise PolicyError(
                        f"Invalid tier amount {entry.get('amount')!r} for {symbol} on chain {chain_id}"
                    ) from None
                if not amount.is_finite() or amount < 0:
                    raise PolicyError(f"Invalid tier amount {amount} for {symbol} on chain {chain_id}")
                confirmations = _non_negative_int(
                    entry.get("confirmations"), f"{symbol} confirmations on chain {chain_id}"
                )

                if parsed:
                    previous = parsed[-1]
                    if amount <= previous.amount:
                        raise PolicyError(
                            f"Tier amounts for {symbol} on chain {chain_id} must be strictly ascending"
                        )
                    if confirmations < previous.confirmations:
                        raise PolicyError(
                            f"Tier confirmations for {symbol} on chain {chain_id} must not decrease"
                        )
                parsed.append(ConfirmationTier(amount=amount, confirmations=confirmations))

            tiers[symbol] = tuple(parsed)

        return cls(default=default, min_confirmation=min_confirmation, tiers=tiers)


def _non_negative_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise PolicyError(f"{name} must be a non-negative integer, got {value!r}")
    return value


class ConfirmationPolicy:
    """Pure confirmation policy over a per-chain tier table.

    Chain entries are parsed lazily, so a malformed entry only fails the
    cycles of the direction that relays to that chain.
    """

    def __init__(self, table: Mapping[Any, Any]) -> None:
        """
        Args:
            table: Raw table keyed by chain id (int or numeric string)
        """
        self._raw: dict[int, Any] = {}
        for key, value in table.items():
            try:
                self._raw[int(key)] = value
            except (TypeError, ValueError):
                raise ConfigError(f"Confirmation table key must be a chain id, got {key!r}") from None
        self._parsed: dict[int, ChainConfirmationTable] = {}

    @classmethod
    def from_file(cls, path: str | Path) -> "ConfirmationPolicy":
        """
        Load the confirmation table from a JSON file.

        Raises:
            ConfigError: If the file cannot be read or is not a JSON object
        """
        table_path = Path(path)
        try:
            with table_path.open() as file:
                raw = json.load(file)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Cannot load confirmation table from {table_path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigError(f"Confirmation table in {table_path} must be a JSON object")

        logger.info(f"Loaded confirmation table for chains {sorted(raw)} from {table_path}")
        return cls(raw)

    def table_for(self, chain_id: int) -> ChainConfirmationTable:
        """
        Return the validated table of a chain.

        Raises:
            PolicyError: If the chain has no table or it is malformed
        """
        if (cached := self._parsed.get(chain_id)) is not None:
            return cached
        if chain_id not in self._raw:
            raise PolicyError(f"No confirmation table configured for chain {chain_id}")
        table = ChainConfirmationTable.parse(chain_id, self._raw[chain_id])
        self._parsed[chain_id] = table
        return table

    def min_confirmation(self, chain_id: int) -> int:
        return self.table_for(chain_id).min_confirmation

    def required_confirmations(self, chain_id: int, symbol: str, amount: int, decimals: int) -> int:
        """
        Confirmations required before relaying a transfer.

        Walks the symbol's tiers in ascending order keeping the confirmations of
        the last tier whose threshold is at or below the amount. Amounts below
        the first threshold take the first tier. Symbols without tiers use the
        chain default. The result is never below ``minConfirmation``.

        Args:
            chain_id: Chain the table is keyed by
            symbol: Token symbol from the event
            amount: Amount in base units
            decimals: Token decimals, to convert thresholds to base units

        Returns:
            Required number of confirmations

        Raises:
            PolicyError: If the chain has no valid table
        """
        table = self.table_for(chain_id)
        tiers = table.tiers.get(symbol)

        if not tiers:
            required = table.default
        else:
            # Exact comparison in base units
            base_amount = Decimal(amount)
            required = tiers[0].confirmations
            for tier in tiers:
                if tier.amount.scaleb(decimals) <= base_amount:
                    required = tier.confirmations
                else:
                    break

        return max(required, table.min_confirmation)

    def is_ready(self, event: CrossEvent, chain_id: int, current_head: int) -> bool:
        """Whether the event is deep enough below ``current_head``."""
        required = self.required_confirmations(chain_id, event.symbol, event.amount, event.decimals)
        return current_head - event.block_number >= required

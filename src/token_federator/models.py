"""
Shared data models for the federator.

This module contains the immutable records passed between the watcher,
the policy, the executor and the orchestrator.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from web3 import Web3


def _to_hex(value: Any) -> str:
    """Normalize a hash-like value to a 0x-prefixed hex string."""
    match value:
        case bytes() | bytearray():
            return Web3.to_hex(value)
        case str() as hex_str:
            return hex_str if hex_str.startswith("0x") else "0x" + hex_str
        case _:
            return ""


def _to_address(value: Any) -> str:
    """Checksum an address when possible, otherwise return it untouched."""
    if isinstance(value, str) and Web3.is_address(value):
        return Web3.to_checksum_address(value)
    return value if isinstance(value, str) else ""


@dataclass(frozen=True, slots=True)
class CrossEvent:
    """Represents a Cross event emitted by the source chain Bridge.

    Attributes:
        source_chain_id: Chain ID of the ledger that emitted the event
        token_address: Address of the token locked or burned on the source chain
        symbol: Token symbol, used to pick the confirmation tier
        decimals: Token decimals reported by the source bridge
        granularity: Minimum indivisible unit of the token
        recipient: Address receiving the tokens on the destination chain
        amount: Transferred amount in the token's base units
        block_hash: Hash of the block containing the event
        transaction_hash: Hash of the transaction that emitted the event
        log_index: Index of the log entry in the block
        block_number: Block number where the event occurred
        extra_data: Opaque user data forwarded to the destination
    """

    source_chain_id: int
    token_address: str
    symbol: str
    decimals: int
    granularity: int
    recipient: str
    amount: int
    block_hash: str
    transaction_hash: str
    log_index: int
    block_number: int
    extra_data: bytes = b""

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"CrossEvent(block={self.block_number}, log={self.log_index}, "
            f"tx={self.transaction_hash[:10]}..., {self.amount} {self.symbol} "
            f"-> {self.recipient[:8]}...)"
        )

    @property
    def sort_key(self) -> tuple[int, int]:
        """Ordering key within a source chain."""
        return (self.block_number, self.log_index)

    @classmethod
    def from_event_data(cls, event: Mapping[str, Any], source_chain_id: int) -> "CrossEvent":
        """
        Build a CrossEvent from decoded web3 event data.

        Missing or mistyped fields are carried over as empty values instead of
        raising, so one malformed log never aborts a page. Validation happens
        when the transaction id is computed.

        Args:
            event: Decoded EventData from ``contract.events.Cross.get_logs``
            source_chain_id: Chain ID of the source ledger

        Returns:
            CrossEvent with normalized hex strings and checksummed addresses
        """
        args: Mapping[str, Any] = event.get("args", {})

        match args.get("_userData", b""):
            case bytes() | bytearray() as data:
                extra_data = bytes(data)
            case str() as data_hex:
                extra_data = Web3.to_bytes(hexstr=data_hex) if data_hex else b""
            case _:
                extra_data = b""

        return cls(
            source_chain_id=source_chain_id,
            token_address=_to_address(args.get("_tokenAddress", "")),
            symbol=args.get("_symbol", ""),
            decimals=args.get("_decimals", -1),
            granularity=args.get("_granularity", -1),
            recipient=_to_address(args.get("_to", "")),
            amount=args.get("_amount", -1),
            block_hash=_to_hex(event.get("blockHash")),
            transaction_hash=_to_hex(event.get("transactionHash")),
            log_index=event.get("logIndex", -1),
            block_number=event.get("blockNumber", -1),
            extra_data=extra_data,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "source_chain_id": self.source_chain_id,
            "token_address": self.token_address,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "granularity": self.granularity,
            "recipient": self.recipient,
            "amount": str(self.amount),
            "block_hash": self.block_hash,
            "transaction_hash": self.transaction_hash,
            "log_index": self.log_index,
            "block_number": self.block_number,
            "extra_data": Web3.to_hex(self.extra_data),
        }


@dataclass(frozen=True, slots=True)
class ReceiptOutcome:
    """Result of a destination-side submission.

    Attributes:
        transaction_hash: Hash of the destination transaction
        block_number: Block in which the transaction was included
        gas_price: Gas price actually used, after the chain gas policy
        proposed: True when the call was proposed to a multisig instead of executed
    """

    transaction_hash: str
    block_number: int
    gas_price: int
    proposed: bool = False


class FederatorState(Enum):
    """States of one relay cycle."""

    IDLE = "idle"
    SCANNING = "scanning"
    EVALUATING = "evaluating"
    RELAYING = "relaying"
    CHECKPOINTING = "checkpointing"
    ABORTED = "aborted"


@dataclass(slots=True)
class CycleResult:
    """Summary of one Federator.run() cycle."""

    direction: str
    state: FederatorState = FederatorState.IDLE
    previous_checkpoint: int | None = None
    saved_checkpoint: int | None = None
    relayed: int = 0
    already_processed: int = 0
    deferred: int = 0
    invalid: int = 0
    parked: int = 0
    error: Exception | None = None
    relayed_ids: list[str] = field(default_factory=list)

    @property
    def aborted(self) -> bool:
        return self.state is FederatorState.ABORTED

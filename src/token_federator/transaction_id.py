"""
Replay-proof transaction identifiers.

The id must match the destination Bridge's own ``getTransactionId``:
keccak256(abi.encodePacked(blockHash, txHash, receiver, amount, logIndex))
with types (bytes32, bytes32, address, uint256, uint32).
"""

from web3 import Web3

from .errors import InvalidEventError
from .models import CrossEvent

ID_TYPES: list[str] = ["bytes32", "bytes32", "address", "uint256", "uint32"]

MAX_UINT256 = 2**256 - 1
MAX_UINT32 = 2**32 - 1


def _hash_bytes(value: str, name: str) -> bytes:
    try:
        raw = Web3.to_bytes(hexstr=value)
    except (TypeError, ValueError) as e:
        raise InvalidEventError(f"{name} is not hex: {value!r}") from e
    if len(raw) != 32:
        raise InvalidEventError(f"{name} must be 32 bytes, got {len(raw)}")
    return raw


def validate_event(event: CrossEvent) -> None:
    """
    Check that an event can be relayed.

    Raises:
        InvalidEventError: If any field is malformed
    """
    if not isinstance(event.amount, int) or not 0 <= event.amount <= MAX_UINT256:
        raise InvalidEventError(f"Amount out of uint256 range: {event.amount!r}")
    if not isinstance(event.log_index, int) or not 0 <= event.log_index <= MAX_UINT32:
        raise InvalidEventError(f"Log index out of uint32 range: {event.log_index!r}")
    if not isinstance(event.block_number, int) or event.block_number < 0:
        raise InvalidEventError(f"Invalid block number: {event.block_number!r}")
    if not Web3.is_checksum_address(event.recipient):
        raise InvalidEventError(f"Invalid recipient address: {event.recipient!r}")
    if not Web3.is_checksum_address(event.token_address):
        raise InvalidEventError(f"Invalid token address: {event.token_address!r}")
    if not isinstance(event.symbol, str) or not event.symbol:
        raise InvalidEventError("Missing token symbol")
    if not isinstance(event.decimals, int) or not 0 <= event.decimals <= 255:
        raise InvalidEventError(f"Decimals out of uint8 range: {event.decimals!r}")
    if not isinstance(event.granularity, int) or not 0 <= event.granularity <= MAX_UINT256:
        raise InvalidEventError(f"Granularity out of uint256 range: {event.granularity!r}")
    _hash_bytes(event.block_hash, "Block hash")
    _hash_bytes(event.transaction_hash, "Transaction hash")


def compute_transaction_id(event: CrossEvent) -> bytes:
    """
    Compute the 32-byte id the destination Bridge uses for replay protection.

    Args:
        event: A source chain Cross event

    Returns:
        The keccak256 digest of the packed identity tuple

    Raises:
        InvalidEventError: If the event is malformed
    """
    validate_event(event)
    return bytes(Web3.solidity_keccak(
        ID_TYPES,
        [
            _hash_bytes(event.block_hash, "Block hash"),
            _hash_bytes(event.transaction_hash, "Transaction hash"),
            event.recipient,
            event.amount,
            event.log_index,
        ],
    ))

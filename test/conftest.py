"""Shared fixtures and fakes for the federator test suite."""

import asyncio

import pytest
from web3 import Web3

from token_federator.confirmation_policy import ConfirmationPolicy
from token_federator.errors import FederatorError
from token_federator.models import CrossEvent, ReceiptOutcome
from token_federator.notifier import Notifier
from token_federator.transaction_id import compute_transaction_id

# Well-known throwaway key from the eth-account documentation
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"

TOKEN_ADDRESS = Web3.to_checksum_address("0x" + "11" * 20)
RECIPIENT = Web3.to_checksum_address("0x" + "22" * 20)
BRIDGE_ADDRESS = Web3.to_checksum_address("0x" + "33" * 20)
MULTISIG_ADDRESS = Web3.to_checksum_address("0x" + "44" * 20)

DESTINATION_CHAIN_ID = 97

CONFIRMATION_TABLE = {
    "97": {
        "default": 12,
        "minConfirmation": 10,
        "WETH": [
            {"amount": 0, "confirmations": 10},
            {"amount": 0.2, "confirmations": 30},
            {"amount": 0.5, "confirmations": 50},
        ],
        "DAI": [
            {"amount": 0, "confirmations": 10},
            {"amount": 50, "confirmations": 30},
            {"amount": 100, "confirmations": 50},
        ],
    },
    "1": {
        "default": 5,
        "minConfirmation": 10,
    },
}


def make_event(
    block_number: int = 90,
    log_index: int = 0,
    amount: int = 10**17,
    symbol: str = "WETH",
    decimals: int = 18,
    recipient: str = RECIPIENT,
    extra_data: bytes = b"",
) -> CrossEvent:
    """Build a well-formed CrossEvent with hashes derived from its position."""
    return CrossEvent(
        source_chain_id=30,
        token_address=TOKEN_ADDRESS,
        symbol=symbol,
        decimals=decimals,
        granularity=1,
        recipient=recipient,
        amount=amount,
        block_hash="0x" + f"{block_number:064x}",
        transaction_hash="0x" + f"{block_number * 1000 + log_index + 1:064x}",
        log_index=log_index,
        block_number=block_number,
        extra_data=extra_data,
    )


def event_id(event: CrossEvent) -> str:
    return Web3.to_hex(compute_transaction_id(event))


@pytest.fixture
def policy():
    """Confirmation policy with tiers for destination chain 97."""
    return ConfirmationPolicy(CONFIRMATION_TABLE)


class RecordingNotifier(Notifier):
    """Notifier that keeps every message."""

    def __init__(self):
        self.messages: list[str] = []

    async def notify(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def notifier():
    return RecordingNotifier()


class FakeWatcher:
    """In-memory ChainWatcher."""

    def __init__(self, events=None, head: int = 200):
        self.events = list(events or [])
        self.head = head
        self.fetch_calls: list[tuple[int, int]] = []
        self.error: Exception | None = None

    async def get_head(self) -> int:
        return self.head

    async def fetch_events(self, from_block: int, to_block: int) -> list[CrossEvent]:
        self.fetch_calls.append((from_block, to_block))
        if self.error:
            raise self.error
        return sorted(
            (e for e in self.events if from_block <= e.block_number <= to_block),
            key=lambda e: e.sort_key,
        )


class FakeExecutor:
    """In-memory RelayExecutor simulating the destination processed-flag."""

    def __init__(self, chain_id: int = DESTINATION_CHAIN_ID, proposed: bool = False):
        self.chain_id = chain_id
        self.proposed = proposed
        self.processed: set[bytes] = set()
        self.submitted: list[CrossEvent] = []
        self.processed_checks: list[bytes] = []
        # Exceptions to raise on submit, keyed by (block_number, log_index)
        self.failures: dict[tuple[int, int], FederatorError] = {}
        self.delay: float = 0
        # Id returned by the destination Bridge instead of the computed one
        self.remote_id: bytes | None = None
        self.remote_id_checks: list[CrossEvent] = []

    async def get_chain_id(self) -> int:
        return self.chain_id

    async def remote_transaction_id(self, event: CrossEvent) -> bytes:
        self.remote_id_checks.append(event)
        return self.remote_id or compute_transaction_id(event)

    async def is_already_processed(self, tx_id: bytes) -> bool:
        self.processed_checks.append(tx_id)
        return tx_id in self.processed

    async def submit(self, event: CrossEvent) -> ReceiptOutcome:
        if self.delay:
            await asyncio.sleep(self.delay)
        if (error := self.failures.get(event.sort_key)) is not None:
            raise error
        self.submitted.append(event)
        if not self.proposed:
            self.processed.add(compute_transaction_id(event))
        return ReceiptOutcome(
            transaction_hash="0x" + f"{len(self.submitted):064x}",
            block_number=1000 + len(self.submitted),
            gas_price=20,
            proposed=self.proposed,
        )

"""Unit tests for the shared data models."""

import pytest
from hexbytes import HexBytes

from token_federator.errors import InvalidEventError
from token_federator.models import CrossEvent, CycleResult, FederatorState
from token_federator.transaction_id import compute_transaction_id

from conftest import RECIPIENT, TOKEN_ADDRESS, make_event


def make_log(**overrides):
    """Decoded web3 log of a Cross event."""
    log = {
        "args": {
            "_tokenAddress": TOKEN_ADDRESS.lower(),
            "_to": RECIPIENT.lower(),
            "_amount": 10**18,
            "_symbol": "WETH",
            "_userData": b"",
            "_decimals": 18,
            "_granularity": 1,
        },
        "blockHash": HexBytes("0x" + "ab" * 32),
        "transactionHash": HexBytes("0x" + "cd" * 32),
        "logIndex": 3,
        "blockNumber": 120,
    }
    log.update(overrides)
    return log


class TestCrossEventFromEventData:
    """Test suite for building CrossEvent from web3 logs."""

    def test_normalizes_hashes_and_addresses(self):
        """Test hashes become 0x hex strings and addresses are checksummed."""
        event = CrossEvent.from_event_data(make_log(), source_chain_id=30)

        assert event.block_hash == "0x" + "ab" * 32
        assert event.transaction_hash == "0x" + "cd" * 32
        assert event.recipient == RECIPIENT
        assert event.token_address == TOKEN_ADDRESS
        assert event.source_chain_id == 30
        assert event.sort_key == (120, 3)
        assert event.extra_data == b""

    def test_user_data_is_carried(self):
        """Test user data bytes are kept as extra data."""
        log = make_log()
        log["args"] = {**log["args"], "_userData": HexBytes("0x1234")}

        event = CrossEvent.from_event_data(log, source_chain_id=30)

        assert event.extra_data == b"\x12\x34"

    def test_hex_string_hashes_accepted(self):
        """Test unprefixed hex strings are normalized."""
        event = CrossEvent.from_event_data(
            make_log(blockHash="ab" * 32), source_chain_id=30
        )

        assert event.block_hash == "0x" + "ab" * 32

    def test_missing_fields_are_lenient(self):
        """Test a log missing fields still builds an event that fails validation."""
        event = CrossEvent.from_event_data({"args": {"_symbol": "WETH"}}, source_chain_id=30)

        assert event.recipient == ""
        assert event.block_hash == ""
        assert event.log_index == -1
        with pytest.raises(InvalidEventError):
            compute_transaction_id(event)

    def test_to_dict(self):
        """Test serialization keeps large amounts exact."""
        event = make_event(amount=2**255, extra_data=b"\x01")

        data = event.to_dict()

        assert data["amount"] == str(2**255)
        assert data["extra_data"] == "0x01"
        assert data["recipient"] == RECIPIENT


class TestCycleResult:
    """Test suite for CycleResult."""

    def test_defaults(self):
        """Test a fresh result is idle with zero counters."""
        result = CycleResult(direction="main-fed")

        assert result.state is FederatorState.IDLE
        assert result.aborted is False
        assert result.relayed == 0
        assert result.relayed_ids == []

    def test_aborted(self):
        """Test the aborted flag follows the state."""
        result = CycleResult(direction="main-fed", state=FederatorState.ABORTED)

        assert result.aborted is True

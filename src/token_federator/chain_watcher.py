"""
Paginated reader of Cross events on a source ledger.
"""

import logging
from collections.abc import Iterator
from typing import Any, List, Optional

from .errors import rpc_errors
from .models import CrossEvent
from .utils.contract_utility import ContractUtility


class ChainWatcher:
    """
    Reads Cross events from the source Bridge in bounded block ranges.

    Each get_logs request covers at most max_block_range blocks.
    """

    def __init__(
        self,
        contract_util: ContractUtility,
        bridge_address: str,
        event_name: str = "Cross",
        max_block_range: int = 1000
    ):
        """
        Initialize the chain watcher.

        Args:
            contract_util: Connected utility for the source ledger
            bridge_address: Address of the source Bridge contract
            event_name: Name of the transfer event in the Bridge ABI
            max_block_range: Maximum number of blocks requested per get_logs call
        """
        if max_block_range <= 0:
            raise ValueError(f"max_block_range must be positive, got {max_block_range}")

        self.contract_util = contract_util
        self.w3 = contract_util.w3
        self.event_name = event_name
        self.max_block_range = max_block_range

        self.contract = contract_util.get_contract("Bridge", bridge_address)
        self.bridge_address = self.contract.address

        # Get the event object
        if not hasattr(self.contract.events, event_name):
            raise ValueError(f"Event {event_name} not found in contract ABI")
        self.event_obj = getattr(self.contract.events, event_name)

        self._chain_id: Optional[int] = None

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def get_head(self) -> int:
        """Current block height of the source ledger."""
        with rpc_errors("Fetching source block number"):
            return int(self.w3.eth.block_number)

    async def get_chain_id(self) -> int:
        """Chain ID of the source ledger, fetched once."""
        if self._chain_id is None:
            with rpc_errors("Fetching source chain id"):
                self._chain_id = int(self.w3.eth.chain_id)
        return self._chain_id

    def _get_page(self, from_block: int, to_block: int) -> List[Any]:
        with rpc_errors(f"Fetching {self.event_name} logs in blocks {from_block}-{to_block}"):
            return list(self.event_obj.get_logs(from_block=from_block, to_block=to_block))

    def iter_events(self, from_block: int, to_block: int, chain_id: int) -> Iterator[CrossEvent]:
        """
        Lazily yield events page by page, ordered by (block_number, log_index).

        The sequence can be restarted from any block by calling again with a
        new ``from_block``. A failing page raises instead of being skipped.

        Args:
            from_block: First block to read (inclusive)
            to_block: Last block to read (inclusive)
            chain_id: Source chain id stamped on each event

        Raises:
            RpcError: If a page cannot be fetched
        """
        page_start = from_block
        while page_start <= to_block:
            page_end = min(page_start + self.max_block_range - 1, to_block)
            logs = self._get_page(page_start, page_end)

            events = sorted(
                (CrossEvent.from_event_data(log, chain_id) for log in logs),
                key=lambda event: event.sort_key,
            )
            if events:
                self.logger.debug(
                    f"Found {len(events)} {self.event_name} events in blocks {page_start}-{page_end}"
                )
            yield from events

            page_start = page_end + 1

    async def fetch_events(self, from_block: int, to_block: int) -> List[CrossEvent]:
        """
        Fetch every event in the range.

        The result is complete or the call raises: a failure on any page aborts
        the whole fetch so a truncated list is never mistaken for a full one.

        Args:
            from_block: First block to read (inclusive)
            to_block: Last block to read (inclusive)

        Returns:
            Events ordered by (block_number, log_index)

        Raises:
            RpcError: If any page cannot be fetched
        """
        if to_block < from_block:
            return []

        chain_id = await self.get_chain_id()
        events = list(self.iter_events(from_block, to_block, chain_id))

        self.logger.info(
            f"Found {len(events)} {self.event_name} events in blocks {from_block}-{to_block}"
        )
        return events

"""
Federator: one relay direction from a source ledger to a destination ledger.

This module contains the per-cycle state machine that scans the source chain,
applies the confirmation policy, relays ready transfers and advances the
checkpoint over the contiguous prefix of resolved events.

Correctness rests on the destination's processed-flag: every submission is
gated by it, so rescanning an already relayed range is harmless. The
checkpoint only bounds how much is rescanned.
"""

import logging
from collections import OrderedDict

from web3 import Web3

from .checkpoint import CheckpointStore, RelayLedger
from .chain_watcher import ChainWatcher
from .config import FederatorConfig
from .confirmation_policy import ConfirmationPolicy
from .errors import (
    CYCLE_FATAL_ERRORS,
    AlreadyProcessed,
    ConfigError,
    FederatorError,
    InsufficientConfirmations,
    InvalidEventError,
    RevertedError,
)
from .models import CrossEvent, CycleResult, FederatorState
from .notifier import Notifier
from .relay_executor import RelayExecutor
from .transaction_id import compute_transaction_id
from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)


class Federator:
    """Relays Cross events of one direction, one cycle per run() call."""

    MAX_RELAYED_IDS: int = 10_000

    def __init__(
        self,
        direction: str,
        watcher: ChainWatcher,
        executor: RelayExecutor,
        policy: ConfirmationPolicy,
        checkpoint_store: CheckpointStore,
        ledger: RelayLedger,
        notifier: Notifier,
        from_block: int | None = None,
        lookback_blocks: int = 100,
        max_blocks_per_cycle: int = 10_000
    ) -> None:
        """
        Initialize the Federator.

        Args:
            direction: Name of the direction, also its checkpoint key
            watcher: Reader of source chain events
            executor: Destination submitter
            policy: Confirmation policy keyed by destination chain id
            checkpoint_store: Durable cursor store
            ledger: Durable record of proposed and reverted transfers
            notifier: Operational alert sink
            from_block: First block to scan when no checkpoint exists (optional)
            lookback_blocks: Blocks below the head to start from without checkpoint or from_block
            max_blocks_per_cycle: Upper bound on the blocks scanned by one cycle
        """
        self.direction = direction
        self.watcher = watcher
        self.executor = executor
        self.policy = policy
        self.checkpoint_store = checkpoint_store
        self.ledger = ledger
        self.notifier = notifier
        self.from_block = from_block
        self.lookback_blocks = lookback_blocks
        self.max_blocks_per_cycle = max_blocks_per_cycle

        self.state = FederatorState.IDLE
        self.logger = logging.getLogger(f"{__name__}.{direction}")

        # Ids relayed by this process; bounded with FIFO eviction
        self.relayed_ids: OrderedDict[str, None] = OrderedDict()
        # Reverted transfers already reported by this process
        self._reported_parked: set[str] = set()
        # Parked transfers behind the scan cursor, re-checked every cycle
        self._parked: dict[str, CrossEvent] = {}
        # Last block whose events are resolved or parked; rescanned from the checkpoint after a restart
        self._scan_cursor: int | None = None
        self._transaction_ids_verified = False

    @classmethod
    def from_config(cls, config: FederatorConfig, notifier: Notifier) -> "Federator":
        """Build a Federator and its components from a direction configuration."""
        source_util = ContractUtility(config.source.rpc_url, config.monitoring.request_timeout)
        destination_util = ContractUtility(
            config.destination.rpc_url, config.monitoring.request_timeout
        )

        watcher = ChainWatcher(
            contract_util=source_util,
            bridge_address=config.source.bridge_address,
            max_block_range=config.monitoring.max_block_range,
        )
        executor = RelayExecutor(
            contract_util=destination_util,
            bridge_address=config.destination.bridge_address,
            private_key=config.private_key,
            gas_policy=config.gas_policy,
            multisig_address=config.multisig_address,
            receipt_timeout=config.monitoring.receipt_timeout,
        )

        return cls(
            direction=config.direction,
            watcher=watcher,
            executor=executor,
            policy=config.confirmation_policy,
            checkpoint_store=CheckpointStore(config.storage_path),
            ledger=RelayLedger(config.storage_path, config.direction),
            notifier=notifier,
            from_block=config.source.from_block,
            lookback_blocks=config.monitoring.lookback_blocks,
            max_blocks_per_cycle=config.monitoring.max_blocks_per_cycle,
        )

    def _transition(self, state: FederatorState) -> None:
        self.logger.debug(f"{self.state.value} -> {state.value}")
        self.state = state

    def _track_relayed(self, tx_id: str) -> None:
        if tx_id in self.relayed_ids:
            self.relayed_ids.move_to_end(tx_id)
            return
        if len(self.relayed_ids) >= self.MAX_RELAYED_IDS:
            self.relayed_ids.popitem(last=False)
        self.relayed_ids[tx_id] = None

    def _parked_blocks(self) -> list[int]:
        return [event.block_number for event in self._parked.values()]

    def _start_block(self, checkpoint: int | None, head: int) -> int:
        if checkpoint is not None:
            return checkpoint + 1
        if self.from_block is not None:
            return self.from_block
        return max(0, head - self.lookback_blocks)

    async def _alert(self, message: str) -> None:
        await self.notifier.notify(f"{self.direction}: {message}")

    async def run(self) -> CycleResult:
        """
        Run one relay cycle.

        Errors never propagate: the cycle ends ABORTED, the notifier is
        informed and the state machine is back to IDLE for the next tick.
        Errors outside the error taxonomy are logged with their traceback.

        Returns:
            CycleResult describing what the cycle did
        """
        result = CycleResult(direction=self.direction)
        try:
            await self._run_cycle(result)
        except FederatorError as e:
            self._abort(result, e)
            self.logger.error(f"Cycle aborted: {type(e).__name__}: {e}")
            await self._alert(f"cycle aborted: {type(e).__name__}: {e}")
        except Exception as e:
            self._abort(result, e)
            self.logger.error(f"Cycle aborted by unexpected error: {type(e).__name__}: {e}", exc_info=True)
            await self._alert(f"cycle aborted by unexpected error: {type(e).__name__}: {e}")
        finally:
            self.state = FederatorState.IDLE

        if not result.aborted:
            result.state = FederatorState.IDLE
        self.logger.info(
            f"Cycle finished ({result.state.value}): relayed={result.relayed} "
            f"already_processed={result.already_processed} deferred={result.deferred} "
            f"invalid={result.invalid} parked={result.parked} "
            f"checkpoint={result.previous_checkpoint}->{result.saved_checkpoint}"
        )
        return result

    def _abort(self, result: CycleResult, error: Exception) -> None:
        self._transition(FederatorState.ABORTED)
        result.state = FederatorState.ABORTED
        result.error = error

    async def _run_cycle(self, result: CycleResult) -> None:
        # Scanning
        self._transition(FederatorState.SCANNING)
        checkpoint = self.checkpoint_store.load(self.direction)
        result.previous_checkpoint = checkpoint
        result.saved_checkpoint = checkpoint
        self.ledger.reload()

        head = await self.watcher.get_head()
        destination_chain_id = await self.executor.get_chain_id()
        min_confirmation = self.policy.min_confirmation(destination_chain_id)

        checkpoint_start = self._start_block(checkpoint, head)
        start_block = checkpoint_start
        if self._scan_cursor is not None:
            start_block = max(start_block, self._scan_cursor + 1)
        end_block = min(head - min_confirmation, start_block + self.max_blocks_per_cycle - 1)

        events: list[CrossEvent] = []
        if end_block < start_block:
            self.logger.info(f"No confirmed blocks to scan (head={head}, next={start_block})")
            if not self._parked:
                return
            end_block = start_block - 1
        else:
            self.logger.info(f"Scanning blocks {start_block}-{end_block} (head={head})")
            events = await self.watcher.fetch_events(start_block, end_block)

        # Evaluating
        self._transition(FederatorState.EVALUATING)
        ready: list[CrossEvent] = []
        first_pending: int | None = None
        for event in events:
            if self.policy.is_ready(event, destination_chain_id, head):
                ready.append(event)
                continue
            required = self.policy.required_confirmations(
                destination_chain_id, event.symbol, event.amount, event.decimals
            )
            deferral = InsufficientConfirmations(head - event.block_number, required)
            self.logger.info(f"Deferring {event}: {deferral}")
            result.deferred += 1
            if first_pending is None or event.block_number < first_pending:
                first_pending = event.block_number

        # Relaying
        self._transition(FederatorState.RELAYING)
        await self._verify_transaction_ids(ready)

        resolved_blocks: list[int] = []
        parked_blocks: list[int] = []
        newly_parked: list[CrossEvent] = []
        try:
            # Transfers parked behind the scan cursor are re-checked by id
            for tx_id, event in list(self._parked.items()):
                if await self._relay_event(event, result):
                    del self._parked[tx_id]
                    resolved_blocks.append(event.block_number)
            for event in ready:
                if await self._relay_event(event, result):
                    resolved_blocks.append(event.block_number)
                else:
                    newly_parked.append(event)
                    parked_blocks.append(event.block_number)
        except CYCLE_FATAL_ERRORS as e:
            # Persist the resolved prefix before aborting
            if isinstance(e, RevertedError):
                self._park(event, e)
            first_unresolved = _lowest(
                first_pending, event.block_number, *parked_blocks, *self._parked_blocks()
            )
            self._checkpoint(
                result, checkpoint, checkpoint_start,
                _resolved_through(first_unresolved, resolved_blocks, end_block),
            )
            raise

        # Checkpointing
        self._transition(FederatorState.CHECKPOINTING)
        self._checkpoint(
            result, checkpoint, checkpoint_start,
            _resolved_through(
                _lowest(first_pending, *parked_blocks, *self._parked_blocks()),
                resolved_blocks,
                end_block,
            ),
        )

        # Parked transfers do not hold the scan cursor
        self._scan_cursor = _resolved_through(first_pending, resolved_blocks + parked_blocks, end_block)
        for event in newly_parked:
            if event.block_number <= self._scan_cursor:
                self._parked[Web3.to_hex(compute_transaction_id(event))] = event

    async def _verify_transaction_ids(self, events: list[CrossEvent]) -> None:
        """
        Compare the locally computed transaction id with the destination
        Bridge's getTransactionId, once per process.

        A different id would make every processed-flag lookup miss, so the
        cycle is aborted instead of relaying.

        Raises:
            ConfigError: If the two ids differ
            RpcError: If the destination cannot be queried
        """
        if self._transaction_ids_verified:
            return
        for event in events:
            try:
                local_id = compute_transaction_id(event)
            except InvalidEventError:
                continue
            remote_id = await self.executor.remote_transaction_id(event)
            if remote_id != local_id:
                raise ConfigError(
                    f"Transaction id mismatch for {event}: computed {Web3.to_hex(local_id)}, "
                    f"destination Bridge returned {Web3.to_hex(remote_id)}"
                )
            self._transaction_ids_verified = True
            self.logger.info("Transaction ids match the destination Bridge")
            return

    async def _relay_event(self, event: CrossEvent, result: CycleResult) -> bool:
        """
        Relay one ready event.

        Returns:
            True if the event is resolved (processed, relayed or unrelayable)
        """
        try:
            tx_id = Web3.to_hex(compute_transaction_id(event))
        except InvalidEventError as e:
            result.invalid += 1
            self.logger.warning(f"Skipping invalid event {event}: {e}")
            await self._alert(f"skipped invalid event {event.transaction_hash}: {e}")
            return True

        if tx_id in self.relayed_ids or self.ledger.is_proposed(tx_id):
            self.logger.debug(f"Transfer {tx_id[:10]}... already relayed by this federator")
            result.already_processed += 1
            return True

        if await self.executor.is_already_processed(Web3.to_bytes(hexstr=tx_id)):
            self.logger.info(f"Transfer {tx_id[:10]}... already processed on destination")
            result.already_processed += 1
            self._track_relayed(tx_id)
            return True

        if self.ledger.is_reverted(tx_id):
            result.parked += 1
            if tx_id not in self._reported_parked:
                self._reported_parked.add(tx_id)
                self.logger.warning(f"Transfer {tx_id[:10]}... reverted before, waiting for an operator")
                await self._alert(f"transfer {tx_id} for {event} is parked after a revert")
            return False

        try:
            outcome = await self.executor.submit(event)
        except AlreadyProcessed:
            self.logger.info(f"Transfer {tx_id[:10]}... was processed concurrently")
            result.already_processed += 1
            self._track_relayed(tx_id)
            return True

        self._track_relayed(tx_id)
        if outcome.proposed:
            self.ledger.record_proposed(tx_id, {
                "transaction_hash": outcome.transaction_hash,
                "source_transaction_hash": event.transaction_hash,
                "source_block": event.block_number,
            })
        result.relayed += 1
        result.relayed_ids.append(tx_id)
        self.logger.info(
            f"{'Proposed' if outcome.proposed else 'Relayed'} {event} as {tx_id[:10]}... "
            f"in destination tx {outcome.transaction_hash}"
        )
        return True

    def _park(self, event: CrossEvent, error: RevertedError) -> None:
        try:
            tx_id = Web3.to_hex(compute_transaction_id(event))
        except InvalidEventError:
            return
        self.ledger.record_reverted(tx_id, {
            "reason": str(error),
            "event": event.to_dict(),
        })
        self._reported_parked.add(tx_id)

    def _checkpoint(
        self,
        result: CycleResult,
        checkpoint: int | None,
        checkpoint_start: int,
        new_checkpoint: int
    ) -> None:
        if new_checkpoint < checkpoint_start:
            # Nothing resolved past the previous checkpoint
            return
        if checkpoint is not None and new_checkpoint <= checkpoint:
            return
        self.checkpoint_store.save(self.direction, new_checkpoint)
        result.saved_checkpoint = new_checkpoint
        self.logger.info(f"Checkpoint advanced to block {new_checkpoint}")


def _lowest(*blocks: int | None) -> int | None:
    return min((block for block in blocks if block is not None), default=None)


def _resolved_through(first_open: int | None, resolved_blocks: list[int], end_block: int) -> int:
    """
    Highest block whose events, and all events before it, are resolved.

    With an open event, this is the block of the last resolved event before
    it, or just below the open block when that event shares the block or
    none precedes it.
    """
    if first_open is None:
        return end_block
    last_resolved = max((block for block in resolved_blocks if block <= first_open), default=None)
    if last_resolved is None or last_resolved == first_open:
        return first_open - 1
    return last_resolved

"""
Durable relay state.

CheckpointStore keeps the last fully resolved source block per direction.
RelayLedger keeps transfers whose outcome the destination's processed-flag
does not reflect yet: multisig proposals awaiting co-signers and reverted
submissions awaiting an operator.
"""

import json
import logging
import os
import tempfile
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_write_json(path: Path, payload: Any) -> None:
    """
    Write JSON so readers see either the old or the new content, never a mix.

    The payload goes to a temporary file in the same directory, is fsynced,
    and then renamed over the destination.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as file:
            json.dump(payload, file, indent=2)
            file.flush()
            os.fsync(file.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class CheckpointStore:
    """Per-direction cursor of relay progress.

    Purely a scan-efficiency optimization: losing it causes a rescan, and the
    destination's processed-flag keeps the rescan from relaying twice.
    """

    FILE_NAME = "lastBlock.json"

    def __init__(self, storage_path: str | Path) -> None:
        self.storage_path = Path(storage_path)

    def _path(self, direction: str) -> Path:
        return self.storage_path / direction / self.FILE_NAME

    def load(self, direction: str) -> int | None:
        """
        Load the last scanned block of a direction.

        Returns:
            The block number, or None if nothing was saved yet or the file is unreadable
        """
        path = self._path(direction)
        if not path.exists():
            return None

        try:
            with path.open() as file:
                data = json.load(file)
            block = data["last_scanned_block"]
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable checkpoint {path}: {e}")
            return None

        if isinstance(block, bool) or not isinstance(block, int) or block < 0:
            logger.warning(f"Ignoring invalid checkpoint value {block!r} in {path}")
            return None
        return block

    def save(self, direction: str, block: int) -> None:
        """Persist the last scanned block of a direction."""
        if block < 0:
            raise ValueError(f"Checkpoint block must be non-negative, got {block}")
        atomic_write_json(self._path(direction), {
            "last_scanned_block": block,
            "updated_at": int(time.time()),
        })
        logger.debug(f"Checkpoint for {direction} saved at block {block}")


class RelayLedger:
    """
    Durable record of proposed and reverted transfers of one direction.

    Entries are kept in insertion order and bounded; the oldest are evicted
    first, like the in-memory caches of the event processor.
    """

    FILE_NAME = "relay_ledger.json"
    MAX_ENTRIES: int = 10_000

    PROPOSED = "proposed"
    REVERTED = "reverted"

    def __init__(self, storage_path: str | Path, direction: str) -> None:
        self.path = Path(storage_path) / direction / self.FILE_NAME
        self._entries: OrderedDict[str, dict[str, Any]] = OrderedDict()
        self._load()

    def reload(self) -> None:
        """Re-read the file, picking up entries cleared by an operator."""
        self._entries.clear()
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            with self.path.open() as file:
                data = json.load(file)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable relay ledger {self.path}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed relay ledger {self.path}")
            return
        for tx_id, entry in data.items():
            if isinstance(entry, dict) and entry.get("status") in (self.PROPOSED, self.REVERTED):
                self._entries[tx_id] = entry

    def _record(self, tx_id: str, status: str, details: dict[str, Any]) -> None:
        if tx_id in self._entries:
            self._entries.move_to_end(tx_id)
        elif len(self._entries) >= self.MAX_ENTRIES:
            self._entries.popitem(last=False)
        self._entries[tx_id] = {"status": status, "recorded_at": int(time.time()), **details}
        atomic_write_json(self.path, self._entries)

    def record_proposed(self, tx_id: str, details: dict[str, Any]) -> None:
        self._record(tx_id, self.PROPOSED, details)

    def record_reverted(self, tx_id: str, details: dict[str, Any]) -> None:
        self._record(tx_id, self.REVERTED, details)

    def clear(self, tx_id: str) -> bool:
        """
        Remove a transfer from the ledger.

        Clearing a reverted transfer releases it: the running federator
        submits it again on its next cycle.

        Returns:
            True if the transfer had an entry
        """
        if self._entries.pop(tx_id, None) is None:
            return False
        atomic_write_json(self.path, self._entries)
        logger.info(f"Cleared relay ledger entry {tx_id} in {self.path}")
        return True

    def status(self, tx_id: str) -> str | None:
        entry = self._entries.get(tx_id)
        return entry["status"] if entry else None

    def is_proposed(self, tx_id: str) -> bool:
        return self.status(tx_id) == self.PROPOSED

    def is_reverted(self, tx_id: str) -> bool:
        return self.status(tx_id) == self.REVERTED

    def __len__(self) -> int:
        return len(self._entries)

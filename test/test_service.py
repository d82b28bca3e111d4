"""Unit tests for FederatorService."""

import asyncio

import pytest

from token_federator.checkpoint import CheckpointStore, RelayLedger
from token_federator.config import AppConfig, ChainConfig, MonitoringConfig
from token_federator.confirmation_policy import ConfirmationPolicy
from token_federator.federator import Federator
from token_federator.models import CycleResult
from token_federator.notifier import NullNotifier
from token_federator.service import FederatorService

from conftest import (
    BRIDGE_ADDRESS,
    CONFIRMATION_TABLE,
    TEST_PRIVATE_KEY,
    FakeExecutor,
    FakeWatcher,
    make_event,
)


class StubFederator:
    """Federator stand-in recording the order of runs."""

    def __init__(self, direction, runs):
        self.direction = direction
        self.runs = runs

    async def run(self):
        self.runs.append(self.direction)
        return CycleResult(direction=self.direction)


class FullDiskStore(CheckpointStore):
    """Checkpoint store on a full disk."""

    def save(self, direction, block):
        raise OSError("No space left on device")


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        mainchain=ChainConfig("mainchain", "http://localhost:8545", BRIDGE_ADDRESS),
        sidechain=ChainConfig("sidechain", "http://localhost:8546", "0x" + "55" * 20),
        confirmation_policy=ConfirmationPolicy(CONFIRMATION_TABLE),
        private_key=TEST_PRIVATE_KEY,
        storage_path=str(tmp_path),
        monitoring=MonitoringConfig(polling_interval_minutes=0.001),
    )


class TestFederatorService:
    """Test suite for FederatorService."""

    def test_builds_both_directions(self, app_config):
        """Test forward and reverse federators are built from one configuration."""
        service = FederatorService(app_config)

        assert [f.direction for f in service.federators] == ["main-fed", "side-fed"]
        assert isinstance(service.notifier, NullNotifier)
        assert service.scheduler.interval == pytest.approx(0.06)

    @pytest.mark.asyncio
    async def test_run_once_runs_directions_sequentially(self, app_config):
        """Test one tick runs the forward then the reverse direction."""
        runs = []
        service = FederatorService(
            app_config,
            federators=[StubFederator("main-fed", runs), StubFederator("side-fed", runs)],
            notifier=NullNotifier(),
        )

        results = await service.run_once()

        assert runs == ["main-fed", "side-fed"]
        assert [r.direction for r in results] == ["main-fed", "side-fed"]

    @pytest.mark.asyncio
    async def test_run_until_stopped(self, app_config):
        """Test the service runs ticks until stop is requested."""
        runs = []
        service = FederatorService(
            app_config,
            federators=[StubFederator("main-fed", runs)],
            notifier=NullNotifier(),
        )

        task = asyncio.create_task(service.run())
        await asyncio.sleep(0.02)
        service.stop()
        await asyncio.wait_for(task, timeout=1)

        assert runs
        assert runs[0] == "main-fed"

    @pytest.mark.asyncio
    async def test_failing_direction_does_not_skip_the_other(
        self, app_config, tmp_path, notifier, policy
    ):
        """Test a storage failure in main-fed still lets side-fed relay on the same tick."""
        executors = {direction: FakeExecutor() for direction in ("main-fed", "side-fed")}
        stores = {"main-fed": FullDiskStore(tmp_path), "side-fed": CheckpointStore(tmp_path)}
        federators = [
            Federator(
                direction=direction,
                watcher=FakeWatcher([make_event(block_number=10)]),
                executor=executors[direction],
                policy=policy,
                checkpoint_store=stores[direction],
                ledger=RelayLedger(tmp_path, direction),
                notifier=notifier,
                from_block=0,
            )
            for direction in ("main-fed", "side-fed")
        ]
        service = FederatorService(app_config, federators=federators, notifier=notifier)

        results = await service.run_once()

        assert [r.aborted for r in results] == [True, False]
        assert isinstance(results[0].error, OSError)
        assert len(executors["side-fed"].submitted) == 1
        assert CheckpointStore(tmp_path).load("side-fed") == 190
        assert len(notifier.messages) == 1
        assert notifier.messages[0].startswith("main-fed:")

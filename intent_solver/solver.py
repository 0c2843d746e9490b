"""Solver wiring and process entry point.

Connects the listener to the filler: every discovered intent is
checkpointed and then processed in its own task, so a slow fill or a long
settlement wait never delays the next intent.
"""

from __future__ import annotations

import asyncio

import structlog

from intent_solver.chain.balances import AssetBalanceChecker
from intent_solver.chain.registry import ChainRegistry
from intent_solver.checkpoint import CheckpointStore, InMemoryCheckpointStore, SqliteCheckpointStore
from intent_solver.config import (
    Settings,
    load_account,
    load_allow_block_lists,
    load_metadata,
    load_settings,
)
from intent_solver.errors import ConfigurationError
from intent_solver.filler import Filler, IntentTracker
from intent_solver.listener import Listener
from intent_solver.logging_config import configure_logging
from intent_solver.models.intent import Intent, IntentState
from intent_solver.models.policy import AllowBlockLists, SolverMetadata
from intent_solver.protocols.erc7683 import Erc7683Adapter
from intent_solver.rules.base import RuleEngine, SolverContext
from intent_solver.rules.registry import build_rules
from intent_solver.settlement import SettlementWaiter

logger = structlog.get_logger()


class Solver:
    """One solver instance: a protocol, its sources and its rules.

    Args:
        metadata: Validated policy document
        registry: Chain registry holding the signing account
        store: Checkpoint store (in-memory by default)
        global_lists: Allow/block lists merged with the metadata's own
    """

    def __init__(
        self,
        metadata: SolverMetadata,
        registry: ChainRegistry,
        store: CheckpointStore | None = None,
        global_lists: AllowBlockLists | None = None,
    ) -> None:
        self.metadata = metadata
        self.registry = registry
        self.store = store if store is not None else InMemoryCheckpointStore()

        self.adapter = Erc7683Adapter(
            protocol_name=metadata.protocol_name,
            settlement=metadata.settlement,
            provers={
                source.address: source.prover_address
                for source in metadata.intent_sources
                if source.prover_address is not None
            },
        )
        self.balances = AssetBalanceChecker(registry)
        lists = (global_lists or AllowBlockLists()).merged_with(metadata.allow_block_lists)
        self.context = SolverContext(
            registry=registry, balances=self.balances, allow_block_lists=lists
        )
        self.engine = RuleEngine(
            build_rules(metadata.custom_rules.rules, metadata.custom_rules.keep_base_rules)
        )
        self.tracker = IntentTracker()
        self.filler = Filler(
            self.adapter,
            self.engine,
            self.context,
            SettlementWaiter(registry, metadata.settlement),
            self.tracker,
        )
        self.listener = Listener(metadata.intent_sources, registry, self.adapter, self.store)
        self._tasks: set[asyncio.Task[IntentState]] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> Solver:
        """Build a solver from environment settings.

        Raises:
            ConfigurationError: Invalid key, metadata or allow/block lists
        """
        metadata = load_metadata(settings.metadata_path)
        account = load_account(settings.private_key, settings.mnemonic)
        registry = ChainRegistry.from_config(metadata.chains, account)
        return cls(
            metadata,
            registry,
            store=SqliteCheckpointStore(settings.db_path),
            global_lists=load_allow_block_lists(settings.allow_block_lists_path),
        )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def handle_intent(self, intent: Intent, chain_name: str, block_number: int) -> None:
        """Listener callback: checkpoint, then process in the background.

        The checkpoint write runs in a worker thread so a slow disk never
        stalls the event loop.
        """
        await asyncio.to_thread(
            self.store.save_block_number, chain_name, block_number, intent.order_id
        )
        task = asyncio.create_task(self.filler.process(intent))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def start(self) -> None:
        logger.info(
            "solver_starting",
            protocol=self.metadata.protocol_name,
            rules=self.engine.rule_names,
            settlement=self.metadata.settlement.mode.value,
        )
        await self.registry.nonce_keeper.seed(self.registry.chain_ids)
        await self.listener.start(self.handle_intent)

    async def wait_idle(self) -> None:
        """Wait until every intent handed out so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def stop(self) -> None:
        await self.listener.stop()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("solver_stopped", protocol=self.metadata.protocol_name)

    async def run_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()


def main() -> int:
    """Run the solver until interrupted. Returns the process exit code."""
    try:
        settings = load_settings()
    except ConfigurationError as err:
        configure_logging()
        logger.error("configuration_error", error=str(err))
        return 1

    configure_logging(settings.log_level, settings.log_format)
    try:
        solver = Solver.from_settings(settings)
    except ConfigurationError as err:
        logger.error("configuration_error", error=str(err))
        return 1

    try:
        asyncio.run(solver.run_forever())
    except KeyboardInterrupt:
        logger.info("interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Intent discovery from origin settler contracts.

For every configured source the listener first replays history from the
start block (or the checkpoint, whichever is later) up to the block before
the current head, then polls for new blocks. Events in the checkpoint block
whose order ids were already recorded are skipped, so a restart does not
hand the same order to the filler twice.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection, Sequence
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from intent_solver.chain.client import LogEntry
    from intent_solver.chain.registry import ChainRegistry
    from intent_solver.checkpoint import Checkpoint, CheckpointStore
    from intent_solver.models.intent import Intent
    from intent_solver.models.policy import IntentSource
    from intent_solver.protocols.base import ProtocolAdapter

logger = structlog.get_logger()

IntentHandler = Callable[["Intent", str, int], Awaitable[None]]


def _log_order(log: LogEntry) -> tuple[int, int]:
    return (log.block_number, log.log_index)


class Listener:
    """Watches origin settlers for order-open events.

    Args:
        sources: Contracts to watch
        registry: Resolves each source's chain name to a ChainClient
        adapter: Decodes logs into intents
        store: Checkpoints to resume from (none means start from config)
    """

    def __init__(
        self,
        sources: Sequence[IntentSource],
        registry: ChainRegistry,
        adapter: ProtocolAdapter,
        store: CheckpointStore | None = None,
    ) -> None:
        self.sources = list(sources)
        self.registry = registry
        self.adapter = adapter
        self.store = store
        self._tasks: list[asyncio.Task[None]] = []

    async def start(self, handler: IntentHandler) -> None:
        """Backfill every source, then start the live subscriptions.

        Sources run concurrently. A source that fails (for example an
        unreachable RPC) is logged and does not affect the others.
        """
        checkpoints = self.store.get_last_indexed_blocks() if self.store else {}
        results = await asyncio.gather(
            *(
                self._start_source(source, handler, checkpoints.get(source.chain_name))
                for source in self.sources
            ),
            return_exceptions=True,
        )
        for source, result in zip(self.sources, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(
                    "listener_source_failed",
                    chain=source.chain_name,
                    address=source.address,
                    error=str(result),
                )

    async def _start_source(
        self,
        source: IntentSource,
        handler: IntentHandler,
        checkpoint: Checkpoint | None,
    ) -> None:
        start_block = source.start_block
        skip: frozenset[str] = frozenset()
        if checkpoint is not None and checkpoint.block_number >= start_block:
            start_block = checkpoint.block_number
            skip = checkpoint.processed_order_ids

        client = self.registry.get_provider(source.chain_name)
        latest = await client.block_number() - 1

        live_from = start_block
        if latest > start_block:
            await self.backfill(source, handler, start_block, latest, skip)
            live_from = latest + 1

        logger.info(
            "listening",
            protocol=self.adapter.protocol_name,
            chain=source.chain_name,
            address=source.address,
            from_block=live_from,
        )
        task = asyncio.create_task(self._subscribe(source, handler, live_from, start_block, skip))
        self._tasks.append(task)

    async def backfill(
        self,
        source: IntentSource,
        handler: IntentHandler,
        from_block: int,
        to_block: int,
        skip: Collection[str] = frozenset(),
    ) -> list[str]:
        """Replay `Open` events in [from_block, to_block] in block order.

        Events at exactly `from_block` whose order id is in `skip` are not
        delivered.

        Returns:
            Order ids delivered to the handler, in delivery order
        """
        client = self.registry.get_provider(source.chain_name)
        logs: list[LogEntry] = []
        for chunk_start in range(from_block, to_block + 1, source.block_range):
            chunk_end = min(chunk_start + source.block_range - 1, to_block)
            logs.extend(
                await client.get_logs(
                    source.address, [self.adapter.event_topic], chunk_start, chunk_end
                )
            )

        logger.info(
            "backfill",
            chain=source.chain_name,
            from_block=from_block,
            to_block=to_block,
            events=len(logs),
        )

        delivered = []
        for log in sorted(logs, key=_log_order):
            order_id = await self._dispatch(source, handler, log, from_block, skip)
            if order_id is not None:
                delivered.append(order_id)
        return delivered

    async def _subscribe(
        self,
        source: IntentSource,
        handler: IntentHandler,
        from_block: int,
        boundary_block: int,
        skip: Collection[str],
    ) -> None:
        client = self.registry.get_provider(source.chain_name)
        next_block = from_block
        try:
            while True:
                head = await client.block_number()
                if head < next_block:
                    await asyncio.sleep(source.poll_interval)
                    continue

                to_block = min(head, next_block + source.block_range - 1)
                logs = await client.get_logs(
                    source.address, [self.adapter.event_topic], next_block, to_block
                )
                for log in sorted(logs, key=_log_order):
                    await self._dispatch(source, handler, log, boundary_block, skip)
                next_block = to_block + 1
        except asyncio.CancelledError:
            raise
        except Exception as err:
            # No reconnect: the source stays down until restart
            logger.error(
                "subscription_failed",
                chain=source.chain_name,
                address=source.address,
                next_block=next_block,
                error=str(err),
            )

    async def _dispatch(
        self,
        source: IntentSource,
        handler: IntentHandler,
        log: LogEntry,
        boundary_block: int,
        skip: Collection[str],
    ) -> str | None:
        try:
            intent = self.adapter.parse_log(log, source.chain_name)
        except ValueError as err:
            logger.warning(
                "unparseable_log",
                chain=source.chain_name,
                block=log.block_number,
                tx=log.transaction_hash,
                error=str(err),
            )
            return None

        if log.block_number == boundary_block and intent.order_id in skip:
            logger.debug(
                "skipping_processed_event",
                intent=intent.label,
                block=log.block_number,
            )
            return None

        await handler(intent, source.chain_name, log.block_number)
        return intent.order_id

    async def stop(self) -> None:
        """Cancel the live subscriptions."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()


__all__ = ["IntentHandler", "Listener"]

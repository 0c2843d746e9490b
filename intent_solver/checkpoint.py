"""Per-chain indexing checkpoints.

A checkpoint is the highest block whose `Open` events were handed to the
filler, plus the order ids already seen in that block. On restart the
listener resumes from that block and skips those ids, so a block that was
only partly processed is neither lost nor replayed in full.
"""

from __future__ import annotations

import sqlite3
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class Checkpoint:
    chain_name: str
    block_number: int
    processed_count: int = 0
    processed_order_ids: frozenset[str] = field(default_factory=frozenset)


class CheckpointStore(Protocol):
    """Protocol for checkpoint persistence."""

    def get_last_indexed_blocks(self) -> dict[str, Checkpoint]:
        """Latest checkpoint per chain name."""
        ...

    def save_block_number(
        self, chain_name: str, block_number: int, order_id: str | None = None
    ) -> None:
        """Record that an event at `block_number` was processed.

        Saving the same (chain, block) again increments its processed count.
        """
        ...


class InMemoryCheckpointStore:
    """CheckpointStore kept in a dict. Lost on restart."""

    def __init__(self) -> None:
        self._counts: dict[tuple[str, int], int] = defaultdict(int)
        self._orders: dict[tuple[str, int], set[str]] = defaultdict(set)

    def get_last_indexed_blocks(self) -> dict[str, Checkpoint]:
        latest: dict[str, int] = {}
        for chain_name, block_number in self._counts:
            latest[chain_name] = max(block_number, latest.get(chain_name, block_number))
        return {
            chain_name: Checkpoint(
                chain_name=chain_name,
                block_number=block_number,
                processed_count=self._counts[(chain_name, block_number)],
                processed_order_ids=frozenset(self._orders.get((chain_name, block_number), ())),
            )
            for chain_name, block_number in latest.items()
        }

    def save_block_number(
        self, chain_name: str, block_number: int, order_id: str | None = None
    ) -> None:
        self._counts[(chain_name, block_number)] += 1
        if order_id is not None:
            self._orders[(chain_name, block_number)].add(order_id.lower())


class SqliteCheckpointStore:
    """CheckpointStore backed by a SQLite file.

    Args:
        path: Database file, or ":memory:"
    """

    def __init__(self, path: str | Path = "solver.db") -> None:
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self.path = str(path)
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # writes arrive from worker threads; one transaction at a time
        self._lock = threading.Lock()
        self._create_schema()
        logger.debug("checkpoint_store_opened", path=self.path)

    def _create_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS indexed_blocks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chain_name TEXT NOT NULL,
                    block_number INTEGER NOT NULL,
                    processed_events INTEGER NOT NULL DEFAULT 1,
                    UNIQUE (chain_name, block_number)
                )
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS processed_orders (
                    chain_name TEXT NOT NULL,
                    block_number INTEGER NOT NULL,
                    order_id TEXT NOT NULL,
                    PRIMARY KEY (chain_name, block_number, order_id)
                )
                """
            )

    def get_last_indexed_blocks(self) -> dict[str, Checkpoint]:
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT b.chain_name, b.block_number, b.processed_events
                FROM indexed_blocks b
                JOIN (
                    SELECT chain_name, MAX(block_number) AS block_number
                    FROM indexed_blocks
                    GROUP BY chain_name
                ) latest
                ON b.chain_name = latest.chain_name AND b.block_number = latest.block_number
                """
            ).fetchall()

            checkpoints = {}
            for row in rows:
                order_ids = self._conn.execute(
                    "SELECT order_id FROM processed_orders "
                    "WHERE chain_name = ? AND block_number = ?",
                    (row["chain_name"], row["block_number"]),
                ).fetchall()
                checkpoints[row["chain_name"]] = Checkpoint(
                    chain_name=row["chain_name"],
                    block_number=row["block_number"],
                    processed_count=row["processed_events"],
                    processed_order_ids=frozenset(r["order_id"] for r in order_ids),
                )
            return checkpoints

    def save_block_number(
        self, chain_name: str, block_number: int, order_id: str | None = None
    ) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO indexed_blocks (chain_name, block_number, processed_events)
                VALUES (?, ?, 1)
                ON CONFLICT (chain_name, block_number)
                DO UPDATE SET processed_events = processed_events + 1
                """,
                (chain_name, block_number),
            )
            if order_id is not None:
                self._conn.execute(
                    "INSERT OR IGNORE INTO processed_orders VALUES (?, ?, ?)",
                    (chain_name, block_number, order_id.lower()),
                )

    def close(self) -> None:
        self._conn.close()


__all__ = [
    "Checkpoint",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "SqliteCheckpointStore",
]

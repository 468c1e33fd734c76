"""
Storage module for persisting processed trade identifiers.

This module provides the dedup store: a durable set of transaction hashes
that have already been accepted into the alert pipeline. It survives
process restarts so that a fill is never alerted twice.

Unlike the I/O edges of the bot, storage errors are not swallowed here.
Without the store the pipeline cannot guarantee it won't repeat alerts, so
any sqlite3.Error propagates to the caller.
"""

import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from tradewatch.config import Config
from tradewatch.models import SeenRecord

# Configure module logger
logger = logging.getLogger(__name__)


class DedupStore:
    """
    Repository of already-seen transaction hashes.

    Inserts are idempotent and records are never updated or deleted.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize storage with database path.

        Args:
            db_path: Path to SQLite database file. If None, uses Config.DB_PATH
        """
        self.db_path = db_path or Config.DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_database()

    @contextmanager
    def _get_connection(self):
        """
        Context manager for database connections.

        Ensures proper connection handling and transaction management.
        """
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row  # Enable column access by name
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_database(self) -> None:
        """Create the processed trades table if it doesn't exist."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS processed_trades (
                    tx_hash TEXT PRIMARY KEY,
                    processed_at INTEGER NOT NULL
                )
            """)
        logger.info(f"Database initialized at {self.db_path}")

    def is_processed(self, tx_hash: str) -> bool:
        """Return True if the transaction hash has already been marked."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM processed_trades WHERE tx_hash = ?",
                (tx_hash,)
            ).fetchone()
        return row is not None

    def mark_processed(self, tx_hash: str) -> None:
        """
        Record a transaction hash as processed.

        Marking the same hash again is a no-op; the first-seen time of the
        original record is kept.

        Args:
            tx_hash: Transaction hash of the accepted fill
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO processed_trades (tx_hash, processed_at) VALUES (?, ?)",
                (tx_hash, int(time.time() * 1000))
            )
            inserted = cursor.rowcount > 0

        if inserted:
            logger.debug(f"Marked processed: {tx_hash}")

    def get_record(self, tx_hash: str) -> Optional[SeenRecord]:
        """
        Retrieve the seen record for a transaction hash.

        Args:
            tx_hash: Transaction hash

        Returns:
            SeenRecord if found, None otherwise
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT tx_hash, processed_at FROM processed_trades WHERE tx_hash = ?",
                (tx_hash,)
            ).fetchone()

        if not row:
            return None

        return SeenRecord(
            transaction_hash=row["tx_hash"],
            first_seen_at=datetime.fromtimestamp(row["processed_at"] / 1000, tz=timezone.utc)
        )

    def count(self) -> int:
        """Return the number of stored records."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT COUNT(*) AS n FROM processed_trades").fetchone()
        return int(row["n"])

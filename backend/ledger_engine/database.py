"""
SQLite engine for the wallet ledger.

Owns the single connection used by the proof and quote stores, applies
schema migrations, and provides the transaction scope that multi-row
writes run in. An unreadable ledger file is discarded and recreated empty.
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from .exceptions import StorageCorruptionError
from .migrations import MIGRATIONS, MIGRATIONS_TABLE

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA foreign_keys=ON",
)

# Files SQLite may leave beside the main database file.
SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def unix_now() -> int:
    """Return the current time in whole seconds since the epoch."""
    return int(time.time())


def _apply_migrations(conn: sqlite3.Connection) -> list[str]:
    conn.execute(MIGRATIONS_TABLE)
    applied = {row["id"] for row in conn.execute("SELECT id FROM ledger_migrations")}

    newly_applied = []
    for migration in MIGRATIONS:
        if migration.id in applied:
            continue

        conn.execute("BEGIN IMMEDIATE")
        try:
            for statement in migration.statements:
                conn.execute(statement)
            conn.execute(
                "INSERT INTO ledger_migrations (id, applied_at) VALUES (?, ?)",
                (migration.id, unix_now()),
            )
        except Exception:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

        newly_applied.append(migration.id)
        logger.info(f"Applied ledger migration {migration.id}")

    return newly_applied


class LedgerDatabase:
    """
    Single-connection SQLite ledger.

    Handles:
    - Connection setup with WAL journaling
    - Exactly-once schema migrations
    - Nested transactions (outermost BEGIN/COMMIT, inner SAVEPOINTs)
    - Discard-and-reinitialize recovery for corrupted files
    """

    def __init__(self, path: str):
        """
        Open (or create) the ledger at ``path``.

        Args:
            path: Filesystem path of the SQLite file, or ":memory:"
        """
        self.path = str(path)
        self._depth = 0
        self._lock = threading.RLock()

        try:
            self._conn = self._open()
        except StorageCorruptionError as e:
            logger.warning(
                f"Ledger at {self.path} is unreadable ({e.details['reason']}); "
                f"discarding it and starting with an empty ledger"
            )
            self._discard_files()
            self._conn = self._open()

    def _open(self) -> sqlite3.Connection:
        if self.path != MEMORY_PATH:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            self.path,
            isolation_level=None,  # transactions are managed explicitly
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row

        try:
            for pragma in PRAGMAS:
                conn.execute(pragma)

            row = conn.execute("PRAGMA quick_check").fetchone()
            if row is None or row[0] != "ok":
                result = row[0] if row is not None else "no result"
                raise StorageCorruptionError(self.path, f"quick_check: {result}")

            _apply_migrations(conn)

        except sqlite3.OperationalError:
            # Locked or unopenable files are not corruption.
            conn.close()
            raise
        except sqlite3.DatabaseError as e:
            conn.close()
            raise StorageCorruptionError(self.path, str(e)) from e
        except StorageCorruptionError:
            conn.close()
            raise

        return conn

    def _discard_files(self) -> None:
        if self.path == MEMORY_PATH:
            return

        for candidate in [self.path] + [self.path + s for s in SIDECAR_SUFFIXES]:
            try:
                Path(candidate).unlink()
            except FileNotFoundError:
                continue

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run the enclosed statements atomically.

        Nested calls join the enclosing transaction through a savepoint, so
        a failure inside rolls back only the nested block while an exception
        reaching the outermost block rolls back everything.

        Yields:
            sqlite3.Connection: The ledger connection
        """
        with self._lock:
            depth = self._depth
            savepoint = f"sp_{depth}"

            if depth == 0:
                self._conn.execute("BEGIN IMMEDIATE")
            else:
                self._conn.execute(f"SAVEPOINT {savepoint}")

            self._depth += 1
            try:
                yield self._conn
            except BaseException:
                self._depth -= 1
                if depth == 0:
                    self._conn.execute("ROLLBACK")
                else:
                    self._conn.execute(f"ROLLBACK TO {savepoint}")
                    self._conn.execute(f"RELEASE {savepoint}")
                raise
            else:
                self._depth -= 1
                if depth == 0:
                    self._conn.execute("COMMIT")
                else:
                    self._conn.execute(f"RELEASE {savepoint}")

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        """Execute a single write statement, committing immediately unless
        called inside ``transaction()``."""
        with self.transaction() as conn:
            return conn.execute(sql, params)

    def fetch_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def fetch_one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def applied_migrations(self) -> list[str]:
        rows = self.fetch_all("SELECT id FROM ledger_migrations ORDER BY id ASC")
        return [row["id"] for row in rows]

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

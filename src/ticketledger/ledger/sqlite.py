"""SQLite-backed append-only ticket ledger with a hash chain.

Design notes:
- append() runs read-tip, hash, insert inside one BEGIN IMMEDIATE transaction,
  under a per-file process lock; SQLite's write lock serializes other processes
- the UNIQUE index on ticket_id turns a lost append race into DuplicateTicket
- listing reads never hash; hashing only happens on append and in the auditor
- connections are opened per call and always closed
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

from ..canonical import CanonicalizationError
from ..types import LedgerEntry, TicketData
from .common import GENESIS_HASH, chain_hash, format_scanned_at, utc_now
from .errors import (
    DuplicateTicket,
    LedgerError,
    LedgerReadError,
    LedgerWriteError,
    sanitize_exception,
)
from .versioning import SCHEMA_VERSION

_logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_SECONDS = 5.0
DEFAULT_BATCH_SIZE = 500

_COLUMNS = "id, ticket_id, data, prev_hash, current_hash, scanned_at"

_APPEND_LOCKS: dict[Path, threading.Lock] = {}
_WAL_INITIALIZED: dict[Path, bool] = {}
_REGISTRY_LOCK = threading.Lock()


def _append_lock_for(path: Path) -> threading.Lock:
    """Return the process-wide append lock for a database file."""
    with _REGISTRY_LOCK:
        lock = _APPEND_LOCKS.get(path)
        if lock is None:
            lock = threading.Lock()
            _APPEND_LOCKS[path] = lock
        return lock


def _ensure_wal_mode(path: Path) -> None:
    """Ensure WAL mode is set exactly once per database file. Thread-safe."""
    with _REGISTRY_LOCK:
        if path in _WAL_INITIALIZED:
            return
        conn = sqlite3.connect(path)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            _WAL_INITIALIZED[path] = True
        finally:
            conn.close()


@dataclass(frozen=True)
class SQLiteLedger:
    """Local append-only ledger of accepted tickets.

    Construct once at startup and pass it to consumers. Instances are cheap and
    hold no open connection between calls.
    """

    path: Path
    clock: Callable[[], datetime] = field(default=utc_now, repr=False)
    busy_timeout_seconds: float = DEFAULT_BUSY_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path).resolve())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            _ensure_wal_mode(self.path)
            with self._connect() as conn:
                _ensure_schema(conn)
        except (sqlite3.Error, OSError) as exc:
            raise LedgerError(f"cannot open ledger: {sanitize_exception(exc)}") from exc

    def append(self, data: TicketData) -> LedgerEntry:
        """Record an accepted ticket, extending the hash chain atomically.

        Raises DuplicateTicket if the ticket_id is already present and
        LedgerWriteError on storage failure; in both cases nothing is written.
        """
        try:
            data_text = data.canonical_text()
        except CanonicalizationError as exc:
            raise LedgerWriteError(f"ticket data not serializable: {exc}") from exc

        with _append_lock_for(self.path):
            try:
                with self._connect() as conn:
                    conn.execute("BEGIN IMMEDIATE")
                    try:
                        entry = self._append_locked(conn, data.ticket_id, data_text)
                    except sqlite3.IntegrityError as exc:
                        if conn.in_transaction:
                            conn.execute("ROLLBACK")
                        if _ticket_exists(conn, data.ticket_id):
                            raise DuplicateTicket(data.ticket_id) from exc
                        raise
                    except BaseException:
                        if conn.in_transaction:
                            conn.execute("ROLLBACK")
                        raise
                    conn.execute("COMMIT")
            except (sqlite3.Error, OSError) as exc:
                raise LedgerWriteError(sanitize_exception(exc)) from exc

        _logger.debug("ledger append id=%s ticket_id=%s", entry.id, entry.ticket_id)
        return entry

    def _append_locked(
        self, conn: sqlite3.Connection, ticket_id: str, data_text: str
    ) -> LedgerEntry:
        if _ticket_exists(conn, ticket_id):
            raise DuplicateTicket(ticket_id)
        prev_hash = _read_tip_hash(conn)
        scanned_at = format_scanned_at(self.clock())
        current_hash = chain_hash(ticket_id, scanned_at, prev_hash)
        cursor = conn.execute(
            "INSERT INTO ledger (ticket_id, data, prev_hash, current_hash, scanned_at)"
            " VALUES (?, ?, ?, ?, ?)",
            (ticket_id, data_text, prev_hash, current_hash, scanned_at),
        )
        row_id = cursor.lastrowid
        if row_id is None:
            raise LedgerWriteError("insert did not assign an id")
        return LedgerEntry(
            id=row_id,
            ticket_id=ticket_id,
            data=data_text,
            prev_hash=prev_hash,
            current_hash=current_hash,
            scanned_at=scanned_at,
        )

    def exists(self, ticket_id: str) -> bool:
        """Duplicate guard: whether ticket_id is already recorded. Advisory only."""
        with self._reading() as conn:
            return _ticket_exists(conn, ticket_id)

    def get(self, ticket_id: str) -> LedgerEntry | None:
        with self._reading() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM ledger WHERE ticket_id = ?", (ticket_id,)
            ).fetchone()
        return _row_to_entry(row) if row is not None else None

    def tip_hash(self) -> str:
        """current_hash of the newest entry, or GENESIS_HASH when empty."""
        with self._reading() as conn:
            return _read_tip_hash(conn)

    def count(self) -> int:
        with self._reading() as conn:
            row = conn.execute("SELECT COUNT(*) FROM ledger").fetchone()
        return int(row[0])

    def entries(
        self, *, newest_first: bool = True, limit: int | None = None, offset: int = 0
    ) -> list[LedgerEntry]:
        """List entries for browsing. No hashing is performed."""
        if limit is not None and limit < 0:
            raise ValueError("limit must be >= 0")
        if offset < 0:
            raise ValueError("offset must be >= 0")
        order = "DESC" if newest_first else "ASC"
        with self._reading() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM ledger ORDER BY id {order} LIMIT ? OFFSET ?",
                (-1 if limit is None else limit, offset),
            ).fetchall()
        return [_row_to_entry(row) for row in rows]

    def iter_entries(self, *, batch_size: int = DEFAULT_BATCH_SIZE) -> Iterator[LedgerEntry]:
        """Stream entries in ascending id order without loading the whole ledger.

        The underlying connection is closed when the iterator is exhausted,
        closed, or garbage collected.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        with self._reading() as conn:
            cursor = conn.execute(f"SELECT {_COLUMNS} FROM ledger ORDER BY id ASC")
            while True:
                rows = cursor.fetchmany(batch_size)
                if not rows:
                    return
                for row in rows:
                    yield _row_to_entry(row)

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise LedgerReadError(sanitize_exception(exc)) from exc

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Autocommit connection; transactions are explicit. Always closes."""
        conn = sqlite3.connect(
            self.path,
            timeout=self.busy_timeout_seconds,
            isolation_level=None,
            check_same_thread=False,
        )
        try:
            conn.execute("PRAGMA synchronous=FULL")
            yield conn
        finally:
            conn.close()


def _ensure_schema(conn: sqlite3.Connection) -> None:
    version = int(conn.execute("PRAGMA user_version").fetchone()[0])
    if version > SCHEMA_VERSION:
        raise LedgerError(f"ledger schema version {version} is newer than supported")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS ledger (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            ticket_id TEXT NOT NULL UNIQUE,
            data TEXT NOT NULL,
            prev_hash TEXT NOT NULL,
            current_hash TEXT NOT NULL,
            scanned_at TEXT NOT NULL
        )
        """
    )
    if version < SCHEMA_VERSION:
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")


def _ticket_exists(conn: sqlite3.Connection, ticket_id: str) -> bool:
    row = conn.execute("SELECT 1 FROM ledger WHERE ticket_id = ?", (ticket_id,)).fetchone()
    return row is not None


def _read_tip_hash(conn: sqlite3.Connection) -> str:
    row = conn.execute("SELECT current_hash FROM ledger ORDER BY id DESC LIMIT 1").fetchone()
    if row is None:
        return GENESIS_HASH
    current_hash = row[0]
    if not isinstance(current_hash, str) or not current_hash:
        raise LedgerReadError("chain tip current_hash missing or invalid")
    return current_hash


def _row_to_entry(row: tuple[object, ...]) -> LedgerEntry:
    entry_id, ticket_id, data, prev_hash, current_hash, scanned_at = row
    return LedgerEntry(
        id=int(entry_id),  # type: ignore[arg-type]
        ticket_id=str(ticket_id),
        data=str(data),
        prev_hash=str(prev_hash),
        current_hash=str(current_hash),
        scanned_at=str(scanned_at),
    )

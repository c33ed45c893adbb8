from __future__ import annotations

"""
SQLite store
============

Durable persistence for the distributor state. The config and each cycle
record are kept as canonical JSON documents (amounts are u64 and do not fit a
signed SQLite INTEGER), with a handful of indexed columns for listing.

Design notes
------------
- Single-writer, many-reader friendly via WAL.
- Schema versioned in a `meta` table and created on open.
- Every distributor operation is one `BEGIN IMMEDIATE` transaction, so two
  operations touching the config are never applied against the same snapshot.
- Past cycle records are retained for audit (`list_cycles`).

Example
-------
    store = SQLiteStore("tokendist.db")
    dist = Distributor(store, ledger, clock)
    ...
    for rec in store.list_cycles():
        print(rec.cycle_id, rec.total_paid)
"""

import contextlib
import json
import sqlite3
import threading
from typing import Any, Dict, Iterator, List, Optional

from tokendist.errors import StoreError
from tokendist.store.base import DistributorStore, StoreState
from tokendist.types import CycleRecord, DistributionConfig


def _dumps(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


class SQLiteStore(DistributorStore):
    """
    SQLite-backed DistributorStore.

    Thread-safe for simple concurrent access via an internal RLock. Separate
    processes are serialized by SQLite's write lock.
    """

    SCHEMA_VERSION = 1

    def __init__(self, path: str) -> None:
        """
        Open or create the database. `path` may be a filesystem path, ":memory:",
        or a URI (e.g. "file:tokendist.db?mode=rwc").
        """
        uri = path.startswith("file:")
        try:
            self._db = sqlite3.connect(
                path,
                uri=uri,
                check_same_thread=False,
                isolation_level=None,  # autocommit; transactions are explicit
            )
        except sqlite3.Error as e:
            raise StoreError(f"cannot open store at {path!r}", details={"error": str(e)}) from e
        self._db.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._apply_pragmas()
        with self._tx():
            self._migrate()

    # -- lifecycle -------------------------------------------------------------

    def close(self) -> None:
        with self._lock:
            self._db.close()

    @contextlib.contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                self._db.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreError("cannot begin transaction", details={"error": str(e)}) from e
            try:
                yield self._db
                self._db.execute("COMMIT")
            except Exception:
                self._db.execute("ROLLBACK")
                raise

    def _apply_pragmas(self) -> None:
        cur = self._db.cursor()
        cur.execute("PRAGMA journal_mode=WAL")
        cur.execute("PRAGMA synchronous=FULL")
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    def _migrate(self) -> None:
        cur = self._db.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """
        )
        cur.execute("SELECT value FROM meta WHERE key='schema_version'")
        row = cur.fetchone()
        if not row:
            cur.execute(
                "INSERT INTO meta(key, value) VALUES('schema_version', ?)",
                (str(self.SCHEMA_VERSION),),
            )
        elif int(row["value"]) != self.SCHEMA_VERSION:
            raise StoreError(
                "unsupported schema version",
                details={"found": row["value"], "expected": self.SCHEMA_VERSION},
            )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS distribution_config (
                id    INTEGER PRIMARY KEY CHECK (id = 1),
                body  TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS cycles (
                cycle_id    INTEGER PRIMARY KEY,
                started_at  INTEGER NOT NULL,
                body        TEXT NOT NULL
            )
            """
        )
        cur.close()

    # -- DistributorStore ------------------------------------------------------

    def _read(self) -> StoreState:
        row = self._db.execute("SELECT body FROM distribution_config WHERE id = 1").fetchone()
        config = DistributionConfig.from_dict(json.loads(row["body"])) if row else None
        cycle = None
        if config is not None and config.cycle_id > 0:
            crow = self._db.execute(
                "SELECT body FROM cycles WHERE cycle_id = ?", (config.cycle_id,)
            ).fetchone()
            if crow:
                cycle = CycleRecord.from_dict(json.loads(crow["body"]))
        return StoreState(config=config, cycle=cycle)

    def _write(self, state: StoreState) -> None:
        if state.config is not None:
            self._db.execute(
                "INSERT INTO distribution_config(id, body) VALUES(1, ?) "
                "ON CONFLICT(id) DO UPDATE SET body = excluded.body",
                (_dumps(state.config.to_dict()),),
            )
        if state.cycle is not None:
            self._db.execute(
                "INSERT INTO cycles(cycle_id, started_at, body) VALUES(?, ?, ?) "
                "ON CONFLICT(cycle_id) DO UPDATE SET body = excluded.body",
                (state.cycle.cycle_id, state.cycle.started_at, _dumps(state.cycle.to_dict())),
            )

    @contextlib.contextmanager
    def transaction(self) -> Iterator[StoreState]:
        try:
            with self._tx():
                state = self._read()
                yield state
                self._write(state)
        except sqlite3.Error as e:
            raise StoreError("store transaction failed", details={"error": str(e)}) from e

    def load(self) -> StoreState:
        with self._lock:
            try:
                return self._read()
            except sqlite3.Error as e:
                raise StoreError("store read failed", details={"error": str(e)}) from e

    # -- audit -----------------------------------------------------------------

    def list_cycles(self, *, limit: Optional[int] = None) -> List[CycleRecord]:
        q = "SELECT body FROM cycles ORDER BY cycle_id DESC"
        args: tuple = ()
        if limit is not None:
            q += " LIMIT ?"
            args = (int(limit),)
        with self._lock:
            rows = self._db.execute(q, args).fetchall()
        return [CycleRecord.from_dict(json.loads(r["body"])) for r in rows]


__all__ = ["SQLiteStore"]

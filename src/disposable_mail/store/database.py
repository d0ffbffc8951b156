"""SQLite profile database shared by every session of one user.

One file holds the per-account message tables, tombstones, the starred set
and a small key/value table for the account registry, analytics, settings and
the cross-session sync slot.

sqlite3 is synchronous. Calls are wrapped with `asyncio.to_thread` and
serialized behind an `asyncio.Lock`, so the rest of the codebase stays
async-friendly and store operations apply in the order they were awaited.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

import structlog

from disposable_mail.exceptions import StorageUnavailable

logger = structlog.get_logger()

T = TypeVar("T")

_SCHEMA_VERSION = 2

# Opening is attempted once more before StorageUnavailable propagates.
_OPEN_ATTEMPTS = 2


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LocalDatabase:
    """Owns the SQLite connection of one session.

    Usage::

        async with LocalDatabase(Path("profile.sqlite3")) as db:
            value = await db.run(get_kv, "accounts")
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Open the database, creating the schema on first use.

        Raises:
            StorageUnavailable: If the database cannot be opened after a retry.
        """

        async with self._lock:
            if self._conn is None:
                self._conn = await asyncio.to_thread(self._open)

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""

        async with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info("database_closed", path=str(self._db_path))

    async def __aenter__(self) -> LocalDatabase:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def run(self, fn: Callable[..., T], *args: Any) -> T:
        """Run `fn(conn, *args)` on a worker thread while holding the session lock.

        The connection is opened lazily if it is not open yet.

        Raises:
            StorageUnavailable: If the database cannot be opened or SQLite
                reports an operational failure.
        """

        async with self._lock:
            if self._conn is None:
                self._conn = await asyncio.to_thread(self._open)
            conn = self._conn
            try:
                return await asyncio.to_thread(fn, conn, *args)
            except sqlite3.OperationalError as exc:
                logger.exception("database_operation_failed", operation=fn.__name__, error=str(exc))
                raise StorageUnavailable(str(exc)) from exc

    def _open(self) -> sqlite3.Connection:
        last_error: Exception | None = None
        for attempt in range(1, _OPEN_ATTEMPTS + 1):
            try:
                self._db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=5.0)
                conn.row_factory = sqlite3.Row
                try:
                    conn.execute("PRAGMA journal_mode=WAL;")
                    self._initialize(conn)
                except (sqlite3.Error, StorageUnavailable):
                    conn.close()
                    raise
            except (sqlite3.Error, OSError) as exc:
                last_error = exc
                logger.warning(
                    "database_open_failed",
                    path=str(self._db_path),
                    attempt=attempt,
                    max_attempts=_OPEN_ATTEMPTS,
                    error=str(exc),
                )
                continue

            logger.info("database_opened", path=str(self._db_path), attempt=attempt)
            return conn

        raise StorageUnavailable(
            f"Cannot open database {self._db_path}: {last_error}"
        ) from last_error

    def _initialize(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _schema_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )

        current_version = self._get_schema_version(conn)
        if current_version is None:
            self._create_schema(conn)
            self._set_schema_version(conn, _SCHEMA_VERSION)
            conn.commit()
            logger.info("database_schema_created", version=_SCHEMA_VERSION)
            return

        if current_version != _SCHEMA_VERSION:
            raise StorageUnavailable(
                f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
            )

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS messages (
                account_id TEXT NOT NULL,
                id TEXT NOT NULL,
                sender TEXT NOT NULL,
                subject TEXT NOT NULL,
                body TEXT NOT NULL,
                created_at TEXT NOT NULL,
                is_read INTEGER NOT NULL DEFAULT 0,
                starred INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (account_id, id)
            );

            CREATE INDEX IF NOT EXISTS idx_messages_account_created
                ON messages(account_id, created_at);

            CREATE TABLE IF NOT EXISTS tombstones (
                account_id TEXT NOT NULL,
                message_id TEXT NOT NULL,
                deleted_at TEXT NOT NULL,
                PRIMARY KEY (account_id, message_id)
            );

            CREATE TABLE IF NOT EXISTS starred (
                message_id TEXT PRIMARY KEY,
                starred_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )


# ── Key/value helpers (run through LocalDatabase.run) ──────────────────────────


def get_kv(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
    return None if row is None else str(row[0])


def set_kv(conn: sqlite3.Connection, key: str, value: str) -> None:
    with conn:
        conn.execute(
            """
            INSERT INTO kv (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value, _now_iso()),
        )


def get_json(conn: sqlite3.Connection, key: str) -> Any | None:
    raw = get_kv(conn, key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("kv_value_not_json", key=key)
        return None


def set_json(conn: sqlite3.Connection, key: str, value: Any) -> None:
    set_kv(conn, key, json.dumps(value))

"""Message identity and tombstones.

Identity is derived from the provider's `created` timestamp and sender only.
Two deliveries from the same sender stamped with the same instant are one
message, even if their subjects differ; a redelivered message always maps to
the id it had the first time.

Tombstones are scoped per account. Generating a new address for an account
resets that account's tombstones and leaves every other account untouched.
"""

from __future__ import annotations

import re
import sqlite3
from datetime import datetime, timezone

import structlog

from disposable_mail.exceptions import MalformedRemoteMessage
from disposable_mail.store.database import LocalDatabase

logger = structlog.get_logger()

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


def derive_message_id(created: str | datetime, sender: str) -> str:
    """Build the deterministic id of a message.

    Args:
        created: Provider timestamp, as received (datetimes use ISO format).
        sender: Sender address.

    Returns:
        The concatenation of both fields with every non-alphanumeric
        character removed.

    Raises:
        MalformedRemoteMessage: If nothing alphanumeric is left.
    """

    if isinstance(created, datetime):
        created = created.isoformat()

    message_id = _NON_ALNUM.sub("", f"{created}{sender}")
    if not message_id:
        raise MalformedRemoteMessage(f"Cannot derive an id from created={created!r} sender={sender!r}")
    return message_id


# ── SQL helpers shared with the message store's transactions ──────────────────


def insert_tombstone(conn: sqlite3.Connection, account_id: str, message_id: str) -> None:
    conn.execute(
        """
        INSERT OR IGNORE INTO tombstones (account_id, message_id, deleted_at)
        VALUES (?, ?, ?)
        """,
        (account_id, message_id, datetime.now(timezone.utc).isoformat()),
    )


def is_tombstoned(conn: sqlite3.Connection, account_id: str, message_id: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM tombstones WHERE account_id = ? AND message_id = ?",
        (account_id, message_id),
    ).fetchone()
    return row is not None


class TombstoneSet:
    """Permanently deleted message ids, per account."""

    def __init__(self, database: LocalDatabase) -> None:
        self._db = database

    async def add(self, account_id: str, message_id: str) -> None:
        def _add(conn: sqlite3.Connection) -> None:
            with conn:
                insert_tombstone(conn, account_id, message_id)

        await self._db.run(_add)
        logger.debug("tombstone_added", account_id=account_id, message_id=message_id)

    async def contains(self, account_id: str, message_id: str) -> bool:
        return await self._db.run(is_tombstoned, account_id, message_id)

    async def ids(self, account_id: str) -> set[str]:
        def _ids(conn: sqlite3.Connection) -> set[str]:
            rows = conn.execute(
                "SELECT message_id FROM tombstones WHERE account_id = ?",
                (account_id,),
            ).fetchall()
            return {row[0] for row in rows}

        return await self._db.run(_ids)

    async def all(self) -> list[tuple[str, str]]:
        """Return every `(account_id, message_id)` pair, ordered."""

        def _all(conn: sqlite3.Connection) -> list[tuple[str, str]]:
            rows = conn.execute(
                "SELECT account_id, message_id FROM tombstones ORDER BY account_id, message_id"
            ).fetchall()
            return [(row[0], row[1]) for row in rows]

        return await self._db.run(_all)

    async def reset(self, account_id: str) -> int:
        """Forget every tombstone of one account. Only address generation calls this."""

        def _reset(conn: sqlite3.Connection) -> int:
            with conn:
                cur = conn.execute("DELETE FROM tombstones WHERE account_id = ?", (account_id,))
            return cur.rowcount

        removed = await self._db.run(_reset)
        logger.info("tombstones_reset", account_id=account_id, removed=removed)
        return removed

    async def replace(self, entries: list[tuple[str, str]]) -> None:
        """Replace the whole set (backup restore)."""

        def _replace(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute("DELETE FROM tombstones")
                for account_id, message_id in entries:
                    insert_tombstone(conn, account_id, message_id)

        await self._db.run(_replace)
        logger.info("tombstones_replaced", count=len(entries))

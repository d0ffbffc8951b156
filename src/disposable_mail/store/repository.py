"""Account-partitioned message store.

Messages are keyed by `(account_id, id)`. Every call names its account
explicitly; the store never reads a "current account" from anywhere else.
Deleting a message tombstones its id for that account and drops it from the
starred set in the same transaction.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

import structlog

from disposable_mail.exceptions import DisposableMailError, TombstonedMessageError
from disposable_mail.models import BatchResult, Message
from disposable_mail.store.database import LocalDatabase
from disposable_mail.store.identity import TombstoneSet, insert_tombstone, is_tombstoned
from disposable_mail.store.profile import StarredSet

if TYPE_CHECKING:
    from disposable_mail.analytics import AnalyticsAggregator

logger = structlog.get_logger()

_COLUMNS = "account_id, id, sender, subject, body, created_at, is_read, starred"


def _row_to_message(row: sqlite3.Row) -> Message:
    return Message(
        id=row["id"],
        account_id=row["account_id"],
        sender=row["sender"],
        subject=row["subject"],
        body=row["body"],
        created_at=datetime.fromisoformat(row["created_at"]),
        is_read=bool(row["is_read"]),
        starred=bool(row["starred"]),
    )


def _sort_newest_first(messages: list[Message]) -> list[Message]:
    return sorted(messages, key=lambda m: (m.created_at, m.id), reverse=True)


def _upsert(conn: sqlite3.Connection, message: Message) -> None:
    conn.execute(
        f"""
        INSERT INTO messages ({_COLUMNS})
        VALUES (:account_id, :id, :sender, :subject, :body, :created_at, :is_read, :starred)
        ON CONFLICT(account_id, id) DO UPDATE SET
            sender=excluded.sender,
            subject=excluded.subject,
            body=excluded.body,
            created_at=excluded.created_at,
            is_read=excluded.is_read,
            starred=excluded.starred
        """,
        {
            "account_id": message.account_id,
            "id": message.id,
            "sender": message.sender,
            "subject": message.subject,
            "body": message.body,
            "created_at": message.created_at.astimezone(timezone.utc).isoformat(),
            "is_read": 1 if message.is_read else 0,
            "starred": 1 if message.starred else 0,
        },
    )


def _is_starred(conn: sqlite3.Connection, message_id: str) -> bool:
    return conn.execute("SELECT 1 FROM starred WHERE message_id = ?", (message_id,)).fetchone() is not None


def _delete_one(conn: sqlite3.Connection, account_id: str, message_id: str, tombstone: bool) -> bool:
    with conn:
        cur = conn.execute(
            "DELETE FROM messages WHERE account_id = ? AND id = ?",
            (account_id, message_id),
        )
        if tombstone:
            insert_tombstone(conn, account_id, message_id)
        conn.execute("DELETE FROM starred WHERE message_id = ?", (message_id,))
        conn.execute("UPDATE messages SET starred = 0 WHERE id = ?", (message_id,))
    return cur.rowcount > 0


class MessageStore:
    """Persistent, account-partitioned table of messages.

    Every mutation refreshes the analytics counters of the account it touched.
    Bulk operations apply one message per transaction and report an aggregate
    `BatchResult`; items already applied stay applied when a later one fails.
    """

    def __init__(
        self,
        database: LocalDatabase,
        starred: StarredSet,
        tombstones: TombstoneSet,
        analytics: AnalyticsAggregator | None = None,
    ) -> None:
        self._db = database
        self._starred = starred
        self._tombstones = tombstones
        self._analytics = analytics

    # ── Single-message API ─────────────────────────────────────────────────────

    async def put(self, message: Message, account_id: str) -> Message:
        """Upsert a message into `account_id`'s partition.

        The stored `account_id` is always the argument, and `starred` always
        reflects the starred set.

        Raises:
            StorageUnavailable: If the database cannot be opened (after one retry).
            TombstonedMessageError: If the id was permanently deleted for the account.
        """

        stored = await self._put(message, account_id)
        await self._refresh_analytics(account_id)
        return stored

    async def get_all(self, account_id: str) -> list[Message]:
        """Return the account's messages, newest first."""

        def _get_all(conn: sqlite3.Connection) -> list[Message]:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM messages WHERE account_id = ?",
                (account_id,),
            ).fetchall()
            return [_row_to_message(row) for row in rows]

        return _sort_newest_first(await self._db.run(_get_all))

    async def get_by_id(self, account_id: str, message_id: str) -> Message | None:
        def _get(conn: sqlite3.Connection) -> Message | None:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM messages WHERE account_id = ? AND id = ?",
                (account_id, message_id),
            ).fetchone()
            return _row_to_message(row) if row else None

        return await self._db.run(_get)

    async def contains(self, account_id: str, message_id: str) -> bool:
        return await self.get_by_id(account_id, message_id) is not None

    async def delete(self, account_id: str, message_id: str) -> bool:
        """Remove a message, tombstone its id and unstar it.

        Returns:
            Whether a stored message was removed. The id is tombstoned either way.
        """

        removed = await self._db.run(_delete_one, account_id, message_id, True)
        self._starred.discard_local(message_id)
        logger.info("message_deleted", account_id=account_id, message_id=message_id, removed=removed)
        await self._refresh_analytics(account_id)
        return removed

    async def mark_read(self, account_id: str, message_id: str) -> Message | None:
        message = await self.get_by_id(account_id, message_id)
        if message is None:
            return None
        if message.is_read:
            return message
        return await self.put(message.model_copy(update={"is_read": True}), account_id)

    async def set_starred(self, account_id: str, message_id: str, starred: bool) -> Message | None:
        """Add or remove a message from the starred set and mirror it into the row."""

        def _set(conn: sqlite3.Connection) -> Message | None:
            with conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM messages WHERE account_id = ? AND id = ?",
                    (account_id, message_id),
                ).fetchone()
                if row is None:
                    return None
                if starred:
                    conn.execute(
                        "INSERT OR IGNORE INTO starred (message_id, starred_at) VALUES (?, ?)",
                        (message_id, datetime.now(timezone.utc).isoformat()),
                    )
                else:
                    conn.execute("DELETE FROM starred WHERE message_id = ?", (message_id,))
                conn.execute(
                    "UPDATE messages SET starred = ? WHERE id = ?",
                    (1 if starred else 0, message_id),
                )
            return _row_to_message(row).model_copy(update={"starred": starred})

        message = await self._db.run(_set)
        if message is None:
            return None
        if starred:
            self._starred.add_local(message_id)
        else:
            self._starred.discard_local(message_id)
        logger.info("message_starred", account_id=account_id, message_id=message_id, starred=starred)
        await self._refresh_analytics(account_id)
        return message

    # ── Bulk API ───────────────────────────────────────────────────────────────

    async def clear_account(self, account_id: str) -> BatchResult:
        """Tombstone and remove every message the account holds."""

        messages = await self.get_all(account_id)
        result = await self._delete_many(account_id, [m.id for m in messages], tombstone=True)
        logger.info("account_cleared", account_id=account_id, applied=result.applied, failed=len(result.failures))
        return result

    async def delete_read(self, account_id: str) -> BatchResult:
        """Tombstone and remove only the account's read messages."""

        messages = await self.get_all(account_id)
        result = await self._delete_many(account_id, [m.id for m in messages if m.is_read], tombstone=True)
        logger.info("read_messages_deleted", account_id=account_id, applied=result.applied, failed=len(result.failures))
        return result

    async def mark_all_read(self, account_id: str) -> BatchResult:
        unread = [m for m in await self.get_all(account_id) if not m.is_read]
        result = BatchResult(requested=len(unread))
        for message in unread:
            try:
                await self._put(message.model_copy(update={"is_read": True}), account_id)
                result.applied += 1
            except (DisposableMailError, sqlite3.Error) as exc:
                logger.warning("mark_read_failed", account_id=account_id, message_id=message.id, error=str(exc))
                result.record_failure(message.id, exc)

        await self._refresh_analytics(account_id)
        logger.info("messages_marked_read", account_id=account_id, applied=result.applied, failed=len(result.failures))
        return result

    async def reset_account(self, account_id: str) -> BatchResult:
        """Drop the account's messages and forget its tombstones.

        Used when a new address replaces the old one: nothing from the old
        inbox can be redelivered to the new address.
        """

        messages = await self.get_all(account_id)
        result = await self._delete_many(account_id, [m.id for m in messages], tombstone=False)

        await self._tombstones.reset(account_id)
        logger.info("account_reset", account_id=account_id, removed=result.applied)
        return result

    async def all_messages(self) -> list[Message]:
        """Every stored message of every account, grouped by account, newest first."""

        def _all(conn: sqlite3.Connection) -> list[Message]:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM messages").fetchall()
            return [_row_to_message(row) for row in rows]

        messages = _sort_newest_first(await self._db.run(_all))
        return sorted(messages, key=lambda m: m.account_id)

    async def replace_all(self, messages: Iterable[Message], refresh_account_id: str) -> BatchResult:
        """Replace every stored message (backup restore).

        Existing messages are removed without tombstoning; each incoming
        message is then saved into its own `account_id` partition.
        """

        def _wipe(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute("DELETE FROM messages")

        await self._db.run(_wipe)

        items = list(messages)
        result = BatchResult(requested=len(items))
        for message in items:
            try:
                await self._put(message, message.account_id)
                result.applied += 1
            except (DisposableMailError, sqlite3.Error) as exc:
                logger.warning("restore_message_failed", message_id=message.id, error=str(exc))
                result.record_failure(message.id, exc)

        await self._refresh_analytics(refresh_account_id)
        return result

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _put(self, message: Message, account_id: str) -> Message:
        def _save(conn: sqlite3.Connection) -> Message:
            if is_tombstoned(conn, account_id, message.id):
                raise TombstonedMessageError(
                    f"Message {message.id} was deleted from account {account_id}"
                )
            stored = message.model_copy(
                update={"account_id": account_id, "starred": _is_starred(conn, message.id)}
            )
            with conn:
                _upsert(conn, stored)
            return stored

        stored = await self._db.run(_save)
        logger.debug("message_saved", account_id=account_id, message_id=stored.id, is_read=stored.is_read)
        return stored

    async def _delete_many(self, account_id: str, message_ids: list[str], *, tombstone: bool) -> BatchResult:
        result = BatchResult(requested=len(message_ids))
        for message_id in message_ids:
            try:
                await self._db.run(_delete_one, account_id, message_id, tombstone)
            except (DisposableMailError, sqlite3.Error) as exc:
                logger.warning("message_delete_failed", account_id=account_id, message_id=message_id, error=str(exc))
                result.record_failure(message_id, exc)
                continue
            self._starred.discard_local(message_id)
            result.applied += 1

        await self._refresh_analytics(account_id)
        return result

    async def _refresh_analytics(self, account_id: str) -> None:
        if self._analytics is None:
            return
        await self._analytics.refresh(await self.get_all(account_id))

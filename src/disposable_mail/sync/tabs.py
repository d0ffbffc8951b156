"""Cross-session convergence over a shared slot in the profile database.

Every session ("tab") periodically serializes its account registry, active
account, starred set and the active account's messages into the `sync_data`
slot, then bumps the `sync_trigger` value. Other sessions poll the trigger;
when it changes they read the slot and, if it is newer than the last state
they applied, overwrite their registry and starred set wholesale and follow
the active account.

This is last-writer-wins at whole-document granularity: two sessions
editing different fields within one interval lose one of the edits.
Convergence is eventual, bounded by the broadcast interval.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
import uuid
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog

from disposable_mail.store.database import LocalDatabase, get_json, get_kv, set_json, set_kv

if TYPE_CHECKING:
    from disposable_mail.session import MailboxSession

logger = structlog.get_logger()

KEY_SYNC_DATA = "sync_data"
KEY_SYNC_TRIGGER = "sync_trigger"


class SyncState(str, Enum):
    """Per-session synchronizer state."""

    IDLE = "idle"
    BROADCASTING = "broadcasting"
    MERGING = "merging"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _write_slot(conn: sqlite3.Connection, payload: dict[str, Any]) -> int:
    # The trigger is written after the slot and never goes backwards.
    previous = _read_trigger(conn) or 0
    trigger = max(_now_ms(), previous + 1)
    set_json(conn, KEY_SYNC_DATA, payload)
    set_kv(conn, KEY_SYNC_TRIGGER, str(trigger))
    return trigger


def _read_trigger(conn: sqlite3.Connection) -> int | None:
    raw = get_kv(conn, KEY_SYNC_TRIGGER)
    return int(raw) if raw is not None else None


class TabSynchronizer:
    """Broadcasts and merges one session's shared state.

    Usage::

        sync = TabSynchronizer(session)
        stop = asyncio.Event()
        await sync.run(stop)
    """

    def __init__(
        self,
        session: MailboxSession,
        *,
        interval: float | None = None,
        poll_interval: float | None = None,
        tab_id: str | None = None,
    ) -> None:
        self._session = session
        self._db: LocalDatabase = session.database
        self._interval = interval or session.settings.sync_interval
        self._poll_interval = poll_interval or session.settings.trigger_poll_interval
        self.tab_id = tab_id or uuid.uuid4().hex
        self.state = SyncState.IDLE
        self._last_applied = 0
        self._last_seen_trigger: int | None = None

    @property
    def last_applied(self) -> int:
        return self._last_applied

    async def prime(self) -> None:
        """Remember the current trigger so a stale slot is not merged on start-up."""
        self._last_seen_trigger = await self._db.run(_read_trigger)

    async def broadcast(self) -> int:
        """Publish this session's state to the shared slot.

        Returns:
            The trigger value written.
        """

        self.state = SyncState.BROADCASTING
        try:
            session = self._session
            timestamp = _now_ms()
            messages = await session.store.get_all(session.active_account_id)
            payload = {
                "tabId": self.tab_id,
                "timestamp": timestamp,
                "messages": [m.to_document() for m in messages],
                "accounts": session.accounts.to_document(),
                "activeAccountId": session.active_account_id,
                "starred": session.starred.ids(),
            }
            trigger = await self._db.run(_write_slot, payload)
            self._last_seen_trigger = trigger
            self._last_applied = max(self._last_applied, timestamp)
            await session.analytics.record_sync()
            logger.debug("sync_broadcast", tab_id=self.tab_id, trigger=trigger)
            return trigger
        finally:
            self.state = SyncState.IDLE

    async def poll_trigger(self) -> bool:
        """Merge if another session bumped the trigger since we last looked.

        Returns:
            Whether a merge ran.
        """

        trigger = await self._db.run(_read_trigger)
        if trigger is None or trigger == self._last_seen_trigger:
            return False
        self._last_seen_trigger = trigger
        return await self.merge()

    async def merge(self) -> bool:
        """Apply the shared slot if it is newer than the last applied state.

        Returns:
            Whether local state was overwritten.
        """

        self.state = SyncState.MERGING
        try:
            data = await self._db.run(get_json, KEY_SYNC_DATA)
            if not isinstance(data, dict):
                return False
            if data.get("tabId") == self.tab_id:
                return False

            timestamp = int(data.get("timestamp") or 0)
            if timestamp <= self._last_applied:
                logger.debug("sync_slot_stale", tab_id=self.tab_id, timestamp=timestamp)
                return False

            session = self._session
            accounts = data.get("accounts")
            if isinstance(accounts, dict):
                await session.accounts.replace(accounts)

            starred = data.get("starred")
            if isinstance(starred, list):
                await session.starred.replace([str(i) for i in starred])

            active = data.get("activeAccountId")
            if isinstance(active, str) and active != session.active_account_id and active in session.accounts:
                await session.switch_account(active)
            else:
                await session.reload()

            self._last_applied = timestamp
            logger.info("sync_merged", tab_id=self.tab_id, source_tab=data.get("tabId"), timestamp=timestamp)
            return True
        finally:
            self.state = SyncState.IDLE

    async def run(self, stop_event: asyncio.Event) -> None:
        """Broadcast on a fixed interval and merge on trigger changes until stopped."""

        loop = asyncio.get_running_loop()
        if self._last_seen_trigger is None:
            await self.prime()
        next_broadcast = loop.time() + self._interval

        while not stop_event.is_set():
            try:
                await self.poll_trigger()
                if loop.time() >= next_broadcast:
                    await self.broadcast()
                    next_broadcast = loop.time() + self._interval
            except Exception as exc:  # noqa: BLE001
                logger.error("sync_error", tab_id=self.tab_id, error=str(exc), exc_info=True)
            await self._interruptible_sleep(stop_event, self._poll_interval)

        logger.info("sync_stopped", tab_id=self.tab_id)

    async def _interruptible_sleep(self, stop_event: asyncio.Event, seconds: float) -> None:
        """Sleep for `seconds` but wake immediately if the stop event is set."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

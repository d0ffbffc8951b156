"""Unit tests for cross-session synchronization."""

import asyncio

import pytest

from disposable_mail.sync import SyncState, TabSynchronizer
from disposable_mail.sync.tabs import KEY_SYNC_DATA, KEY_SYNC_TRIGGER
from disposable_mail.store.database import get_json, get_kv


class TestTabSynchronizer:
    """Test suite for TabSynchronizer."""

    @pytest.mark.asyncio
    async def test_broadcast_writes_slot_and_trigger(self, session, make_message) -> None:
        await session.save_message(make_message("m1"))
        sync = TabSynchronizer(session, tab_id="tab-a")

        trigger = await sync.broadcast()

        slot = await session.database.run(get_json, KEY_SYNC_DATA)
        assert slot["tabId"] == "tab-a"
        assert slot["activeAccountId"] == "default"
        assert [m["id"] for m in slot["messages"]] == ["m1"]
        assert "default" in slot["accounts"]
        assert int(await session.database.run(get_kv, KEY_SYNC_TRIGGER)) == trigger
        assert session.analytics.current.last_sync is not None
        assert sync.state == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_trigger_is_monotonic(self, session) -> None:
        sync = TabSynchronizer(session, tab_id="tab-a")

        first = await sync.broadcast()
        second = await sync.broadcast()

        assert second > first

    @pytest.mark.asyncio
    async def test_other_session_converges(self, session_factory, make_message) -> None:
        tab_a = await session_factory()
        tab_b = await session_factory()
        sync_a = TabSynchronizer(tab_a, tab_id="tab-a")
        sync_b = TabSynchronizer(tab_b, tab_id="tab-b")
        await sync_b.prime()

        work = await tab_a.add_account("Work", "work@mail.test")
        await tab_a.save_message(make_message("w1"))
        await tab_a.toggle_star("w1")
        await sync_a.broadcast()

        merged = await sync_b.poll_trigger()

        assert merged is True
        assert work.id in tab_b.accounts
        assert tab_b.active_account_id == work.id
        assert "w1" in tab_b.starred
        assert [m.id for m in tab_b.current_view.unread_items] == ["w1"]
        assert tab_b.current_view.unread_items[0].starred is True

    @pytest.mark.asyncio
    async def test_own_broadcast_is_not_merged(self, session) -> None:
        sync = TabSynchronizer(session, tab_id="tab-a")
        await sync.broadcast()

        assert await sync.poll_trigger() is False
        assert await sync.merge() is False

    @pytest.mark.asyncio
    async def test_stale_slot_is_ignored(self, session_factory) -> None:
        tab_a = await session_factory()
        tab_b = await session_factory()
        sync_a = TabSynchronizer(tab_a, tab_id="tab-a")
        sync_b = TabSynchronizer(tab_b, tab_id="tab-b")

        await sync_a.broadcast()
        assert await sync_b.merge() is True
        assert await sync_b.merge() is False

    @pytest.mark.asyncio
    async def test_unchanged_trigger_does_nothing(self, session) -> None:
        sync = TabSynchronizer(session, tab_id="tab-a")
        await sync.prime()

        assert await sync.poll_trigger() is False

    @pytest.mark.asyncio
    async def test_run_broadcasts_until_stopped(self, session) -> None:
        sync = TabSynchronizer(session, interval=0.01, poll_interval=0.01, tab_id="tab-a")
        stop = asyncio.Event()

        task = asyncio.create_task(sync.run(stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=1.0)

        assert await session.database.run(get_kv, KEY_SYNC_TRIGGER) is not None

"""Unit tests for the account-partitioned message store."""

from datetime import datetime, timedelta, timezone

import pytest

from disposable_mail.exceptions import StorageUnavailable, TombstonedMessageError
from disposable_mail.store import MessageStore

BASE = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


class TestPutAndRead:
    """Test suite for single-message operations."""

    @pytest.mark.asyncio
    async def test_put_and_get_by_id(self, store, make_message) -> None:
        stored = await store.put(make_message("m1"), "default")

        assert stored.account_id == "default"
        assert await store.get_by_id("default", "m1") == stored
        assert await store.contains("default", "m1")

    @pytest.mark.asyncio
    async def test_partition_comes_from_argument(self, store, make_message) -> None:
        """The account argument wins over the message's own account_id."""
        stored = await store.put(make_message("m1", account_id="other"), "work")

        assert stored.account_id == "work"
        assert await store.get_by_id("work", "m1") is not None
        assert await store.get_by_id("other", "m1") is None

    @pytest.mark.asyncio
    async def test_accounts_are_isolated(self, store, make_message) -> None:
        await store.put(make_message("a1"), "default")
        await store.put(make_message("b1"), "work")
        await store.put(make_message("b2"), "work")

        assert [m.id for m in await store.get_all("default")] == ["a1"]
        assert {m.id for m in await store.get_all("work")} == {"b1", "b2"}

    @pytest.mark.asyncio
    async def test_same_id_in_two_accounts(self, store, make_message) -> None:
        await store.put(make_message("m1", subject="Default copy"), "default")
        await store.put(make_message("m1", subject="Work copy"), "work")

        assert (await store.get_by_id("default", "m1")).subject == "Default copy"
        assert (await store.get_by_id("work", "m1")).subject == "Work copy"

    @pytest.mark.asyncio
    async def test_put_overwrites(self, store, make_message) -> None:
        await store.put(make_message("m1", subject="Old"), "default")
        await store.put(make_message("m1", subject="New", is_read=True), "default")

        messages = await store.get_all("default")
        assert len(messages) == 1
        assert messages[0].subject == "New"
        assert messages[0].is_read is True

    @pytest.mark.asyncio
    async def test_get_all_newest_first(self, store, make_message) -> None:
        for i in range(3):
            await store.put(make_message(f"m{i}", created_at=BASE + timedelta(minutes=i)), "default")

        assert [m.id for m in await store.get_all("default")] == ["m2", "m1", "m0"]

    @pytest.mark.asyncio
    async def test_empty_account(self, store) -> None:
        assert await store.get_all("nobody") == []
        assert await store.get_by_id("nobody", "m1") is None

    @pytest.mark.asyncio
    async def test_mark_read(self, store, make_message) -> None:
        await store.put(make_message("m1"), "default")

        message = await store.mark_read("default", "m1")

        assert message.is_read is True
        assert (await store.get_by_id("default", "m1")).is_read is True
        assert await store.mark_read("default", "missing") is None


class TestStarred:
    @pytest.mark.asyncio
    async def test_set_starred_mirrors_into_row(self, store, starred, make_message) -> None:
        await store.put(make_message("m1"), "default")

        message = await store.set_starred("default", "m1", True)

        assert message.starred is True
        assert "m1" in starred
        assert (await store.get_by_id("default", "m1")).starred is True

        await store.set_starred("default", "m1", False)

        assert "m1" not in starred
        assert (await store.get_by_id("default", "m1")).starred is False

    @pytest.mark.asyncio
    async def test_put_reflects_starred_set(self, store, make_message) -> None:
        """A save cannot override starred-set membership."""
        await store.put(make_message("m1"), "default")
        await store.set_starred("default", "m1", True)

        stored = await store.put(make_message("m1").model_copy(update={"starred": False}), "default")

        assert stored.starred is True

    @pytest.mark.asyncio
    async def test_set_starred_unknown_message(self, store) -> None:
        assert await store.set_starred("default", "missing", True) is None


class TestDelete:
    """Test suite for deletion and tombstones."""

    @pytest.mark.asyncio
    async def test_delete_tombstones_and_unstars(self, store, starred, tombstones, make_message) -> None:
        await store.put(make_message("m1"), "default")
        await store.set_starred("default", "m1", True)

        removed = await store.delete("default", "m1")

        assert removed is True
        assert await store.get_by_id("default", "m1") is None
        assert await tombstones.contains("default", "m1")
        assert "m1" not in starred
        assert await starred.load() == set()

    @pytest.mark.asyncio
    async def test_delete_unstars_copies_in_other_accounts(self, store, starred, make_message) -> None:
        """Row flags stay in step with the profile-wide starred set."""
        await store.put(make_message("m1"), "default")
        await store.put(make_message("m1"), "work")
        await store.set_starred("work", "m1", True)

        await store.delete("default", "m1")

        work_copy = await store.get_by_id("work", "m1")
        assert "m1" not in starred
        assert work_copy.starred is False
        assert work_copy.starred == ("m1" in starred)

    @pytest.mark.asyncio
    async def test_delete_absent_message_still_tombstones(self, store, tombstones) -> None:
        removed = await store.delete("default", "ghost")

        assert removed is False
        assert await tombstones.contains("default", "ghost")

    @pytest.mark.asyncio
    async def test_put_rejects_tombstoned_id(self, store, make_message) -> None:
        await store.put(make_message("m1"), "default")
        await store.delete("default", "m1")

        with pytest.raises(TombstonedMessageError):
            await store.put(make_message("m1"), "default")

    @pytest.mark.asyncio
    async def test_tombstone_is_per_account(self, store, make_message) -> None:
        await store.put(make_message("m1"), "default")
        await store.delete("default", "m1")

        stored = await store.put(make_message("m1"), "work")

        assert stored.account_id == "work"

    @pytest.mark.asyncio
    async def test_clear_account(self, store, tombstones, make_message) -> None:
        await store.put(make_message("a1"), "default")
        await store.put(make_message("a2"), "default")
        await store.put(make_message("b1"), "work")

        result = await store.clear_account("default")

        assert result.requested == 2
        assert result.applied == 2
        assert result.ok
        assert await store.get_all("default") == []
        assert await tombstones.ids("default") == {"a1", "a2"}
        assert [m.id for m in await store.get_all("work")] == ["b1"]

    @pytest.mark.asyncio
    async def test_clear_empty_account(self, store) -> None:
        result = await store.clear_account("default")

        assert result.requested == 0
        assert result.ok

    @pytest.mark.asyncio
    async def test_delete_read_keeps_unread(self, store, tombstones, make_message) -> None:
        await store.put(make_message("read", is_read=True), "default")
        await store.put(make_message("unread"), "default")

        result = await store.delete_read("default")

        assert result.applied == 1
        assert [m.id for m in await store.get_all("default")] == ["unread"]
        assert await tombstones.ids("default") == {"read"}

    @pytest.mark.asyncio
    async def test_bulk_failure_is_aggregated(self, database, starred, tombstones, make_message) -> None:
        """One failing item is reported and the rest still apply."""

        class FlakyDatabase:
            def __init__(self, inner) -> None:
                self._inner = inner

            async def run(self, fn, *args):
                if fn.__name__ == "_delete_one" and args[1] == "m2":
                    raise StorageUnavailable("disk I/O error")
                return await self._inner.run(fn, *args)

        setup = MessageStore(database, starred, tombstones)
        for message_id in ("m1", "m2", "m3"):
            await setup.put(make_message(message_id), "default")

        flaky = MessageStore(FlakyDatabase(database), starred, tombstones)
        result = await flaky.clear_account("default")

        assert result.requested == 3
        assert result.applied == 2
        assert [f.message_id for f in result.failures] == ["m2"]
        assert [m.id for m in await setup.get_all("default")] == ["m2"]


class TestBulkUpdates:
    @pytest.mark.asyncio
    async def test_mark_all_read(self, store, make_message) -> None:
        await store.put(make_message("m1"), "default")
        await store.put(make_message("m2", is_read=True), "default")
        await store.put(make_message("w1"), "work")

        result = await store.mark_all_read("default")

        assert result.requested == 1
        assert result.applied == 1
        assert all(m.is_read for m in await store.get_all("default"))
        assert not (await store.get_by_id("work", "w1")).is_read

    @pytest.mark.asyncio
    async def test_reset_account_forgets_tombstones(self, store, tombstones, make_message) -> None:
        await store.put(make_message("m1"), "default")
        await store.put(make_message("m2"), "default")
        await store.delete("default", "m1")
        await store.delete("work", "w1")

        result = await store.reset_account("default")

        assert result.applied == 1
        assert await store.get_all("default") == []
        assert await tombstones.ids("default") == set()
        assert await tombstones.ids("work") == {"w1"}

    @pytest.mark.asyncio
    async def test_replace_all(self, store, make_message) -> None:
        await store.put(make_message("old"), "default")

        result = await store.replace_all(
            [make_message("a1", account_id="default"), make_message("b1", account_id="work")],
            "default",
        )

        assert result.applied == 2
        assert [m.id for m in await store.get_all("default")] == ["a1"]
        assert [m.id for m in await store.get_all("work")] == ["b1"]
        assert {(m.account_id, m.id) for m in await store.all_messages()} == {("default", "a1"), ("work", "b1")}


class TestAnalyticsRefresh:
    @pytest.mark.asyncio
    async def test_counters_follow_mutations(self, store, analytics, make_message) -> None:
        await store.put(make_message("m1"), "default")
        await store.put(make_message("m2"), "default")
        assert analytics.current.messages_received == 2
        assert analytics.current.messages_read == 0

        await store.mark_read("default", "m1")
        assert analytics.current.messages_read == 1

        await store.delete("default", "m2")
        assert analytics.current.messages_received == 1
        assert analytics.current.storage_used > 0

"""End-to-end mailbox flows over a real SQLite profile and a mocked provider.

These tests drive the public session API the way a UI would: generate an
address, poll the provider, read and delete mail, switch accounts, sync a
second session and restore from a backup.
"""

import json

import pytest

from disposable_mail.sync import TabSynchronizer


@pytest.mark.integration
class TestMailboxFlow:
    """Integration tests for the full mailbox lifecycle."""

    @pytest.mark.asyncio
    async def test_poll_read_delete_cycle(self, session, fake_provider) -> None:
        email = await session.generate_address()
        fake_provider.deliver(email, "alice@example.com", "Welcome", "2024-06-15 10:00:00")
        fake_provider.deliver(email, "alice@example.com", "Welcome (resent)", "2024-06-15 10:00:00")
        fake_provider.deliver(email, "bob@example.com", None, "2024-06-15 11:00:00", message="")
        fake_provider.inboxes[email].append({"subject": "no sender"})

        first = await session.refresh_inbox()

        assert first.inserted == 2
        assert first.duplicates == 1
        assert first.malformed == 1
        unread = session.current_view.unread_items
        assert [m.sender for m in unread] == ["bob@example.com", "alice@example.com"]
        assert unread[0].subject == "(No subject)"
        assert unread[0].body == "(Empty)"

        alice = unread[1]
        await session.open_message(alice.id)
        assert [m.id for m in session.current_view.read_items] == [alice.id]
        assert session.current_view.unread_total_count == 1

        await session.delete_message(alice.id)
        second = await session.refresh_inbox()

        assert second.inserted == 0
        assert second.tombstoned == 1
        assert alice.id not in {m.id for m in await session.store.get_all(session.active_account_id)}

        analytics = session.analytics_snapshot()
        assert analytics.messages_received == 1
        assert analytics.messages_read == 0
        assert analytics.emails_generated == 1

    @pytest.mark.asyncio
    async def test_accounts_keep_separate_inboxes(self, session, fake_provider) -> None:
        personal = await session.generate_address()
        fake_provider.deliver(personal, "friend@example.com", "Hi", "2024-06-15 09:00:00")
        await session.refresh_inbox()

        work = await session.add_account("Work")
        await session.switch_account(work.id)
        work_email = await session.generate_address()
        fake_provider.deliver(work_email, "boss@example.com", "Report", "2024-06-15 10:00:00")
        await session.refresh_inbox()

        assert [m.sender for m in session.current_view.unread_items] == ["boss@example.com"]

        await session.switch_account("default")
        assert [m.sender for m in session.current_view.unread_items] == ["friend@example.com"]
        assert session.active_account.email_address == personal

    @pytest.mark.asyncio
    async def test_second_session_follows_first(self, session_factory, fake_provider) -> None:
        first = await session_factory()
        second = await session_factory()
        sync_first = TabSynchronizer(first, tab_id="first")
        sync_second = TabSynchronizer(second, tab_id="second")
        await sync_second.prime()

        email = await first.generate_address()
        fake_provider.deliver(email, "alice@example.com", "Hello", "2024-06-15 10:00:00")
        await first.refresh_inbox()
        message_id = first.current_view.unread_items[0].id
        await first.toggle_star(message_id)
        await sync_first.broadcast()

        assert await sync_second.poll_trigger() is True
        assert second.active_account.email_address == email
        assert message_id in second.starred
        assert [m.id for m in second.current_view.unread_items] == [message_id]

    @pytest.mark.asyncio
    async def test_backup_restores_into_fresh_profile(self, session, session_factory, fake_provider, tmp_path) -> None:
        email = await session.generate_address()
        fake_provider.deliver(email, "alice@example.com", "One", "2024-06-15 10:00:00")
        fake_provider.deliver(email, "bob@example.com", "Two", "2024-06-15 11:00:00")
        await session.refresh_inbox()
        bob, alice = session.current_view.unread_items
        await session.delete_message(bob.id)
        await session.open_message(alice.id)

        document = json.loads(json.dumps(await session.export_backup()))
        restored = await session_factory(db_path=tmp_path / "restored.sqlite3")
        await restored.import_backup(document)

        messages = await restored.store.get_all("default")
        assert [(m.id, m.is_read) for m in messages] == [(alice.id, True)]
        assert restored.active_account.email_address == email

        result = await restored.refresh_inbox()
        assert result.inserted == 0
        assert result.tombstoned == 1
        assert result.duplicates == 1

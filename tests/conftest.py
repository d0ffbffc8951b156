"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio

from disposable_mail.analytics import AnalyticsAggregator
from disposable_mail.models import Message
from disposable_mail.provider import MailboxProviderClient
from disposable_mail.session import MailboxSession
from disposable_mail.store import LocalDatabase, MessageStore, StarredSet, TombstoneSet


class FakeProvider:
    """In-memory disposable mailbox provider served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.inboxes: dict[str, list[Any]] = {}
        self.generated = 0
        self.requests: list[httpx.Request] = []
        self.unreachable = False

    def deliver(self, email: str, sender: str, subject: str, created: str, message: str = "Body") -> dict:
        item = {"from": sender, "subject": subject, "message": message, "created": created}
        self.inboxes.setdefault(email, []).append(item)
        return item

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        action = request.url.params.get("action")
        if action == "generate":
            self.generated += 1
            email = f"user{self.generated}@mail.test"
            self.inboxes.setdefault(email, [])
            return httpx.Response(200, json={"success": True, "result": {"email": email}})
        if action == "inbox":
            email = request.url.params.get("email", "")
            inbox = list(self.inboxes.get(email, []))
            return httpx.Response(200, json={"success": True, "result": {"inbox": inbox}})
        return httpx.Response(200, json={"success": False, "result": "unknown action"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def mock_settings(tmp_path):
    """Provide settings pointing at a temporary profile database."""
    from disposable_mail.config import Settings

    return Settings(
        provider_base_url="http://provider.test/api",
        db_path=tmp_path / "profile.sqlite3",
        page_size=20,
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_message():
    """Build stored messages with sensible defaults."""

    def _make(
        message_id: str = "m1",
        *,
        account_id: str = "default",
        sender: str = "alice@example.com",
        subject: str = "Hello",
        body: str = "Hi there",
        created_at: datetime | None = None,
        is_read: bool = False,
    ) -> Message:
        return Message(
            id=message_id,
            account_id=account_id,
            sender=sender,
            subject=subject,
            body=body,
            created_at=created_at or datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc),
            is_read=is_read,
        )

    return _make


@pytest_asyncio.fixture
async def database(tmp_path):
    db = LocalDatabase(tmp_path / "store.sqlite3")
    await db.connect()
    yield db
    await db.close()


@pytest.fixture
def tombstones(database) -> TombstoneSet:
    return TombstoneSet(database)


@pytest.fixture
def starred(database) -> StarredSet:
    return StarredSet(database)


@pytest.fixture
def analytics(database) -> AnalyticsAggregator:
    return AnalyticsAggregator(database)


@pytest.fixture
def store(database, starred, tombstones, analytics) -> MessageStore:
    return MessageStore(database, starred, tombstones, analytics)


@pytest_asyncio.fixture
async def session_factory(mock_settings, fake_provider):
    """Open started sessions on the shared profile; all are closed afterwards."""
    sessions: list[MailboxSession] = []

    async def _open(**overrides: Any) -> MailboxSession:
        settings = mock_settings.model_copy(update=overrides) if overrides else mock_settings
        provider = MailboxProviderClient(settings, transport=fake_provider.transport(), retry_delay=0)
        session = MailboxSession(settings, provider=provider)
        await session.start()
        sessions.append(session)
        return session

    yield _open

    for session in sessions:
        await session.close()


@pytest_asyncio.fixture
async def session(session_factory) -> MailboxSession:
    return await session_factory()

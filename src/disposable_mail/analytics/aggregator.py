"""Usage counters derived from local store state.

`messagesReceived`, `messagesRead` and `storageUsed` are recomputed from the
active account's messages after every store mutation. `emailsGenerated` and
`lastSync` are event counters. The record lives in the profile key/value
table so it survives restarts and is exported verbatim in backups.

Notable actions are also appended to a separate event history, capped at the
last `MAX_EVENTS` entries.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

import structlog

from disposable_mail.models import Analytics, AnalyticsEvent, Message
from disposable_mail.store.database import LocalDatabase, get_json, set_json

logger = structlog.get_logger()

KEY_ANALYTICS = "analytics"
KEY_EVENTS = "events"

MAX_EVENTS = 100


def storage_size(messages: list[Message]) -> int:
    """Byte size of the messages serialized as a JSON array (UTF-8)."""
    return len(json.dumps([m.to_document() for m in messages]).encode("utf-8"))


class AnalyticsAggregator:
    """Maintains and persists the analytics record."""

    def __init__(self, database: LocalDatabase) -> None:
        self._db = database
        self._current = Analytics()

    @property
    def current(self) -> Analytics:
        return self._current

    async def load(self) -> Analytics:
        document = await self._db.run(get_json, KEY_ANALYTICS)
        if isinstance(document, dict):
            self._current = Analytics.model_validate(document)
        return self._current

    async def refresh(self, messages: list[Message]) -> Analytics:
        self._current = self._current.model_copy(
            update={
                "messages_received": len(messages),
                "messages_read": sum(1 for m in messages if m.is_read),
                "storage_used": storage_size(messages),
            }
        )
        await self._save()
        return self._current

    async def record_address_generated(self) -> Analytics:
        self._current = self._current.model_copy(
            update={"emails_generated": self._current.emails_generated + 1}
        )
        await self._save()
        logger.info("analytics_address_generated", emails_generated=self._current.emails_generated)
        return self._current

    async def record_sync(self, at: datetime | None = None) -> Analytics:
        self._current = self._current.model_copy(
            update={"last_sync": at or datetime.now(timezone.utc)}
        )
        await self._save()
        return self._current

    async def replace(self, analytics: Analytics) -> None:
        self._current = analytics
        await self._save()

    def to_document(self) -> dict:
        return self._current.model_dump(mode="json", by_alias=True)

    async def _save(self) -> None:
        await self._db.run(set_json, KEY_ANALYTICS, self.to_document())

    async def track_event(
        self,
        name: str,
        account_id: str | None = None,
        data: dict[str, Any] | None = None,
        at: datetime | None = None,
    ) -> AnalyticsEvent:
        """Append an event to the persisted history, dropping the oldest past `MAX_EVENTS`."""

        event = AnalyticsEvent(
            name=name,
            timestamp=at or datetime.now(timezone.utc),
            data=data or {},
            account=account_id,
        )

        def _append(conn: sqlite3.Connection) -> None:
            history = get_json(conn, KEY_EVENTS)
            if not isinstance(history, list):
                history = []
            history.append(event.model_dump(mode="json"))
            set_json(conn, KEY_EVENTS, history[-MAX_EVENTS:])

        await self._db.run(_append)
        logger.debug("analytics_event", event_name=name, account_id=account_id)
        return event

    async def events(self) -> list[AnalyticsEvent]:
        """Return the event history, oldest first."""

        history = await self._db.run(get_json, KEY_EVENTS)
        if not isinstance(history, list):
            return []
        return [AnalyticsEvent.model_validate(item) for item in history if isinstance(item, dict)]

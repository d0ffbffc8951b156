"""Inbox reconciliation: merge provider listings into the local store.

The provider redelivers its whole inbox on every poll, so ingestion must be
idempotent and must respect tombstones. For each item, in provider order:

1. skip it when the sender or timestamp is missing or unparseable;
2. derive its id;
3. skip it when the account already holds that id or has tombstoned it;
4. otherwise store it as a new unread message.

A storage failure on one item is recorded and the batch carries on; one
aggregate error is logged at the end.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field

import structlog

from disposable_mail.exceptions import (
    ConfigurationError,
    DisposableMailError,
    MalformedRemoteMessage,
)
from disposable_mail.models import EMPTY_BODY, NO_SUBJECT, ItemFailure, Message, RemoteMessage
from disposable_mail.provider import MailboxProviderClient
from disposable_mail.provider.parsing import parse_created
from disposable_mail.store import MessageStore, TombstoneSet, derive_message_id

logger = structlog.get_logger()


@dataclass
class IngestResult:
    """Outcome of reconciling one provider listing."""

    inserted: int = 0
    duplicates: int = 0
    tombstoned: int = 0
    malformed: int = 0
    failures: list[ItemFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def to_message(remote: RemoteMessage, account_id: str) -> Message:
    """Build a new unread Message from a provider item.

    Raises:
        MalformedRemoteMessage: If the sender or timestamp is missing or unusable.
    """

    sender = (remote.sender or "").strip()
    created = (remote.created or "").strip()
    if not sender or not created:
        raise MalformedRemoteMessage("Inbox item without sender or created timestamp")

    return Message(
        id=derive_message_id(created, sender),
        account_id=account_id,
        sender=sender,
        subject=remote.subject or NO_SUBJECT,
        body=remote.body or EMPTY_BODY,
        created_at=parse_created(created),
        is_read=False,
    )


class InboxReconciler:
    """Writes new provider messages through the message store."""

    def __init__(
        self,
        store: MessageStore,
        tombstones: TombstoneSet,
        provider: MailboxProviderClient | None = None,
    ) -> None:
        self._store = store
        self._tombstones = tombstones
        self._provider = provider

    async def ingest(self, account_id: str, remote_messages: list[RemoteMessage]) -> IngestResult:
        """Reconcile a provider listing into `account_id`'s partition.

        Returns:
            Counts per outcome; `inserted` is the number of new messages.
        """

        result = IngestResult()
        known_ids = {m.id for m in await self._store.get_all(account_id)}
        tombstoned_ids = await self._tombstones.ids(account_id)

        for remote in remote_messages:
            try:
                message = to_message(remote, account_id)
            except MalformedRemoteMessage:
                result.malformed += 1
                continue

            if message.id in known_ids:
                result.duplicates += 1
                continue
            if message.id in tombstoned_ids:
                result.tombstoned += 1
                continue

            try:
                await self._store.put(message, account_id)
            except (DisposableMailError, sqlite3.Error) as exc:
                result.failures.append(ItemFailure(message_id=message.id, error=str(exc)))
                continue

            known_ids.add(message.id)
            result.inserted += 1
            logger.debug("message_ingested", account_id=account_id, message_id=message.id)

        if result.failures:
            logger.error(
                "ingestion_partial_failure",
                account_id=account_id,
                inserted=result.inserted,
                failed=len(result.failures),
                first_error=result.failures[0].error,
            )

        logger.info(
            "ingestion_complete",
            account_id=account_id,
            received=len(remote_messages),
            inserted=result.inserted,
            duplicates=result.duplicates,
            tombstoned=result.tombstoned,
            malformed=result.malformed,
        )
        return result

    async def refresh(self, account_id: str, address: str) -> IngestResult:
        """Fetch the provider inbox of `address` and ingest it.

        Network errors propagate to the caller; nothing here retries them.

        Raises:
            ConfigurationError: If the reconciler has no provider client.
            NetworkTimeout: If the fetch timed out.
            NetworkFailure: If the fetch failed.
        """

        if self._provider is None:
            raise ConfigurationError("InboxReconciler has no provider client")

        remote_messages = await self._provider.fetch_inbox(address)
        return await self.ingest(account_id, remote_messages)

"""Mailbox session: the entry points a UI calls.

A session is one client instance on a profile database. It owns the active
account, the current filter and the page cursors, and translates UI actions
into explicit-account calls on the store, the reconciler and the provider.
After every action it rebuilds the paginated view.
"""

from __future__ import annotations

from typing import Any

import structlog

from disposable_mail.analytics import AnalyticsAggregator
from disposable_mail.backup import build_backup, parse_backup
from disposable_mail.config import Settings
from disposable_mail.exceptions import MessageNotFoundError
from disposable_mail.models import Account, Analytics, BatchResult, FilterSpec, Message, View
from disposable_mail.provider import MailboxProviderClient
from disposable_mail.store import (
    AccountRegistry,
    LocalDatabase,
    MessageStore,
    ProfileSettings,
    StarredSet,
    TombstoneSet,
)
from disposable_mail.store.profile import load_profile_settings, save_profile_settings
from disposable_mail.sync import InboxReconciler, IngestResult
from disposable_mail.views import MailboxView, build_view, validate_filter

logger = structlog.get_logger()


class MailboxSession:
    """One client instance of the disposable mailbox.

    Usage::

        async with MailboxSession(settings) as session:
            await session.generate_address()
            await session.refresh_inbox()
            view = session.view()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        database: LocalDatabase | None = None,
        provider: MailboxProviderClient | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            settings: Application settings. If None, uses default settings.
            database: Profile database. If None, opens `settings.db_path`.
            provider: Provider client. If None, creates one from settings.
        """
        from disposable_mail.config import get_settings

        self.settings = settings or get_settings()
        self.database = database or LocalDatabase(self.settings.db_path)
        self.provider = provider or MailboxProviderClient(self.settings)

        self.accounts = AccountRegistry(self.database)
        self.starred = StarredSet(self.database)
        self.tombstones = TombstoneSet(self.database)
        self.analytics = AnalyticsAggregator(self.database)
        self.store = MessageStore(self.database, self.starred, self.tombstones, self.analytics)
        self.reconciler = InboxReconciler(self.store, self.tombstones, self.provider)

        self.active_account_id = "default"
        self.filter = FilterSpec()
        self.pages: dict[View, int] = {View.INBOX: 1, View.UPDATES: 1}
        self.profile_settings = ProfileSettings(
            dark_mode=self.settings.dark_mode,
            refresh_interval=self.settings.refresh_interval,
        )
        self._view: MailboxView = build_view([], self.filter, self.pages, self.settings.page_size)

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    async def start(self) -> MailboxView:
        """Open the database, load profile state and build the first view."""

        await self.database.connect()
        await self.analytics.load()
        await self.accounts.load()
        await self.starred.load()
        self.profile_settings = await load_profile_settings(self.database, self.profile_settings)
        self.active_account_id = await self.accounts.load_active()
        await self.analytics.track_event("app_loaded", self.active_account_id)
        logger.info("session_started", account_id=self.active_account_id, db_path=str(self.database.path))
        return await self.reload()

    async def close(self) -> None:
        """Release the provider client and the database connection."""

        try:
            await self.provider.aclose()
        finally:
            await self.database.close()

    async def __aenter__(self) -> MailboxSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def active_account(self) -> Account:
        return self.accounts.get(self.active_account_id)

    # ── Views ──────────────────────────────────────────────────────────────────

    async def reload(self) -> MailboxView:
        """Rebuild the paginated view from the store; clamps the page cursors."""

        messages = await self.store.get_all(self.active_account_id)
        self._view = build_view(messages, self.filter, self.pages, self.settings.page_size)
        self.pages = {view: cursor.page for view, cursor in self._view.cursors().items()}
        return self._view

    @property
    def current_view(self) -> MailboxView:
        return self._view

    def view(self) -> dict[str, Any]:
        return self._view.to_dict()

    async def change_page(self, view: View | str, page: int) -> MailboxView:
        self.pages[View(view)] = page
        return await self.reload()

    async def apply_filter(self, spec: FilterSpec) -> MailboxView:
        """Apply a filter and go back to the first page of both views.

        Raises:
            ValidationError: If a custom date range ends before it starts.
        """

        self.filter = validate_filter(spec)
        self.pages = {View.INBOX: 1, View.UPDATES: 1}
        logger.info("filter_applied", status=spec.status.value, date=spec.date.value, search=bool(spec.search.strip()))
        return await self.reload()

    async def reset_filter(self) -> MailboxView:
        return await self.apply_filter(FilterSpec())

    # ── Message actions ────────────────────────────────────────────────────────

    async def save_message(self, message: Message) -> Message:
        stored = await self.store.put(message, self.active_account_id)
        await self.reload()
        return stored

    async def open_message(self, message_id: str) -> Message:
        """Return a message and mark it read.

        Raises:
            MessageNotFoundError: If the active account has no such message.
        """

        message = await self.store.mark_read(self.active_account_id, message_id)
        if message is None:
            raise MessageNotFoundError(f"No message {message_id} in account {self.active_account_id}")
        await self.analytics.track_event("message_read", self.active_account_id, {"msgId": message_id})
        await self.reload()
        return message

    async def delete_message(self, message_id: str) -> bool:
        removed = await self.store.delete(self.active_account_id, message_id)
        await self.reload()
        return removed

    async def toggle_star(self, message_id: str) -> bool:
        """Flip the starred state of a message.

        Returns:
            The new starred state.

        Raises:
            MessageNotFoundError: If the active account has no such message.
        """

        starred = message_id not in self.starred
        message = await self.store.set_starred(self.active_account_id, message_id, starred)
        if message is None:
            raise MessageNotFoundError(f"No message {message_id} in account {self.active_account_id}")
        await self.reload()
        return starred

    async def mark_all_read(self) -> BatchResult:
        result = await self.store.mark_all_read(self.active_account_id)
        await self.reload()
        return result

    async def clear_account(self) -> BatchResult:
        result = await self.store.clear_account(self.active_account_id)
        await self.reload()
        return result

    async def delete_read(self) -> BatchResult:
        result = await self.store.delete_read(self.active_account_id)
        await self.reload()
        return result

    # ── Accounts ───────────────────────────────────────────────────────────────

    async def switch_account(self, account_id: str) -> MailboxView:
        """Make `account_id` active and reload its messages.

        Raises:
            AccountNotFoundError: If the account is not registered.
        """

        self.accounts.get(account_id)
        self.active_account_id = account_id
        await self.accounts.save_active(account_id)
        self.pages = {View.INBOX: 1, View.UPDATES: 1}
        logger.info("account_switched", account_id=account_id)
        view = await self.reload()
        await self.analytics.refresh(await self.store.get_all(account_id))
        return view

    async def add_account(self, display_name: str, email_address: str | None = None) -> Account:
        """Register an account; one created with an address becomes active.

        Raises:
            ValidationError: If the display name is empty.
        """

        account = await self.accounts.add(display_name, email_address)
        if account.email_address:
            await self.switch_account(account.id)
        return account

    # ── Provider ───────────────────────────────────────────────────────────────

    async def generate_address(self) -> str:
        """Bind a fresh provider address to the active account.

        The account's old messages and its tombstones are dropped; other
        accounts are untouched.

        Raises:
            NetworkTimeout: If the provider timed out.
            NetworkFailure: If the provider call failed.
        """

        email = await self.provider.generate_address()
        account_id = self.active_account_id
        await self.store.reset_account(account_id)
        await self.accounts.set_email_address(account_id, email)
        await self.analytics.record_address_generated()
        await self.analytics.track_event("email_generated", account_id, {"email": email})
        self.pages = {View.INBOX: 1, View.UPDATES: 1}
        await self.reload()
        logger.info("address_generated", account_id=account_id, email=email)
        return email

    async def refresh_inbox(self) -> IngestResult:
        """Fetch the active account's provider inbox and ingest new messages.

        Returns:
            The ingestion outcome; an account without an address yields an
            empty result.

        Raises:
            NetworkTimeout: If the provider timed out.
            NetworkFailure: If the provider call failed.
        """

        address = self.active_account.email_address
        if not address:
            logger.info("refresh_skipped_no_address", account_id=self.active_account_id)
            return IngestResult()

        result = await self.reconciler.refresh(self.active_account_id, address)
        if result.inserted:
            await self.analytics.track_event("messages_received", self.active_account_id, {"count": result.inserted})
        await self.reload()
        return result

    # ── Backup ─────────────────────────────────────────────────────────────────

    async def export_backup(self) -> dict[str, Any]:
        return build_backup(
            messages=await self.store.all_messages(),
            accounts=self.accounts.to_document(),
            starred=self.starred.ids(),
            deleted=await self.tombstones.all(),
            analytics=self.analytics.to_document(),
            settings=self.profile_settings,
        )

    async def import_backup(self, document: Any) -> BatchResult:
        """Replace profile state with a backup document's contents.

        Raises:
            BackupFormatError: If the document lacks `version` or `data`, or is malformed.
        """

        backup = parse_backup(document)
        data = backup.data

        if data.accounts is not None:
            await self.accounts.replace(data.accounts)
        if data.deleted is not None:
            await self.tombstones.replace([(d.account_id, d.id) for d in data.deleted])
        if data.starred is not None:
            await self.starred.replace(data.starred)
        if data.settings is not None:
            self.profile_settings = data.settings
            await save_profile_settings(self.database, data.settings)
        if data.analytics is not None:
            await self.analytics.replace(data.analytics)

        if self.active_account_id not in self.accounts:
            await self.switch_account(await self.accounts.load_active())

        result = BatchResult()
        if data.messages is not None:
            result = await self.store.replace_all(data.messages, self.active_account_id)

        await self.reload()
        logger.info(
            "backup_imported",
            version=backup.version,
            messages=result.applied,
            failed=len(result.failures),
        )
        return result

    async def set_dark_mode(self, enabled: bool) -> ProfileSettings:
        self.profile_settings = self.profile_settings.model_copy(update={"dark_mode": enabled})
        await save_profile_settings(self.database, self.profile_settings)
        return self.profile_settings

    def analytics_snapshot(self) -> Analytics:
        return self.analytics.current

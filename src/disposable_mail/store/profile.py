"""Profile-wide state: account registry, starred set and display settings.

Each session keeps an in-memory copy of the registry and the starred set and
writes every change through to the profile database, so another session
sharing the file sees it on its next load or sync merge.
"""

from __future__ import annotations

import sqlite3
import time
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, ConfigDict, Field

from disposable_mail.exceptions import AccountNotFoundError, ValidationError
from disposable_mail.models import DEFAULT_ACCOUNT_ID, Account
from disposable_mail.store.database import LocalDatabase, get_json, get_kv, set_json, set_kv

logger = structlog.get_logger()

KEY_ACCOUNTS = "accounts"
KEY_ACTIVE_ACCOUNT = "active_account"
KEY_SETTINGS = "settings"


def _default_accounts() -> dict[str, Account]:
    return {DEFAULT_ACCOUNT_ID: Account(id=DEFAULT_ACCOUNT_ID, display_name="Default")}


def accounts_to_document(accounts: dict[str, Account]) -> dict[str, dict]:
    """Serialize to the `{id: {displayName, emailAddress}}` layout."""
    return {
        account_id: account.model_dump(mode="json", by_alias=True, exclude={"id"})
        for account_id, account in accounts.items()
    }


def accounts_from_document(document: dict) -> dict[str, Account]:
    accounts: dict[str, Account] = {}
    for account_id, raw in document.items():
        if not isinstance(raw, dict):
            continue
        accounts[str(account_id)] = Account.model_validate({**raw, "id": str(account_id)})
    return accounts


class ProfileSettings(BaseModel):
    """Display preferences stored with the profile and carried in backups."""

    model_config = ConfigDict(populate_by_name=True)

    dark_mode: bool = Field(default=False, alias="darkMode")
    refresh_interval: int = Field(default=10, alias="refreshInterval")


class AccountRegistry:
    """Named accounts of the profile. The implicit default account always exists."""

    def __init__(self, database: LocalDatabase) -> None:
        self._db = database
        self._accounts: dict[str, Account] = _default_accounts()

    async def load(self) -> dict[str, Account]:
        document = await self._db.run(get_json, KEY_ACCOUNTS)
        accounts = accounts_from_document(document) if isinstance(document, dict) else {}
        if not accounts:
            accounts = _default_accounts()
            await self._db.run(set_json, KEY_ACCOUNTS, accounts_to_document(accounts))
        self._accounts = accounts
        return dict(self._accounts)

    def all(self) -> list[Account]:
        return list(self._accounts.values())

    def to_document(self) -> dict[str, dict]:
        return accounts_to_document(self._accounts)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._accounts

    def get(self, account_id: str) -> Account:
        try:
            return self._accounts[account_id]
        except KeyError:
            raise AccountNotFoundError(f"Unknown account: {account_id}") from None

    async def add(self, display_name: str, email_address: str | None = None) -> Account:
        """Register a new account.

        Raises:
            ValidationError: If the display name is empty.
        """

        name = (display_name or "").strip()
        if not name:
            raise ValidationError("Account display name must not be empty")

        account_id = f"account_{int(time.time() * 1000)}"
        suffix = 1
        while account_id in self._accounts:
            account_id = f"account_{int(time.time() * 1000)}_{suffix}"
            suffix += 1

        account = Account(id=account_id, display_name=name, email_address=(email_address or None))
        self._accounts[account_id] = account
        await self._save()
        logger.info("account_added", account_id=account_id, has_address=account.email_address is not None)
        return account

    async def set_email_address(self, account_id: str, email_address: str) -> Account:
        account = self.get(account_id).model_copy(update={"email_address": email_address})
        self._accounts[account_id] = account
        await self._save()
        return account

    async def replace(self, document: dict) -> None:
        """Overwrite the registry wholesale (sync merge, backup restore)."""

        accounts = accounts_from_document(document) or _default_accounts()
        self._accounts = accounts
        await self._save()

    async def load_active(self) -> str:
        """Return the persisted active account, falling back to the default one."""

        active = await self._db.run(get_kv, KEY_ACTIVE_ACCOUNT)
        if active in self._accounts:
            return active
        return DEFAULT_ACCOUNT_ID if DEFAULT_ACCOUNT_ID in self._accounts else next(iter(self._accounts))

    async def save_active(self, account_id: str) -> None:
        await self._db.run(set_kv, KEY_ACTIVE_ACCOUNT, account_id)

    async def _save(self) -> None:
        await self._db.run(set_json, KEY_ACCOUNTS, self.to_document())


class StarredSet:
    """Favorite message ids. The message store mirrors membership into each row."""

    def __init__(self, database: LocalDatabase) -> None:
        self._db = database
        self._ids: set[str] = set()

    async def load(self) -> set[str]:
        def _load(conn: sqlite3.Connection) -> set[str]:
            return {row[0] for row in conn.execute("SELECT message_id FROM starred").fetchall()}

        self._ids = await self._db.run(_load)
        return set(self._ids)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def ids(self) -> list[str]:
        return sorted(self._ids)

    def add_local(self, message_id: str) -> None:
        self._ids.add(message_id)

    def discard_local(self, message_id: str) -> None:
        self._ids.discard(message_id)

    async def replace(self, ids: list[str]) -> None:
        """Overwrite the set wholesale and mirror it into stored messages."""

        new_ids = {str(i) for i in ids}

        def _replace(conn: sqlite3.Connection) -> None:
            now = datetime.now(timezone.utc).isoformat()
            with conn:
                conn.execute("DELETE FROM starred")
                conn.executemany(
                    "INSERT INTO starred (message_id, starred_at) VALUES (?, ?)",
                    [(i, now) for i in sorted(new_ids)],
                )
                conn.execute(
                    "UPDATE messages SET starred = "
                    "CASE WHEN id IN (SELECT message_id FROM starred) THEN 1 ELSE 0 END"
                )

        await self._db.run(_replace)
        self._ids = new_ids
        logger.info("starred_replaced", count=len(new_ids))


async def load_profile_settings(database: LocalDatabase, default: ProfileSettings) -> ProfileSettings:
    document = await database.run(get_json, KEY_SETTINGS)
    if not isinstance(document, dict):
        return default
    return ProfileSettings.model_validate(document)


async def save_profile_settings(database: LocalDatabase, settings: ProfileSettings) -> None:
    await database.run(set_json, KEY_SETTINGS, settings.model_dump(mode="json", by_alias=True))

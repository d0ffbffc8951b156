"""Data models for the Disposable Mail client.

This module contains Pydantic models for data validation and serialization.
"""

import datetime as dt
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .message import EMPTY_BODY, NO_SUBJECT, Message, RemoteMessage

DEFAULT_ACCOUNT_ID = "default"


class StatusFilter(str, Enum):
    """Read-state filter enumeration."""

    ALL = "all"
    READ = "read"
    UNREAD = "unread"


class DateFilter(str, Enum):
    """Date window filter enumeration."""

    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    CUSTOM = "custom"


class View(str, Enum):
    """Paginated list views. `inbox` holds read mail, `updates` holds unread mail."""

    INBOX = "inbox"
    UPDATES = "updates"


class Account(BaseModel):
    """A named mailbox account."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Account identifier")
    display_name: str = Field(alias="displayName", description="Human readable name")
    email_address: Optional[str] = Field(
        default=None,
        alias="emailAddress",
        description="Disposable address currently bound to the account",
    )


class FilterSpec(BaseModel):
    """Combined status, date and search criteria for a mailbox view."""

    model_config = ConfigDict(populate_by_name=True)

    status: StatusFilter = Field(default=StatusFilter.ALL)
    date: DateFilter = Field(default=DateFilter.ALL)
    date_from: Optional[dt.date] = Field(default=None, alias="dateFrom")
    date_to: Optional[dt.date] = Field(default=None, alias="dateTo")
    search: str = Field(default="")


class PageCursor(BaseModel):
    """Current page and total page count of one view."""

    page: int = Field(default=1, ge=1)
    total_pages: int = Field(default=1, ge=1)


class Analytics(BaseModel):
    """Usage counters derived from local store state."""

    model_config = ConfigDict(populate_by_name=True)

    messages_received: int = Field(default=0, alias="messagesReceived")
    messages_read: int = Field(default=0, alias="messagesRead")
    emails_generated: int = Field(default=0, alias="emailsGenerated")
    last_sync: Optional[dt.datetime] = Field(default=None, alias="lastSync")
    storage_used: int = Field(default=0, alias="storageUsed")


class AnalyticsEvent(BaseModel):
    """One entry of the persisted usage event history."""

    name: str = Field(description="Event name, e.g. email_generated")
    timestamp: dt.datetime = Field(description="When the event was recorded")
    data: dict[str, Any] = Field(default_factory=dict, description="Event payload")
    account: Optional[str] = Field(default=None, description="Active account when recorded")


class ItemFailure(BaseModel):
    """One item a bulk operation could not apply."""

    message_id: str = Field(description="Message the failure refers to")
    error: str = Field(description="Error message")


class BatchResult(BaseModel):
    """Aggregate outcome of a bulk store operation.

    Items are applied one at a time; an item failure is recorded here and the
    operation moves on, so `applied` may be smaller than `requested`.
    """

    requested: int = Field(default=0)
    applied: int = Field(default=0)
    failures: list[ItemFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def record_failure(self, message_id: str, exc: BaseException) -> None:
        self.failures.append(ItemFailure(message_id=message_id, error=str(exc)))


__all__ = [
    "DEFAULT_ACCOUNT_ID",
    "EMPTY_BODY",
    "NO_SUBJECT",
    "Account",
    "Analytics",
    "AnalyticsEvent",
    "BatchResult",
    "DateFilter",
    "FilterSpec",
    "ItemFailure",
    "Message",
    "PageCursor",
    "RemoteMessage",
    "StatusFilter",
    "View",
]

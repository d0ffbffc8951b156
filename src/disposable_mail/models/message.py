"""Message models for the local mailbox mirror.

`RemoteMessage` is what the provider hands us: every field optional, because
the provider's payload is not trusted. `Message` is what the local store
keeps once an inbox item has been reconciled or explicitly saved.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

NO_SUBJECT = "(No subject)"
EMPTY_BODY = "(Empty)"


def _ensure_aware(value: datetime) -> datetime:
    # Provider timestamps without an offset are taken as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RemoteMessage(BaseModel):
    """A single item from the provider's inbox listing."""

    model_config = ConfigDict(populate_by_name=True)

    sender: str | None = Field(default=None, alias="from", description="Raw From value")
    subject: str | None = Field(default=None, description="Subject line")
    body: str | None = Field(default=None, alias="message", description="Message text")
    created: str | None = Field(
        default=None,
        description="Creation timestamp exactly as the provider sent it",
    )


class Message(BaseModel):
    """A locally stored message, owned by exactly one account."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Derived message identity")
    account_id: str = Field(default="default", alias="accountId", description="Owning account")
    sender: str = Field(alias="from", description="Sender address")
    subject: str = Field(default=NO_SUBJECT, description="Subject line")
    body: str = Field(default=EMPTY_BODY, description="Message text")
    created_at: datetime = Field(alias="createdAt", description="Provider creation time")
    is_read: bool = Field(default=False, alias="isRead", description="Whether the message was opened")
    starred: bool = Field(default=False, description="Mirror of starred-set membership")

    @field_validator("created_at")
    @classmethod
    def _created_at_aware(cls, v: datetime) -> datetime:
        return _ensure_aware(v)

    def to_document(self) -> dict:
        """Serialize to the camelCase JSON shape used by backups and sync."""
        return self.model_dump(mode="json", by_alias=True)

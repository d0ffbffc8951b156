"""Backup documents.

A backup is a JSON object::

    {
      "version": 2,
      "timestamp": "2024-01-01T00:00:00+00:00",
      "data": {
        "messages": [...],
        "accounts": {"default": {"displayName": "Default", "emailAddress": null}},
        "starred": ["..."],
        "deleted": [{"id": "...", "accountId": "default"}],
        "analytics": {...},
        "settings": {"darkMode": false, "refreshInterval": 10}
      }
    }

Only `version` and `data` are mandatory. Sections missing from `data` leave
the corresponding state untouched on import.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from disposable_mail.exceptions import BackupFormatError
from disposable_mail.models import Analytics, Message
from disposable_mail.store.profile import ProfileSettings

BACKUP_VERSION = 2


class DeletedEntry(BaseModel):
    """A tombstone as carried in backups."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    account_id: str = Field(alias="accountId")


class BackupData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: Optional[list[Message]] = None
    accounts: Optional[dict[str, dict[str, Any]]] = None
    starred: Optional[list[str]] = None
    deleted: Optional[list[DeletedEntry]] = None
    analytics: Optional[Analytics] = None
    settings: Optional[ProfileSettings] = None


class BackupDocument(BaseModel):
    version: int
    timestamp: Optional[datetime] = None
    data: BackupData


def build_backup(
    *,
    messages: list[Message],
    accounts: dict[str, dict[str, Any]],
    starred: list[str],
    deleted: list[tuple[str, str]],
    analytics: dict[str, Any],
    settings: ProfileSettings,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Assemble a backup document from current state."""

    return {
        "version": BACKUP_VERSION,
        "timestamp": (now or datetime.now(timezone.utc)).isoformat(),
        "data": {
            "messages": [m.to_document() for m in messages],
            "accounts": accounts,
            "starred": list(starred),
            "deleted": [{"id": message_id, "accountId": account_id} for account_id, message_id in deleted],
            "analytics": analytics,
            "settings": settings.model_dump(mode="json", by_alias=True),
        },
    }


def parse_backup(document: Any) -> BackupDocument:
    """Validate a backup document.

    Raises:
        BackupFormatError: If the document is not an object, lacks `version`
            or `data`, or has sections of the wrong shape.
    """

    if not isinstance(document, dict):
        raise BackupFormatError("Backup must be a JSON object")
    if not document.get("version") or not isinstance(document.get("data"), dict):
        raise BackupFormatError("Backup is missing its version or data section")

    try:
        return BackupDocument.model_validate(document)
    except PydanticValidationError as exc:
        raise BackupFormatError(f"Invalid backup: {exc.error_count()} problem(s): {exc}") from exc


def backup_filename(now: datetime | None = None) -> str:
    return f"tempmail-backup-{(now or datetime.now(timezone.utc)).date().isoformat()}.json"


def write_backup(path: Path, document: dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path


def read_backup(path: Path) -> Any:
    """Load a backup file as raw JSON.

    Raises:
        BackupFormatError: If the file is not valid JSON.
    """

    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise BackupFormatError(f"Backup file {path} is not valid JSON") from exc

"""Helpers for parsing provider responses into internal models."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from disposable_mail.exceptions import MalformedRemoteMessage, NetworkFailure
from disposable_mail.models import RemoteMessage


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _result(data: dict[str, Any], action: str) -> dict[str, Any]:
    if data.get("success") is not True:
        raise NetworkFailure(f"Provider reported failure for {action}: {data.get('result')!r}")
    result = data.get("result")
    if not isinstance(result, dict):
        raise NetworkFailure(f"Provider {action} response has no result object")
    return result


def parse_generate_response(data: dict[str, Any]) -> str:
    """Extract the new address from a `generate` response.

    Raises:
        NetworkFailure: If the provider reported failure or sent no address.
    """

    email = _result(data, "generate").get("email")
    if not isinstance(email, str) or not email.strip():
        raise NetworkFailure("Provider generate response has no email address")
    return email.strip()


def parse_inbox_response(data: dict[str, Any]) -> list[RemoteMessage]:
    """Convert an `inbox` response to RemoteMessage items, in provider order.

    Items that are not objects become empty RemoteMessages; the reconciler
    treats them as malformed and skips them.

    Raises:
        NetworkFailure: If the provider reported failure or the inbox is not a list.
    """

    inbox = _result(data, "inbox").get("inbox")
    if not isinstance(inbox, list):
        raise NetworkFailure("Provider inbox response has no inbox list")

    items: list[RemoteMessage] = []
    for raw in inbox:
        if not isinstance(raw, dict):
            items.append(RemoteMessage())
            continue
        items.append(
            RemoteMessage(
                sender=_as_text(raw.get("from")),
                subject=_as_text(raw.get("subject")),
                body=_as_text(raw.get("message")),
                created=_as_text(raw.get("created")),
            )
        )
    return items


def parse_created(value: str) -> datetime:
    """Parse a provider timestamp (ISO-8601 or RFC 2822); naive values are UTC.

    Raises:
        MalformedRemoteMessage: If the value is not a recognizable timestamp.
    """

    raw = value.strip()
    # ISO-8601 parsing: allow trailing Z.
    iso = raw[:-1] + "+00:00" if raw.endswith(("Z", "z")) else raw
    try:
        parsed = datetime.fromisoformat(iso)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError, OverflowError) as exc:
            raise MalformedRemoteMessage(f"Unrecognized timestamp: {value!r}") from exc

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

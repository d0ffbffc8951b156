"""Status, date and search filters over a message list.

All date comparisons happen in the timezone of `now` (the local timezone
unless a caller passes its own clock), so "today" means the local calendar
day and custom ranges cover whole local days.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta

from dateutil.relativedelta import relativedelta
from dateutil.tz import tzlocal

from disposable_mail.exceptions import ValidationError
from disposable_mail.models import DateFilter, FilterSpec, Message, StatusFilter


def local_now() -> datetime:
    # tzlocal resolves the offset per instant, so day bounds follow DST changes.
    return datetime.now(tzlocal())


def validate_filter(spec: FilterSpec) -> FilterSpec:
    """Reject a custom range whose start is after its end.

    Raises:
        ValidationError: If `date_from` is later than `date_to`.
    """

    if (
        spec.date == DateFilter.CUSTOM
        and spec.date_from is not None
        and spec.date_to is not None
        and spec.date_from > spec.date_to
    ):
        raise ValidationError(f"date_from {spec.date_from} is after date_to {spec.date_to}")
    return spec


def _matches_status(message: Message, status: StatusFilter) -> bool:
    if status == StatusFilter.UNREAD:
        return not message.is_read
    if status == StatusFilter.READ:
        return message.is_read
    return True


def _matches_date(message: Message, spec: FilterSpec, now: datetime) -> bool:
    created = message.created_at.astimezone(now.tzinfo)

    if spec.date == DateFilter.TODAY:
        return created.date() == now.date()
    if spec.date == DateFilter.WEEK:
        return created >= now - timedelta(days=7)
    if spec.date == DateFilter.MONTH:
        return created >= now - relativedelta(months=1)
    if spec.date == DateFilter.CUSTOM:
        if spec.date_from is not None:
            start = datetime.combine(spec.date_from, time.min, tzinfo=now.tzinfo)
            if created < start:
                return False
        if spec.date_to is not None:
            end = datetime.combine(spec.date_to, time.max, tzinfo=now.tzinfo)
            if created > end:
                return False
    return True


def _matches_search(message: Message, query: str) -> bool:
    return any(query in (field or "").lower() for field in (message.sender, message.subject, message.body))


def apply_filters(
    messages: list[Message],
    spec: FilterSpec,
    now: datetime | None = None,
) -> list[Message]:
    """Return the messages matching `spec`, preserving input order.

    Args:
        messages: Messages to filter.
        spec: Status, date and search criteria.
        now: Reference time; defaults to the current local time.
    """

    now = now or local_now()
    if now.tzinfo is None:
        now = now.replace(tzinfo=tzlocal())
    query = spec.search.strip().lower()

    return [
        m
        for m in messages
        if _matches_status(m, spec.status)
        and _matches_date(m, spec, now)
        and (not query or _matches_search(m, query))
    ]

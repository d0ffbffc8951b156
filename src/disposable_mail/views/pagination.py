"""Read/unread partitioning and independent pagination of each view."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from disposable_mail.models import FilterSpec, Message, PageCursor, View

from .filters import apply_filters


@dataclass(frozen=True)
class Page:
    """One page of a view."""

    items: list[Message]
    page: int
    total_pages: int
    total_count: int


@dataclass(frozen=True)
class MailboxView:
    """Both paginated views plus the unread badge count."""

    read: Page
    unread: Page

    @property
    def read_items(self) -> list[Message]:
        return self.read.items

    @property
    def unread_items(self) -> list[Message]:
        return self.unread.items

    @property
    def unread_total_count(self) -> int:
        return self.unread.total_count

    def cursors(self) -> dict[View, PageCursor]:
        return {
            View.INBOX: PageCursor(page=self.read.page, total_pages=self.read.total_pages),
            View.UPDATES: PageCursor(page=self.unread.page, total_pages=self.unread.total_pages),
        }

    def to_dict(self) -> dict:
        """The payload handed to a renderer: items and the unread count, nothing else."""
        return {
            "readItems": [m.to_document() for m in self.read_items],
            "unreadItems": [m.to_document() for m in self.unread_items],
            "unreadTotalCount": self.unread_total_count,
        }


def total_pages(count: int, page_size: int) -> int:
    return max(1, math.ceil(count / page_size))


def clamp_page(page: int, pages: int) -> int:
    return min(max(page, 1), pages)


def paginate(items: list[Message], page: int, page_size: int) -> Page:
    """Slice one page out of `items`; out-of-range pages are clamped, never rejected."""

    if page_size <= 0:
        raise ValueError("page_size must be positive")

    pages = total_pages(len(items), page_size)
    current = clamp_page(page, pages)
    start = (current - 1) * page_size
    return Page(
        items=items[start : start + page_size],
        page=current,
        total_pages=pages,
        total_count=len(items),
    )


def build_view(
    messages: list[Message],
    spec: FilterSpec,
    pages: dict[View, int] | None = None,
    page_size: int = 20,
    now: datetime | None = None,
) -> MailboxView:
    """Filter, split by read state and paginate each half independently."""

    pages = pages or {}
    filtered = apply_filters(messages, spec, now=now)
    read = [m for m in filtered if m.is_read]
    unread = [m for m in filtered if not m.is_read]
    return MailboxView(
        read=paginate(read, pages.get(View.INBOX, 1), page_size),
        unread=paginate(unread, pages.get(View.UPDATES, 1), page_size),
    )

"""Filtering and pagination of the mirrored mailbox."""

from .filters import apply_filters, validate_filter
from .pagination import MailboxView, Page, build_view, clamp_page, paginate, total_pages

__all__ = [
    "MailboxView",
    "Page",
    "apply_filters",
    "build_view",
    "clamp_page",
    "paginate",
    "total_pages",
    "validate_filter",
]

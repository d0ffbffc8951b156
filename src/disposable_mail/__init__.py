"""Disposable Mail - local mirror of ephemeral provider mailboxes.

This package keeps a deduplicated, account-partitioned, tombstoned copy of
disposable inboxes in a local SQLite profile, with filtering, pagination,
analytics, backups and convergence between concurrent client sessions.
"""

__version__ = "0.1.0"
__author__ = "Trickl"

from disposable_mail.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__", "__author__"]

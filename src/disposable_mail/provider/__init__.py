"""Remote disposable mailbox provider access."""

from .client import MailboxProviderClient

__all__ = ["MailboxProviderClient"]

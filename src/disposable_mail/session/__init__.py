"""Client sessions over the mirrored mailbox."""

from .mailbox import MailboxSession

__all__ = ["MailboxSession"]

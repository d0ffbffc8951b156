"""Local persistence for the mirrored mailbox.

This package contains the SQLite profile database, message identity and
tombstones, the account-partitioned message store and profile-wide state
(accounts, starred set, settings).
"""

from .database import LocalDatabase
from .identity import TombstoneSet, derive_message_id
from .profile import AccountRegistry, ProfileSettings, StarredSet
from .repository import MessageStore

__all__ = [
    "AccountRegistry",
    "LocalDatabase",
    "MessageStore",
    "ProfileSettings",
    "StarredSet",
    "TombstoneSet",
    "derive_message_id",
]

"""Keeping the local mirror in step with the provider and with other sessions."""

from .reconciler import InboxReconciler, IngestResult
from .tabs import SyncState, TabSynchronizer

__all__ = ["InboxReconciler", "IngestResult", "SyncState", "TabSynchronizer"]

"""Synchronization: retrieval backends, extraction and reconciliation."""
from apppack.sync.extract import extract_archive
from apppack.sync.fetchers import Fetcher, get_fetcher, register_fetcher
from apppack.sync.reconcile import EntryStatus, ReconcileResult, reconcile, verify_tree

__all__ = [
    "EntryStatus",
    "Fetcher",
    "ReconcileResult",
    "extract_archive",
    "get_fetcher",
    "reconcile",
    "register_fetcher",
    "verify_tree",
]

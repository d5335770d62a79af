"""Reconciliation file storage backends."""

from typing import Optional

from ..config import Settings, get_settings
from .base import ReconciliationFileStore
from .memory import InMemoryFileStore
from .json_store import JsonFileStore


def create_store(settings: Optional[Settings] = None) -> ReconciliationFileStore:
    """Build the store configured by STORE_BACKEND / STORE_PATH."""
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        return InMemoryFileStore()
    return JsonFileStore(settings.store_path)


__all__ = [
    "ReconciliationFileStore",
    "InMemoryFileStore",
    "JsonFileStore",
    "create_store",
]

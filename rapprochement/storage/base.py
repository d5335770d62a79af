"""
Reconciliation file store.

The reconciliation file is the unit of persistence: callers read the whole
aggregate, mutate it and save it back. Saves are version-checked so that a
concurrent writer is rejected instead of silently overwriting another match.
"""

import asyncio
import weakref
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

import structlog

from ..errors import ConflictError, NotFoundError
from ..models import ReconciliationFile
from .codec import decode_file, encode_file, parse_int

logger = structlog.get_logger()


class ReconciliationFileStore(ABC):
    """Base class for document-backed reconciliation file stores."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, file_id: str) -> asyncio.Lock:
        """Per-file lock, dropped once no coroutine holds a reference to it."""
        lock = self._locks.get(file_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[file_id] = lock
        return lock

    # -------------------------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------------------------

    @abstractmethod
    async def _read_document(self, file_id: str) -> Optional[dict]:
        """Return the stored document, or None if absent."""

    @abstractmethod
    async def _read_all_documents(self) -> List[dict]:
        """Return every stored document."""

    @abstractmethod
    async def _write_document(self, file_id: str, document: dict) -> None:
        """Replace the stored document."""

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def list_files(self) -> List[ReconciliationFile]:
        documents = await self._read_all_documents()
        return [decode_file(document) for document in documents]

    async def list_open_files(self) -> List[ReconciliationFile]:
        return [file for file in await self.list_files() if file.is_open]

    async def get_file(self, file_id: str) -> ReconciliationFile:
        document = await self._read_document(file_id)
        if document is None:
            raise NotFoundError(f"Reconciliation file not found: {file_id}")
        return decode_file(document)

    async def create_file(self, file: ReconciliationFile) -> ReconciliationFile:
        """Store a newly imported file."""
        async with self._lock_for(file.id):
            if await self._read_document(file.id) is not None:
                raise ConflictError(f"Reconciliation file already exists: {file.id}")

            file.recount()
            await self._write_document(file.id, encode_file(file))

        logger.info(
            "Reconciliation file created",
            file_id=file.id,
            total_lines=file.total_lines,
            matched=file.matched_count,
        )
        return file

    async def save_file(self, file: ReconciliationFile) -> ReconciliationFile:
        """
        Persist the whole aggregate, replacing the stored version.

        The matched count is recomputed from the entries and updated_at is
        refreshed. Raises ConflictError if the stored version moved on since
        the file was read; the in-memory file is left untouched on failure.
        """
        async with self._lock_for(file.id):
            stored = await self._read_document(file.id)
            if stored is None:
                raise NotFoundError(f"Reconciliation file not found: {file.id}")

            stored_version = parse_int(stored.get("version"), "version")
            if stored_version != file.version:
                logger.warning(
                    "Rejected stale reconciliation file save",
                    file_id=file.id,
                    stored_version=stored_version,
                    file_version=file.version,
                )
                raise ConflictError(
                    f"Reconciliation file {file.id} was modified concurrently",
                    details={
                        "stored_version": stored_version,
                        "file_version": file.version,
                    },
                )

            saved = replace(
                file,
                matched_count=file.count_matched(),
                updated_at=datetime.utcnow(),
                version=file.version + 1,
            )
            await self._write_document(file.id, encode_file(saved))

        if saved.matched_count != file.matched_count:
            logger.info(
                "Matched count realigned on save",
                file_id=file.id,
                before=file.matched_count,
                after=saved.matched_count,
            )

        file.matched_count = saved.matched_count
        file.updated_at = saved.updated_at
        file.version = saved.version
        return file

"""
JSON document store: one document per reconciliation file in a directory.

Blocking file I/O runs in a worker thread. Writes go to a temporary file
that is atomically renamed over the previous version.
"""

import asyncio
import json
import os
import re
import tempfile
from pathlib import Path
from typing import List, Optional

import structlog

from ..errors import StorageError
from .base import ReconciliationFileStore

logger = structlog.get_logger()

_SAFE_ID = re.compile(r"[A-Za-z0-9_.-]+")


class JsonFileStore(ReconciliationFileStore):
    """Reconciliation files stored as <id>.json under a base directory."""

    def __init__(self, base_path: Path):
        super().__init__()
        self.base_path = Path(base_path)

    def _path_for(self, file_id: str) -> Optional[Path]:
        if not _SAFE_ID.fullmatch(file_id) or file_id.startswith("."):
            return None
        return self.base_path / f"{file_id}.json"

    @staticmethod
    def _load(path: Path) -> dict:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _read_sync(self, file_id: str) -> Optional[dict]:
        path = self._path_for(file_id)
        if path is None or not path.exists():
            return None
        return self._load(path)

    def _read_all_sync(self) -> List[dict]:
        if not self.base_path.exists():
            return []
        return [
            self._load(path)
            for path in sorted(self.base_path.glob("*.json"))
            if not path.name.startswith(".")
        ]

    def _write_sync(self, file_id: str, document: dict) -> None:
        path = self._path_for(file_id)
        if path is None:
            raise StorageError(f"Invalid reconciliation file id: {file_id!r}")

        self.base_path.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.base_path, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def _read_document(self, file_id: str) -> Optional[dict]:
        try:
            return await asyncio.to_thread(self._read_sync, file_id)
        except (OSError, ValueError) as e:
            logger.error("Failed to read reconciliation file", file_id=file_id, error=str(e))
            raise StorageError(f"Failed to read reconciliation file {file_id}: {e}")

    async def _read_all_documents(self) -> List[dict]:
        try:
            return await asyncio.to_thread(self._read_all_sync)
        except (OSError, ValueError) as e:
            logger.error("Failed to list reconciliation files", path=str(self.base_path), error=str(e))
            raise StorageError(f"Failed to list reconciliation files: {e}")

    async def _write_document(self, file_id: str, document: dict) -> None:
        try:
            await asyncio.to_thread(self._write_sync, file_id, document)
        except OSError as e:
            logger.error("Failed to write reconciliation file", file_id=file_id, error=str(e))
            raise StorageError(f"Failed to write reconciliation file {file_id}: {e}")

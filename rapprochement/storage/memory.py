"""In-memory reconciliation file store, used for development and tests."""

import copy
from typing import Dict, Iterable, List, Optional

from ..models import ReconciliationFile
from .base import ReconciliationFileStore
from .codec import encode_file


class InMemoryFileStore(ReconciliationFileStore):
    """
    Keeps encoded documents in a dict.

    Documents go through the same codec as the JSON backend and are deep
    copied on every read and write, so no two file objects share entries.
    """

    def __init__(self, files: Optional[Iterable[ReconciliationFile]] = None):
        super().__init__()
        self._documents: Dict[str, dict] = {}
        for file in files or []:
            file.recount()
            self._documents[file.id] = encode_file(file)

    async def _read_document(self, file_id: str) -> Optional[dict]:
        document = self._documents.get(file_id)
        return copy.deepcopy(document) if document is not None else None

    async def _read_all_documents(self) -> List[dict]:
        return [copy.deepcopy(document) for document in self._documents.values()]

    async def _write_document(self, file_id: str, document: dict) -> None:
        self._documents[file_id] = copy.deepcopy(document)

"""
Reconciliation search service.

Scans the lines of every open reconciliation file that are still waiting for
a match and keeps those whose label satisfies a keyword query. Results come
back in file-then-line order, without ranking.
"""

from typing import List, Optional

import structlog

from ..config import get_settings
from ..models import MatchCandidate
from ..storage import ReconciliationFileStore
from .keyword_query import KeywordQuery

logger = structlog.get_logger()


def effective_keywords(saved_keywords: Optional[str], entity_name: str) -> str:
    """Saved keywords when set, otherwise the entity name."""
    keywords = (saved_keywords or "").strip()
    return keywords if keywords else (entity_name or "")


class ReconciliationSearchService:
    """Keyword search over the unmatched lines of open reconciliation files."""

    def __init__(
        self,
        store: ReconciliationFileStore,
        min_query_length: Optional[int] = None,
    ):
        self.store = store
        if min_query_length is None:
            min_query_length = get_settings().search_min_query_length
        self.min_query_length = min_query_length

    async def search(self, query_text: str) -> List[MatchCandidate]:
        """
        Return every UNMATCHED or UNCERTAIN line whose label matches.

        A query shorter than the minimum length returns an empty list
        without reading storage. StorageError propagates to the caller.
        """
        text = (query_text or "").strip()
        if len(text) < self.min_query_length:
            logger.debug("Search skipped, query too short", query=text)
            return []

        query = KeywordQuery.parse(text)
        if query.is_empty:
            return []

        candidates = []
        files = await self.store.list_open_files()

        for file in files:
            for index, entry in enumerate(file.entries):
                if not entry.status.is_matchable:
                    continue
                if query.matches(entry.transaction.label):
                    candidates.append(MatchCandidate(
                        file_id=file.id,
                        entry_index=index,
                        transaction=entry.transaction,
                        status=entry.status,
                    ))

        logger.info(
            "Reconciliation search",
            query=text,
            files=len(files),
            candidates=len(candidates),
        )
        return candidates

    async def search_for_entity(
        self,
        entity_name: str,
        saved_keywords: Optional[str] = None,
    ) -> List[MatchCandidate]:
        """Search with an entity's saved keywords, falling back to its name."""
        return await self.search(effective_keywords(saved_keywords, entity_name))

"""
Match History Aggregator.

Federates what is known about an entity's past matches:

- subscriptions and declarations: bank matches carrying a foreign key to the
  entity, plus the payments recorded against it;
- every other kind has no stable reference on bank matches yet, so the
  history falls back to invoices whose issuer or recipient name contains the
  entity name, and to the bank matches of those invoices. These are tagged
  NAME_FALLBACK and never presented as direct links.

Sources are queried concurrently. A failing source contributes nothing and
is reported in `failed_sources`; it never aborts the aggregation.
"""

import asyncio
from typing import Awaitable, List, Optional, Sequence, TypeVar

import structlog

from ..config import get_settings
from ..models import (
    AggregatedMatches,
    EntityKind,
    HistoryBucket,
    HistoryItem,
    HistorySource,
    InvoiceRecord,
    MatchProvenance,
    PaymentRecord,
)
from ..integrations.records import MatchRecordSource

logger = structlog.get_logger()

T = TypeVar("T")


class MatchHistoryAggregator:
    """Builds the match history shown on an entity's detail view."""

    def __init__(
        self,
        records: MatchRecordSource,
        invoice_limit: Optional[int] = None,
        display_limit: Optional[int] = None,
    ):
        settings = get_settings()
        self.records = records
        if invoice_limit is None:
            invoice_limit = settings.history_invoice_limit
        if display_limit is None:
            display_limit = settings.history_display_limit
        self.invoice_limit = invoice_limit
        self.display_limit = display_limit

    async def history(
        self,
        entity_kind: EntityKind,
        entity_id: str,
        entity_name: str,
    ) -> AggregatedMatches:
        result = AggregatedMatches(
            entity_kind=entity_kind,
            entity_id=entity_id,
            entity_name=entity_name,
        )
        failed: List[HistorySource] = []

        if entity_kind.has_direct_link:
            bank_matches, payments = await asyncio.gather(
                self._collect(
                    HistorySource.BANK_MATCH,
                    self.records.bank_matches_for_entity(entity_kind, entity_id),
                    failed,
                ),
                self._collect(
                    HistorySource.PAYMENT,
                    self.records.payments_for_entity(entity_kind, entity_id),
                    failed,
                ),
            )
            invoices: List[InvoiceRecord] = []
            provenance = MatchProvenance.DIRECT_LINK
        else:
            invoices, bank_matches = await self._by_party_name(entity_name, failed)
            payments: List[PaymentRecord] = []
            provenance = MatchProvenance.NAME_FALLBACK

        result.bank_matches = self._bucket(HistorySource.BANK_MATCH, bank_matches, provenance)
        result.invoices = self._bucket(HistorySource.INVOICE, invoices, MatchProvenance.NAME_FALLBACK)
        result.payments = self._bucket(HistorySource.PAYMENT, payments)
        result.failed_sources = [s for s in HistorySource if s in failed]

        logger.info(
            "Match history aggregated",
            entity_kind=entity_kind.value,
            entity_id=entity_id,
            bank_matches=result.bank_matches.total,
            invoices=result.invoices.total,
            payments=result.payments.total,
            failed_sources=[s.value for s in result.failed_sources],
        )
        return result

    async def _by_party_name(self, entity_name: str, failed: List[HistorySource]):
        """Invoices naming the entity, then the bank matches of those invoices."""
        name = (entity_name or "").strip()
        if not name:
            # An empty needle would match every invoice
            return [], []

        invoices = await self._collect(
            HistorySource.INVOICE,
            self.records.invoices_by_party_name(name, self.invoice_limit),
            failed,
        )
        if HistorySource.INVOICE in failed:
            failed.append(HistorySource.BANK_MATCH)
            return [], []
        if not invoices:
            return [], []

        bank_matches = await self._collect(
            HistorySource.BANK_MATCH,
            self.records.bank_matches_for_invoices([invoice.id for invoice in invoices]),
            failed,
        )
        return invoices, bank_matches

    @staticmethod
    async def _collect(
        source: HistorySource,
        awaitable: Awaitable[List[T]],
        failed: List[HistorySource],
    ) -> List[T]:
        try:
            return list(await awaitable)
        except Exception as e:
            logger.warning("History source unavailable", source=source.value, error=str(e))
            failed.append(source)
            return []

    def _bucket(
        self,
        origin: HistorySource,
        records: Sequence[object],
        provenance: Optional[MatchProvenance] = None,
    ) -> HistoryBucket:
        items = [
            HistoryItem(origin=origin, record=record, provenance=provenance)
            for record in records[:self.display_limit]
        ]
        return HistoryBucket(origin=origin, items=items, total=len(records))

"""
Read access to the back office's match-related records: committed bank
matches, invoices and recorded payments.
"""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

from ..models import BankMatchRecord, EntityKind, InvoiceRecord, PaymentRecord


class MatchRecordSource(ABC):
    """Record families federated by the match history aggregator."""

    @abstractmethod
    async def bank_matches_for_entity(
        self, kind: EntityKind, entity_id: str
    ) -> List[BankMatchRecord]:
        """Bank matches carrying a foreign key to a subscription or declaration."""

    @abstractmethod
    async def bank_matches_for_invoices(
        self, invoice_ids: Sequence[str]
    ) -> List[BankMatchRecord]:
        """Bank matches linked to any of the given invoices."""

    @abstractmethod
    async def invoices_by_party_name(self, name: str, limit: int) -> List[InvoiceRecord]:
        """Most recent invoices whose issuer or recipient name contains `name`."""

    @abstractmethod
    async def payments_for_entity(
        self, kind: EntityKind, entity_id: str
    ) -> List[PaymentRecord]:
        """Recorded payments of a subscription or declaration."""


class InMemoryMatchRecordSource(MatchRecordSource):
    """Record source over plain lists, most recent first in every answer."""

    def __init__(
        self,
        bank_matches: Optional[Iterable[BankMatchRecord]] = None,
        invoices: Optional[Iterable[InvoiceRecord]] = None,
        payments: Optional[Iterable[PaymentRecord]] = None,
    ):
        self.bank_matches = list(bank_matches or [])
        self.invoices = list(invoices or [])
        self.payments = list(payments or [])

    @staticmethod
    def _latest_matches_first(records: List[BankMatchRecord]) -> List[BankMatchRecord]:
        return sorted(records, key=lambda r: r.transaction_date, reverse=True)

    async def bank_matches_for_entity(
        self, kind: EntityKind, entity_id: str
    ) -> List[BankMatchRecord]:
        if kind == EntityKind.SUBSCRIPTION:
            found = [r for r in self.bank_matches if r.subscription_id == entity_id]
        elif kind == EntityKind.DECLARATION:
            found = [r for r in self.bank_matches if r.declaration_id == entity_id]
        else:
            found = []
        return self._latest_matches_first(found)

    async def bank_matches_for_invoices(
        self, invoice_ids: Sequence[str]
    ) -> List[BankMatchRecord]:
        wanted = set(invoice_ids)
        found = [r for r in self.bank_matches if r.invoice_id in wanted]
        return self._latest_matches_first(found)

    async def invoices_by_party_name(self, name: str, limit: int) -> List[InvoiceRecord]:
        if not name:
            return []
        found = [invoice for invoice in self.invoices if invoice.involves(name)]
        found.sort(key=lambda invoice: invoice.issue_date, reverse=True)
        return found[:limit]

    async def payments_for_entity(
        self, kind: EntityKind, entity_id: str
    ) -> List[PaymentRecord]:
        found = [
            p for p in self.payments
            if p.entity_kind == kind and p.entity_id == entity_id
        ]
        return sorted(found, key=lambda p: p.payment_date, reverse=True)

"""Records consumed by the match history aggregator, and its result."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Union

from .enums import EntityKind, HistorySource, MatchProvenance


@dataclass
class BankMatchRecord:
    """A committed bank match as stored by the back office."""
    id: str
    transaction_date: date
    label: str
    amount_cents: int
    line_number: str = ""
    debit_cents: Optional[int] = None
    credit_cents: Optional[int] = None

    # Foreign keys, at most one is set
    invoice_id: Optional[str] = None
    subscription_id: Optional[str] = None
    declaration_id: Optional[str] = None

    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "transaction_date": self.transaction_date.isoformat(),
            "label": self.label,
            "amount": self.amount_cents / 100.0,
            "debit": None if self.debit_cents is None else self.debit_cents / 100.0,
            "credit": None if self.credit_cents is None else self.credit_cents / 100.0,
            "line_number": self.line_number,
            "invoice_id": self.invoice_id,
            "subscription_id": self.subscription_id,
            "declaration_id": self.declaration_id,
        }


@dataclass
class InvoiceRecord:
    """A sales or purchase invoice, identified by its parties' names."""
    id: str
    number: str
    issue_date: date
    issuer_name: str
    recipient_name: str
    total_cents: Optional[int] = None
    invoice_type: str = ""

    def involves(self, name: str) -> bool:
        """Case-insensitive substring match on issuer or recipient."""
        needle = name.lower()
        return (
            needle in (self.issuer_name or "").lower()
            or needle in (self.recipient_name or "").lower()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "issue_date": self.issue_date.isoformat(),
            "issuer_name": self.issuer_name,
            "recipient_name": self.recipient_name,
            "total": None if self.total_cents is None else self.total_cents / 100.0,
            "invoice_type": self.invoice_type,
        }


@dataclass
class PaymentRecord:
    """A recorded subscription or declaration payment."""
    id: str
    entity_kind: EntityKind
    entity_id: str
    payment_date: date
    amount_cents: int
    notes: Optional[str] = None
    bank_match: Optional[BankMatchRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "entity_kind": self.entity_kind.value,
            "entity_id": self.entity_id,
            "payment_date": self.payment_date.isoformat(),
            "amount": self.amount_cents / 100.0,
            "notes": self.notes,
            "bank_match": self.bank_match.to_dict() if self.bank_match else None,
        }


HistoryRecord = Union[BankMatchRecord, InvoiceRecord, PaymentRecord]


@dataclass
class HistoryItem:
    """One record of an entity's history, tagged with where it came from."""
    origin: HistorySource
    record: HistoryRecord
    provenance: Optional[MatchProvenance] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin.value,
            "provenance": self.provenance.value if self.provenance else None,
            "record": self.record.to_dict(),
        }


@dataclass
class HistoryBucket:
    """Display slice of one history source plus its full count."""
    origin: HistorySource
    items: List[HistoryItem] = field(default_factory=list)
    total: int = 0

    @property
    def hidden(self) -> int:
        return self.total - len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin.value,
            "total": self.total,
            "hidden": self.hidden,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class AggregatedMatches:
    """Federated match history of a single business entity."""
    entity_kind: EntityKind
    entity_id: str
    entity_name: str
    bank_matches: HistoryBucket = field(
        default_factory=lambda: HistoryBucket(HistorySource.BANK_MATCH)
    )
    invoices: HistoryBucket = field(
        default_factory=lambda: HistoryBucket(HistorySource.INVOICE)
    )
    payments: HistoryBucket = field(
        default_factory=lambda: HistoryBucket(HistorySource.PAYMENT)
    )
    failed_sources: List[HistorySource] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.bank_matches.total + self.invoices.total + self.payments.total

    @property
    def has_data(self) -> bool:
        return self.total > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_kind": self.entity_kind.value,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "total": self.total,
            "bank_matches": self.bank_matches.to_dict(),
            "invoices": self.invoices.to_dict(),
            "payments": self.payments.to_dict(),
            "failed_sources": [source.value for source in self.failed_sources],
        }

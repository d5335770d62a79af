"""Transaction line models for the bank-reconciliation matching engine."""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Dict, Any

from .enums import EntityKind, MatchStatus


@dataclass(frozen=True)
class BankTransaction:
    """
    One imported bank-statement line.
    All monetary amounts are stored in CENTS (integer) to avoid floating point errors.
    Immutable once imported.
    """
    date: date
    label: str
    net_cents: int
    line_number: str = ""  # Format: RL-YYYYMMDD-XXXXX
    debit_cents: Optional[int] = None
    credit_cents: Optional[int] = None

    @property
    def net_amount(self) -> float:
        return self.net_cents / 100.0

    @property
    def debit_amount(self) -> Optional[float]:
        return None if self.debit_cents is None else self.debit_cents / 100.0

    @property
    def credit_amount(self) -> Optional[float]:
        return None if self.credit_cents is None else self.credit_cents / 100.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "date": self.date.isoformat(),
            "label": self.label,
            "debit_amount": self.debit_amount,
            "credit_amount": self.credit_amount,
            "net_amount": self.net_amount,
            "line_number": self.line_number,
        }


@dataclass(frozen=True)
class EntityLink:
    """
    Link from a transaction line to a business entity.

    The kind is the discriminator of the variant; the subtype is
    kind-specific (e.g. the collecting body of a payroll declaration).
    """
    kind: EntityKind
    entity_id: str
    entity_name: str
    entity_subtype: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "entity_id": self.entity_id,
            "entity_name": self.entity_name,
            "entity_subtype": self.entity_subtype,
        }


@dataclass
class TransactionMatchRecord:
    """A bank transaction line plus its match status and linked entity."""
    transaction: BankTransaction
    status: MatchStatus = MatchStatus.UNMATCHED
    entity_link: Optional[EntityLink] = None

    # Unrecognised keys of the stored record, kept for round-trips
    extras: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.entity_link is not None and self.status != MatchStatus.MATCHED:
            raise ValueError(
                f"Entity link set on a {self.status.value} record"
            )

    @property
    def is_matched(self) -> bool:
        return self.status == MatchStatus.MATCHED

    def mark_matched(self, link: EntityLink) -> None:
        self.status = MatchStatus.MATCHED
        self.entity_link = link

    def clear_match(self) -> None:
        self.status = MatchStatus.UNMATCHED
        self.entity_link = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "transaction": self.transaction.to_dict(),
            "status": self.status.value,
            "entity_link": self.entity_link.to_dict() if self.entity_link else None,
        }

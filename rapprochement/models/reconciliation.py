"""Reconciliation file and audit models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple
from uuid import uuid4

from .enums import AuditAction, EntityKind, FileStatus, MatchStatus
from .transaction import BankTransaction, TransactionMatchRecord


@dataclass
class ReconciliationFile:
    """A batch of imported bank-statement lines awaiting or holding matches."""
    id: str = field(default_factory=lambda: str(uuid4()))
    status: FileStatus = FileStatus.OPEN
    entries: List[TransactionMatchRecord] = field(default_factory=list)

    # Denormalized, recomputed by the store on save
    matched_count: int = 0

    updated_at: datetime = field(default_factory=datetime.utcnow)
    version: int = 0
    reference: Optional[str] = None  # Format: RAP-YYMM-NN

    # Unrecognised keys of the stored document (period, author...)
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.status == FileStatus.OPEN

    @property
    def total_lines(self) -> int:
        return len(self.entries)

    def count_matched(self) -> int:
        """Number of MATCHED entries, the source of truth for matched_count."""
        return sum(1 for entry in self.entries if entry.is_matched)

    def recount(self) -> Tuple[int, int]:
        """Realign matched_count with the entries. Returns (before, after)."""
        before = self.matched_count
        self.matched_count = self.count_matched()
        return before, self.matched_count

    def to_dict(self, include_entries: bool = True) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        data = {
            "id": self.id,
            "reference": self.reference,
            "status": self.status.value,
            "matched_count": self.matched_count,
            "total_lines": self.total_lines,
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
        }
        if include_entries:
            data["entries"] = [entry.to_dict() for entry in self.entries]
        return data


@dataclass
class MatchCandidate:
    """A searchable transaction line, addressed by file id and position."""
    file_id: str
    entry_index: int
    transaction: BankTransaction
    status: MatchStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "entry_index": self.entry_index,
            "transaction": self.transaction.to_dict(),
            "status": self.status.value,
        }


@dataclass
class AuditEntry:
    """An entry in the audit log."""
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.utcnow)

    # Action
    action: AuditAction = AuditAction.MATCH_RECORDED

    # Context
    file_id: Optional[str] = None
    entry_index: Optional[int] = None
    entity_kind: Optional[EntityKind] = None
    entity_id: Optional[str] = None

    # Details
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    # Outcome
    success: bool = True
    error_message: Optional[str] = None

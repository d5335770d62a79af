"""Data models for the bank-reconciliation matching engine."""

from .enums import (
    FileStatus,
    MatchStatus,
    EntityKind,
    HistorySource,
    MatchProvenance,
    AuditAction,
)
from .transaction import (
    BankTransaction,
    EntityLink,
    TransactionMatchRecord,
)
from .reconciliation import (
    ReconciliationFile,
    MatchCandidate,
    AuditEntry,
)
from .history import (
    BankMatchRecord,
    InvoiceRecord,
    PaymentRecord,
    HistoryItem,
    HistoryBucket,
    AggregatedMatches,
)

__all__ = [
    # Enums
    "FileStatus",
    "MatchStatus",
    "EntityKind",
    "HistorySource",
    "MatchProvenance",
    "AuditAction",
    # Transactions
    "BankTransaction",
    "EntityLink",
    "TransactionMatchRecord",
    # Reconciliation
    "ReconciliationFile",
    "MatchCandidate",
    "AuditEntry",
    # History
    "BankMatchRecord",
    "InvoiceRecord",
    "PaymentRecord",
    "HistoryItem",
    "HistoryBucket",
    "AggregatedMatches",
]

"""Enumerations for the bank-reconciliation matching engine."""

from enum import Enum


class FileStatus(str, Enum):
    """
    Status of a reconciliation file.

    OPEN: Searchable and matchable (persisted as EN_COURS)
    CLOSED: Read-only, validated or archived by the back office
    """
    OPEN = "EN_COURS"
    CLOSED = "VALIDE"

    @classmethod
    def _missing_(cls, value):
        # Archived files are closed as far as matching is concerned
        if value == "ARCHIVE":
            return cls.CLOSED
        return None


class MatchStatus(str, Enum):
    """Status of a single transaction line inside a reconciliation file."""
    UNMATCHED = "unmatched"
    UNCERTAIN = "uncertain"    # Partner detected, not confirmed
    MATCHED = "matched"

    @property
    def is_matchable(self) -> bool:
        return self in (MatchStatus.UNMATCHED, MatchStatus.UNCERTAIN)


class EntityKind(str, Enum):
    """Business-object category a transaction line can be linked to."""
    SUBSCRIPTION = "abonnement"
    DECLARATION = "declaration"
    GENERAL_SUPPLIER = "fournisseur"
    SERVICE_SUPPLIER = "fournisseur_services"
    STATE_SUPPLIER = "fournisseur_etat"
    CLIENT = "client"
    CONTRACTOR = "prestataire"
    EMPLOYEE = "salarie"

    @property
    def has_direct_link(self) -> bool:
        """Bank-match records carry a foreign key for this kind."""
        return self in (EntityKind.SUBSCRIPTION, EntityKind.DECLARATION)

    @property
    def is_supplier(self) -> bool:
        return self in (
            EntityKind.GENERAL_SUPPLIER,
            EntityKind.SERVICE_SUPPLIER,
            EntityKind.STATE_SUPPLIER,
        )


class HistorySource(str, Enum):
    """Origin of an item in an entity's match history."""
    BANK_MATCH = "bank_match"
    INVOICE = "invoice"
    PAYMENT = "payment"


class MatchProvenance(str, Enum):
    """How a bank match was tied to an entity."""
    DIRECT_LINK = "direct_link"        # Foreign key on the bank-match record
    NAME_FALLBACK = "name_fallback"    # Via invoices whose party name contains the entity name


class AuditAction(str, Enum):
    """Type of audit action."""
    MATCH_RECORDED = "match_recorded"
    MATCH_REJECTED = "match_rejected"
    MATCH_REVERTED = "match_reverted"
    MATCH_COUNT_REPAIRED = "match_count_repaired"

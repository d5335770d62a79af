"""
Conversion between reconciliation files and their stored JSON documents.

The stored shape is shared with the back office, so field names are kept:

    {
      "id": ..., "numero_rapprochement": ..., "status": "EN_COURS",
      "version": 3, "total_lignes": 120, "lignes_rapprochees": 47,
      "updated_at": "...",
      "fichier_data": {
        "rapprochements": [
          {"transaction": {"date", "libelle", "debit", "credit",
                           "montant", "numero_ligne"},
           "status": "matched",
           "abonnement_info": {"id": ..., "nom": ...}},
          ...
        ]
      }
    }
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple

from ..errors import StorageError
from ..models import (
    BankTransaction,
    EntityKind,
    EntityLink,
    FileStatus,
    MatchStatus,
    ReconciliationFile,
    TransactionMatchRecord,
)

# Order matters: when a legacy record carries several info fields, the first wins
INFO_KEYS = (
    "abonnement_info",
    "declaration_info",
    "fournisseur_info",
    "client_info",
    "prestataire_info",
    "salarie_info",
)

_INFO_KEY_BY_KIND = {
    EntityKind.SUBSCRIPTION: "abonnement_info",
    EntityKind.DECLARATION: "declaration_info",
    EntityKind.GENERAL_SUPPLIER: "fournisseur_info",
    EntityKind.SERVICE_SUPPLIER: "fournisseur_info",
    EntityKind.STATE_SUPPLIER: "fournisseur_info",
    EntityKind.CLIENT: "client_info",
    EntityKind.CONTRACTOR: "prestataire_info",
    EntityKind.EMPLOYEE: "salarie_info",
}

_KIND_BY_INFO_KEY = {
    "abonnement_info": EntityKind.SUBSCRIPTION,
    "declaration_info": EntityKind.DECLARATION,
    "client_info": EntityKind.CLIENT,
    "prestataire_info": EntityKind.CONTRACTOR,
    "salarie_info": EntityKind.EMPLOYEE,
}

_SUPPLIER_TYPE_BY_KIND = {
    EntityKind.GENERAL_SUPPLIER: "general",
    EntityKind.SERVICE_SUPPLIER: "services",
    EntityKind.STATE_SUPPLIER: "etat",
}

# fournisseur_info.type was also written for partners that are not suppliers
_KIND_BY_SUPPLIER_TYPE = {
    "general": EntityKind.GENERAL_SUPPLIER,
    "services": EntityKind.SERVICE_SUPPLIER,
    "etat": EntityKind.STATE_SUPPLIER,
    "client": EntityKind.CLIENT,
    "prestataire": EntityKind.CONTRACTOR,
    "salarie": EntityKind.EMPLOYEE,
}

_FILE_KEYS = {
    "id", "numero_rapprochement", "status", "statut", "version",
    "total_lignes", "lignes_rapprochees", "updated_at", "fichier_data",
}
_RECORD_KEYS = {"transaction", "status", "statut"}


# =============================================================================
# Amounts and dates
# =============================================================================

def _to_cents(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        amount = Decimal(str(value))
        return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError, OverflowError):
        raise StorageError(f"Invalid amount: {value!r}")


def _from_cents(cents: Optional[int]) -> Optional[float]:
    return None if cents is None else cents / 100.0


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d/%m/%Y").date()
    except ValueError:
        raise StorageError(f"Invalid transaction date: {value!r}")


def parse_int(value: Any, field: str) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise StorageError(f"Invalid {field}: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise StorageError(f"Invalid {field}: {value!r}")


def _parse_timestamp(value: Any) -> datetime:
    if not value:
        return datetime.utcnow()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise StorageError(f"Invalid timestamp: {value!r}")


# =============================================================================
# Transactions and entity links
# =============================================================================

def decode_transaction(data: Dict[str, Any]) -> BankTransaction:
    debit = _to_cents(data.get("debit"))
    credit = _to_cents(data.get("credit"))
    net = _to_cents(data.get("montant"))
    if net is None:
        net = (credit or 0) - (debit or 0)
    return BankTransaction(
        date=_parse_date(data.get("date")),
        label=str(data.get("libelle") or ""),
        net_cents=net,
        line_number=str(data.get("numero_ligne") or ""),
        debit_cents=debit,
        credit_cents=credit,
    )


def encode_transaction(transaction: BankTransaction) -> Dict[str, Any]:
    return {
        "date": transaction.date.isoformat(),
        "libelle": transaction.label,
        "debit": _from_cents(transaction.debit_cents),
        "credit": _from_cents(transaction.credit_cents),
        "montant": _from_cents(transaction.net_cents),
        "numero_ligne": transaction.line_number,
    }


def encode_entity_link(link: EntityLink) -> Tuple[str, Dict[str, Any]]:
    """Return the info field name and payload for a link."""
    payload: Dict[str, Any] = {"id": link.entity_id, "nom": link.entity_name}

    if link.kind.is_supplier:
        payload["type"] = _SUPPLIER_TYPE_BY_KIND[link.kind]
        if link.entity_subtype:
            payload["sous_type"] = link.entity_subtype
    elif link.kind == EntityKind.DECLARATION:
        if link.entity_subtype:
            payload["organisme"] = link.entity_subtype
    elif link.entity_subtype:
        payload["type"] = link.entity_subtype

    return _INFO_KEY_BY_KIND[link.kind], payload


def decode_entity_link(key: str, payload: Dict[str, Any]) -> Optional[EntityLink]:
    """Build a link from an info field, or None if the payload is unusable."""
    if not isinstance(payload, dict) or not payload.get("id"):
        return None

    subtype = None
    if key == "fournisseur_info":
        kind = _KIND_BY_SUPPLIER_TYPE.get(str(payload.get("type") or "general"))
        if kind is None:
            return None
        subtype = payload.get("sous_type")
    else:
        kind = _KIND_BY_INFO_KEY[key]
        if kind == EntityKind.DECLARATION:
            subtype = payload.get("organisme")
        else:
            subtype = payload.get("type")

    return EntityLink(
        kind=kind,
        entity_id=str(payload["id"]),
        entity_name=str(payload.get("nom") or ""),
        entity_subtype=subtype,
    )


# =============================================================================
# Records and files
# =============================================================================

def decode_record(data: Dict[str, Any]) -> TransactionMatchRecord:
    if not isinstance(data, dict):
        raise StorageError(f"Malformed reconciliation record: {data!r}")
    transaction = data.get("transaction") or {}
    if not isinstance(transaction, dict):
        raise StorageError(f"Malformed transaction: {transaction!r}")

    raw_status = data.get("status", data.get("statut", MatchStatus.UNMATCHED.value))
    try:
        status = MatchStatus(raw_status)
    except ValueError:
        raise StorageError(f"Unknown match status: {raw_status!r}")

    extras = {k: v for k, v in data.items() if k not in _RECORD_KEYS}

    link = None
    if status == MatchStatus.MATCHED:
        for key in INFO_KEYS:
            if key in extras:
                link = decode_entity_link(key, extras[key])
                if link is not None:
                    del extras[key]
                    break

    return TransactionMatchRecord(
        transaction=decode_transaction(transaction),
        status=status,
        entity_link=link,
        extras=extras,
    )


def encode_record(record: TransactionMatchRecord) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "transaction": encode_transaction(record.transaction),
        "status": record.status.value,
    }
    if record.entity_link is not None:
        # A committed link replaces any legacy partner hint
        data.update({k: v for k, v in record.extras.items() if k not in INFO_KEYS})
        key, payload = encode_entity_link(record.entity_link)
        data[key] = payload
    elif record.status == MatchStatus.UNMATCHED:
        # An unmatched line carries no entity, not even a leftover one
        data.update({k: v for k, v in record.extras.items() if k not in INFO_KEYS})
    else:
        # Partner hints of uncertain lines are kept
        data.update(record.extras)
    return data


def decode_file(document: Dict[str, Any]) -> ReconciliationFile:
    """Build a ReconciliationFile from its stored document."""
    if not isinstance(document, dict) or "id" not in document:
        raise StorageError("Malformed reconciliation document")

    raw_status = document.get("status", document.get("statut"))
    try:
        status = FileStatus(raw_status)
    except ValueError:
        raise StorageError(f"Unknown file status: {raw_status!r}")

    fichier_data = document.get("fichier_data") or {}
    if not isinstance(fichier_data, dict):
        raise StorageError("Malformed fichier_data")
    fichier_data = dict(fichier_data)
    raw_records = fichier_data.pop("rapprochements", None) or []
    if not isinstance(raw_records, list):
        raise StorageError("Malformed rapprochements list")

    extras = {k: v for k, v in document.items() if k not in _FILE_KEYS}
    if fichier_data:
        extras["fichier_data"] = fichier_data

    return ReconciliationFile(
        id=str(document["id"]),
        status=status,
        entries=[decode_record(record) for record in raw_records],
        matched_count=parse_int(document.get("lignes_rapprochees"), "lignes_rapprochees"),
        updated_at=_parse_timestamp(document.get("updated_at")),
        version=parse_int(document.get("version"), "version"),
        reference=document.get("numero_rapprochement"),
        extras=extras,
    )


def encode_file(file: ReconciliationFile) -> Dict[str, Any]:
    """Build the stored document of a ReconciliationFile."""
    extras = dict(file.extras)
    fichier_data = dict(extras.pop("fichier_data", None) or {})
    fichier_data["rapprochements"] = [encode_record(entry) for entry in file.entries]

    document = dict(extras)
    document.update({
        "id": file.id,
        "numero_rapprochement": file.reference,
        "status": file.status.value,
        "version": file.version,
        "total_lignes": file.total_lines,
        "lignes_rapprochees": file.matched_count,
        "updated_at": file.updated_at.isoformat(),
        "fichier_data": fichier_data,
    })
    return document

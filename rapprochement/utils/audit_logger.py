"""
Audit logging for match decisions.
"""

import json
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import structlog

from ..config import get_settings
from ..models import AuditEntry

logger = structlog.get_logger()


class AuditLogger:
    """
    Logger for the audit trail of match decisions.
    Provides both in-memory and file-based logging.
    """

    def __init__(self, session_id: str = "default", max_entries: Optional[int] = None):
        self.session_id = session_id
        self.entries: List[AuditEntry] = []
        self.settings = get_settings()
        if max_entries is None:
            max_entries = self.settings.audit_max_entries
        self.max_entries = max_entries
        self.dropped = 0

    def log(self, entry: AuditEntry) -> None:
        """Add an audit entry; the oldest entries are dropped past max_entries."""
        self.entries.append(entry)
        overflow = len(self.entries) - self.max_entries
        if overflow > 0:
            del self.entries[:overflow]
            self.dropped += overflow

        log = logger.info if entry.success else logger.warning
        log(
            entry.message,
            action=entry.action.value,
            file_id=entry.file_id,
            entry_index=entry.entry_index,
            entity_kind=entry.entity_kind.value if entry.entity_kind else None,
            entity_id=entry.entity_id,
            success=entry.success,
        )

    def get_entries(
        self,
        action_filter: Optional[str] = None,
        file_id: Optional[str] = None,
        success_only: bool = False,
    ) -> List[AuditEntry]:
        """Get filtered audit entries."""
        entries = self.entries

        if action_filter:
            entries = [e for e in entries if e.action.value == action_filter]

        if file_id:
            entries = [e for e in entries if e.file_id == file_id]

        if success_only:
            entries = [e for e in entries if e.success]

        return entries

    def export_to_file(self, output_path: Optional[Path] = None) -> Path:
        """Export audit log to JSON file."""
        if output_path is None:
            output_path = self.settings.reports_dir / f"audit_{self.session_id}.json"

        output_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "session_id": self.session_id,
            "exported_at": datetime.utcnow().isoformat(),
            "total_entries": len(self.entries),
            "dropped_entries": self.dropped,
            "entries": [
                {
                    "id": e.id,
                    "timestamp": e.timestamp.isoformat(),
                    "action": e.action.value,
                    "file_id": e.file_id,
                    "entry_index": e.entry_index,
                    "entity_kind": e.entity_kind.value if e.entity_kind else None,
                    "entity_id": e.entity_id,
                    "message": e.message,
                    "details": e.details,
                    "success": e.success,
                    "error_message": e.error_message,
                }
                for e in self.entries
            ],
        }

        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info("Audit log exported", path=str(output_path))
        return output_path

    def summary(self) -> dict:
        """Get summary statistics of audit log."""
        action_counts = Counter(e.action.value for e in self.entries)
        success_count = sum(1 for e in self.entries if e.success)

        return {
            "total_entries": len(self.entries),
            "success_count": success_count,
            "error_count": len(self.entries) - success_count,
            "action_counts": dict(action_counts),
            "dropped_entries": self.dropped,
        }

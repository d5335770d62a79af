"""
Tests for the audit logger.
"""

import json

import pytest

from rapprochement.models import AuditAction, AuditEntry, EntityKind
from rapprochement.utils import AuditLogger


@pytest.fixture
def audit():
    logger = AuditLogger(session_id="unit")
    logger.log(AuditEntry(
        action=AuditAction.MATCH_RECORDED,
        file_id="rap-1",
        entry_index=0,
        entity_kind=EntityKind.SUBSCRIPTION,
        entity_id="sub-1",
        message="Matched line 0 to Orange Pro",
    ))
    logger.log(AuditEntry(
        action=AuditAction.MATCH_REJECTED,
        file_id="rap-2",
        entry_index=4,
        entity_kind=EntityKind.CLIENT,
        entity_id="cli-1",
        message="Match rejected",
        success=False,
        error_message="Line 4 of file rap-2 is already matched",
    ))
    return logger


class TestAuditLogger:

    def test_filters(self, audit):
        assert len(audit.get_entries()) == 2
        assert len(audit.get_entries(action_filter="match_rejected")) == 1
        assert audit.get_entries(file_id="rap-1")[0].entity_id == "sub-1"
        assert len(audit.get_entries(success_only=True)) == 1

    def test_summary(self, audit):
        assert audit.summary() == {
            "total_entries": 2,
            "success_count": 1,
            "error_count": 1,
            "action_counts": {"match_recorded": 1, "match_rejected": 1},
            "dropped_entries": 0,
        }

    def test_trail_is_capped(self):
        audit = AuditLogger(session_id="cap", max_entries=3)
        for index in range(5):
            audit.log(AuditEntry(
                action=AuditAction.MATCH_RECORDED,
                file_id="rap-1",
                entry_index=index,
                message=f"Matched line {index}",
            ))

        assert [e.entry_index for e in audit.entries] == [2, 3, 4]
        assert audit.dropped == 2
        assert audit.summary()["dropped_entries"] == 2

    def test_export(self, audit, tmp_path):
        path = audit.export_to_file(tmp_path / "audit" / "out.json")

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["session_id"] == "unit"
        assert data["total_entries"] == 2
        assert data["entries"][0]["entity_kind"] == "abonnement"
        assert data["entries"][1]["success"] is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

"""
Tests for the match recorder.
"""

import asyncio
from datetime import date
from unittest.mock import AsyncMock

import pytest

from rapprochement.errors import (
    AlreadyMatchedError,
    ConflictError,
    FileClosedError,
    IndexOutOfRangeError,
    NotFoundError,
    NotMatchedError,
    StorageError,
)
from rapprochement.matching import MatchRecorder, ReconciliationSearchService
from rapprochement.models import (
    AuditAction,
    BankTransaction,
    EntityKind,
    EntityLink,
    FileStatus,
    MatchStatus,
    ReconciliationFile,
    TransactionMatchRecord,
)
from rapprochement.storage import InMemoryFileStore
from rapprochement.utils import AuditLogger


ORANGE = EntityLink(EntityKind.SUBSCRIPTION, "sub-1", "Orange Pro")
SFR = EntityLink(EntityKind.SERVICE_SUPPLIER, "sup-4", "SFR Business", "telecom")


class SlowFileStore(InMemoryFileStore):
    """Yields to the event loop on every read, like a real backend."""

    async def _read_document(self, file_id):
        await asyncio.sleep(0)
        return await super()._read_document(file_id)


def make_files():
    def line(label, status=MatchStatus.UNMATCHED, link=None):
        return TransactionMatchRecord(
            transaction=BankTransaction(
                date=date(2024, 10, 3),
                label=label,
                net_cents=-4999,
                debit_cents=4999,
                line_number="RL-20241003-00001",
            ),
            status=status,
            entity_link=link,
        )

    return [
        ReconciliationFile(
            id="rap-1",
            entries=[
                line("VIR SEPA ORANGE 49.99"),
                line("CB SFR 29.99", status=MatchStatus.UNCERTAIN),
                line(
                    "PRLV URSSAF",
                    status=MatchStatus.MATCHED,
                    link=EntityLink(EntityKind.DECLARATION, "decl-1", "DSN", "URSSAF"),
                ),
            ],
        ),
        ReconciliationFile(
            id="rap-closed",
            status=FileStatus.CLOSED,
            entries=[line("VIR ORANGE")],
        ),
    ]


@pytest.fixture
def store():
    return InMemoryFileStore(files=make_files())


@pytest.fixture
def audit():
    return AuditLogger(session_id="test")


@pytest.fixture
def recorder(store, audit):
    return MatchRecorder(store, audit)


class TestRecordMatch:
    """Committing a match on one line."""

    @pytest.mark.asyncio
    async def test_records_link_and_count(self, store, recorder):
        file = await recorder.record_match("rap-1", 0, ORANGE)

        assert file.entries[0].status == MatchStatus.MATCHED
        assert file.entries[0].entity_link == ORANGE
        assert file.matched_count == 2
        assert file.version == 1

        stored = await store.get_file("rap-1")
        assert stored.entries[0].entity_link == ORANGE
        assert stored.matched_count == 2

    @pytest.mark.asyncio
    async def test_uncertain_line_can_be_matched(self, store, recorder):
        file = await recorder.record_match("rap-1", 1, SFR)

        assert file.entries[1].entity_link == SFR
        assert file.matched_count == 2

    @pytest.mark.asyncio
    async def test_other_lines_untouched(self, store, recorder):
        before = await store.get_file("rap-1")

        after = await recorder.record_match("rap-1", 0, ORANGE)

        assert after.entries[1:] == before.entries[1:]

    @pytest.mark.asyncio
    async def test_search_then_match_then_search(self, store, recorder):
        """A matched line leaves the candidate list."""
        service = ReconciliationSearchService(store, min_query_length=2)

        candidates = await service.search("sepa orange")
        assert [(c.file_id, c.entry_index) for c in candidates] == [("rap-1", 0)]

        candidate = candidates[0]
        await recorder.record_match(candidate.file_id, candidate.entry_index, ORANGE)

        assert await service.search("sepa orange") == []

    @pytest.mark.asyncio
    async def test_unknown_file(self, recorder):
        with pytest.raises(NotFoundError):
            await recorder.record_match("missing", 0, ORANGE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index", [-1, 3, 99])
    async def test_index_out_of_range(self, store, recorder, index):
        with pytest.raises(IndexOutOfRangeError):
            await recorder.record_match("rap-1", index, ORANGE)

        stored = await store.get_file("rap-1")
        assert stored.version == 0
        assert stored.matched_count == 1

    @pytest.mark.asyncio
    async def test_already_matched(self, store, recorder):
        with pytest.raises(AlreadyMatchedError):
            await recorder.record_match("rap-1", 2, ORANGE)

        stored = await store.get_file("rap-1")
        assert stored.entries[2].entity_link.entity_id == "decl-1"
        assert stored.matched_count == 1

    @pytest.mark.asyncio
    async def test_closed_file(self, recorder):
        with pytest.raises(FileClosedError):
            await recorder.record_match("rap-closed", 0, ORANGE)

    @pytest.mark.asyncio
    async def test_expected_version_mismatch(self, store, recorder):
        await recorder.record_match("rap-1", 0, ORANGE)

        with pytest.raises(ConflictError):
            await recorder.record_match("rap-1", 1, SFR, expected_version=0)

        assert (await store.get_file("rap-1")).entries[1].status == MatchStatus.UNCERTAIN

    @pytest.mark.asyncio
    async def test_expected_version_match(self, recorder):
        file = await recorder.record_match("rap-1", 0, ORANGE, expected_version=0)
        assert file.version == 1

    @pytest.mark.asyncio
    async def test_audit_entries(self, recorder, audit):
        await recorder.record_match("rap-1", 0, ORANGE)
        with pytest.raises(AlreadyMatchedError):
            await recorder.record_match("rap-1", 0, SFR)

        recorded = audit.get_entries(action_filter=AuditAction.MATCH_RECORDED.value)
        rejected = audit.get_entries(action_filter=AuditAction.MATCH_REJECTED.value)

        assert len(recorded) == 1
        assert recorded[0].entity_id == "sub-1"
        assert recorded[0].details["previous_status"] == "unmatched"
        assert len(rejected) == 1
        assert rejected[0].success is False
        assert rejected[0].entity_id == "sup-4"

    @pytest.mark.asyncio
    async def test_failed_save_persists_nothing(self, store, recorder, audit):
        store._write_document = AsyncMock(side_effect=StorageError("disk full"))

        with pytest.raises(StorageError):
            await recorder.record_match("rap-1", 0, ORANGE)

        stored = await store.get_file("rap-1")
        assert stored.entries[0].status == MatchStatus.UNMATCHED
        assert stored.entries[0].entity_link is None
        assert stored.matched_count == 1
        assert stored.version == 0

        rejected = audit.get_entries(action_filter=AuditAction.MATCH_REJECTED.value)
        assert len(rejected) == 1
        assert rejected[0].error_message == "disk full"
        assert audit.get_entries(action_filter=AuditAction.MATCH_RECORDED.value) == []


class TestConcurrentMatches:
    """Two operators matching lines of the same file at once."""

    @pytest.mark.asyncio
    async def test_concurrent_writers_lose_nothing(self):
        store = SlowFileStore(files=make_files())
        recorder = MatchRecorder(store, AuditLogger(session_id="race"))

        results = await asyncio.gather(
            recorder.record_match("rap-1", 0, ORANGE),
            recorder.record_match("rap-1", 1, SFR),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, ReconciliationFile)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1

        stored = await store.get_file("rap-1")
        assert stored.matched_count == stored.count_matched() == 2
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_retry_after_conflict_succeeds(self):
        store = SlowFileStore(files=make_files())
        recorder = MatchRecorder(store, AuditLogger(session_id="race"))

        results = await asyncio.gather(
            recorder.record_match("rap-1", 0, ORANGE),
            recorder.record_match("rap-1", 1, SFR),
            return_exceptions=True,
        )
        loser = 0 if isinstance(results[0], ConflictError) else 1
        link = ORANGE if loser == 0 else SFR

        await recorder.record_match("rap-1", loser, link)

        stored = await store.get_file("rap-1")
        assert stored.entries[0].entity_link == ORANGE
        assert stored.entries[1].entity_link == SFR
        assert stored.matched_count == 3

    @pytest.mark.asyncio
    async def test_same_line_twice(self):
        store = SlowFileStore(files=make_files())
        recorder = MatchRecorder(store, AuditLogger(session_id="race"))

        results = await asyncio.gather(
            recorder.record_match("rap-1", 0, ORANGE),
            recorder.record_match("rap-1", 0, SFR),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ReconciliationFile) for r in results) == 1
        stored = await store.get_file("rap-1")
        assert stored.matched_count == 2


class TestRevertAndRecount:
    """Explicit reversal and counter repair."""

    @pytest.mark.asyncio
    async def test_revert(self, store, recorder, audit):
        file = await recorder.revert_match("rap-1", 2)

        assert file.entries[2].status == MatchStatus.UNMATCHED
        assert file.entries[2].entity_link is None
        assert file.matched_count == 0

        reverted = audit.get_entries(action_filter=AuditAction.MATCH_REVERTED.value)
        assert reverted[0].entity_id == "decl-1"

    @pytest.mark.asyncio
    async def test_reverted_line_is_searchable_again(self, store, recorder):
        service = ReconciliationSearchService(store, min_query_length=2)
        assert await service.search("urssaf") == []

        await recorder.revert_match("rap-1", 2)

        assert [c.entry_index for c in await service.search("urssaf")] == [2]

    @pytest.mark.asyncio
    async def test_revert_unmatched_line(self, recorder):
        with pytest.raises(NotMatchedError):
            await recorder.revert_match("rap-1", 1)

    @pytest.mark.asyncio
    async def test_revert_on_closed_file(self, recorder):
        with pytest.raises(FileClosedError):
            await recorder.revert_match("rap-closed", 0)

    @pytest.mark.asyncio
    async def test_recount_repairs_drift(self, store, recorder, audit):
        store._documents["rap-1"]["lignes_rapprochees"] = 7

        before, after = await recorder.recount("rap-1")

        assert (before, after) == (7, 1)
        assert (await store.get_file("rap-1")).matched_count == 1
        repaired = audit.get_entries(action_filter=AuditAction.MATCH_COUNT_REPAIRED.value)
        assert repaired[0].details == {"before": 7, "after": 1}

    @pytest.mark.asyncio
    async def test_recount_without_drift(self, recorder, audit):
        assert await recorder.recount("rap-1") == (1, 1)
        assert audit.entries == []

    @pytest.mark.asyncio
    async def test_recount_closed_file(self, recorder):
        assert await recorder.recount("rap-closed") == (0, 0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

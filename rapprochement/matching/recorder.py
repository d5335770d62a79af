"""
Match Recorder - commits a human-confirmed match on one transaction line.

Each operation reads the whole reconciliation file, mutates one line and
saves the file back. The save is version-checked by the store, so a
concurrent writer gets a ConflictError instead of silently losing a match.
Nothing is retried here: on any failure the caller discards its copy and
starts again from a fresh read.
"""

from typing import Optional, Tuple

import structlog

from ..errors import (
    AlreadyMatchedError,
    ConflictError,
    FileClosedError,
    IndexOutOfRangeError,
    NotMatchedError,
    ReconciliationError,
)
from ..models import (
    AuditAction,
    AuditEntry,
    EntityLink,
    ReconciliationFile,
    TransactionMatchRecord,
)
from ..storage import ReconciliationFileStore
from ..utils.audit_logger import AuditLogger

logger = structlog.get_logger()


class MatchRecorder:
    """Writes match decisions into reconciliation files."""

    def __init__(
        self,
        store: ReconciliationFileStore,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.audit = audit_logger or AuditLogger()

    async def record_match(
        self,
        file_id: str,
        entry_index: int,
        entity_link: EntityLink,
        expected_version: Optional[int] = None,
    ) -> ReconciliationFile:
        """
        Link one line to a business entity.

        Args:
            file_id: Reconciliation file holding the line
            entry_index: Position of the line in the file
            entity_link: Entity chosen by the operator
            expected_version: File version the caller's view was built from

        Returns:
            The saved file

        Raises:
            NotFoundError, FileClosedError, IndexOutOfRangeError,
            AlreadyMatchedError, ConflictError, StorageError
        """
        try:
            file = await self.store.get_file(file_id)
            self._check_writable(file, expected_version)
            entry = self._entry_at(file, entry_index)

            if entry.is_matched:
                raise AlreadyMatchedError(
                    f"Line {entry_index} of file {file_id} is already matched",
                    details={"entity_link": entry.entity_link.to_dict() if entry.entity_link else None},
                )

            previous_status = entry.status
            entry.mark_matched(entity_link)
            file.matched_count += 1

            await self.store.save_file(file)

        except ReconciliationError as e:
            self.audit.log(AuditEntry(
                action=AuditAction.MATCH_REJECTED,
                file_id=file_id,
                entry_index=entry_index,
                entity_kind=entity_link.kind,
                entity_id=entity_link.entity_id,
                message="Match rejected",
                success=False,
                error_message=e.message,
            ))
            raise

        self.audit.log(AuditEntry(
            action=AuditAction.MATCH_RECORDED,
            file_id=file_id,
            entry_index=entry_index,
            entity_kind=entity_link.kind,
            entity_id=entity_link.entity_id,
            message=f"Matched line {entry.transaction.line_number or entry_index} to {entity_link.entity_name}",
            details={
                "previous_status": previous_status.value,
                "label": entry.transaction.label,
                "matched_count": file.matched_count,
                "version": file.version,
            },
        ))
        return file

    async def revert_match(
        self,
        file_id: str,
        entry_index: int,
        expected_version: Optional[int] = None,
    ) -> ReconciliationFile:
        """Explicitly undo a match, putting the line back to UNMATCHED."""
        file = await self.store.get_file(file_id)
        self._check_writable(file, expected_version)
        entry = self._entry_at(file, entry_index)

        if not entry.is_matched:
            raise NotMatchedError(
                f"Line {entry_index} of file {file_id} is not matched"
            )

        link = entry.entity_link
        entry.clear_match()
        file.matched_count -= 1

        await self.store.save_file(file)

        self.audit.log(AuditEntry(
            action=AuditAction.MATCH_REVERTED,
            file_id=file_id,
            entry_index=entry_index,
            entity_kind=link.kind if link else None,
            entity_id=link.entity_id if link else None,
            message=f"Reverted match of line {entry.transaction.line_number or entry_index}",
            details={"matched_count": file.matched_count, "version": file.version},
        ))
        return file

    async def recount(self, file_id: str) -> Tuple[int, int]:
        """
        Realign the stored matched count with the file's entries.

        Closed files are accepted: only the denormalized counter changes.
        Returns (before, after).
        """
        file = await self.store.get_file(file_id)
        before = file.matched_count
        await self.store.save_file(file)
        after = file.matched_count

        if before != after:
            self.audit.log(AuditEntry(
                action=AuditAction.MATCH_COUNT_REPAIRED,
                file_id=file_id,
                message="Matched count repaired",
                details={"before": before, "after": after},
            ))
        return before, after

    @staticmethod
    def _check_writable(file: ReconciliationFile, expected_version: Optional[int]) -> None:
        if not file.is_open:
            raise FileClosedError(f"Reconciliation file {file.id} is closed")
        if expected_version is not None and expected_version != file.version:
            raise ConflictError(
                f"Reconciliation file {file.id} changed since it was displayed",
                details={"stored_version": file.version, "expected_version": expected_version},
            )

    @staticmethod
    def _entry_at(file: ReconciliationFile, entry_index: int) -> TransactionMatchRecord:
        if not 0 <= entry_index < len(file.entries):
            raise IndexOutOfRangeError(
                f"Line {entry_index} does not exist in file {file.id}",
                details={"total_lines": len(file.entries)},
            )
        return file.entries[entry_index]

"""
Change dispatch - pushes detected sheet changes to HubDB

Deletes go out as one batch call when there is more than one of them, falling
back to the combined request when the batch fails. Everything else (plus any
delete that could not be batched) goes out as one combined request.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Collection, List, Optional

from check_changes import Change, ChangeType
from sheet_records import OrphanedRow
from sync_errors import TransportFailure


@dataclass
class DispatchResult:
    sent: List[Change] = field(default_factory=list)
    deleted_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    response: Any = None


def filter_syncable(changes: List[Change], skip_ids: Collection[str] = ()) -> List[Change]:
    """Keep only changes whose record carries a HubDB id"""
    syncable = []
    for change in changes:
        if change.unique_id in skip_ids:
            continue
        if not change.remote_id:
            print(f"  ⏭️  Skipping {change.type.value} operation for {change.unique_id} - No HubDB row ID")
            continue
        syncable.append(change)
    return syncable


class ChangeDispatcher:
    """
    Sends changes to HubDB and records the outcome on each row

    occupied_positions are rows currently holding a live record. A deleted
    record's old row is only written to when nothing else lives there now.
    """

    def __init__(self, client, recorder, occupied_positions: Collection[int] = (), delay_seconds: float = 0.1):
        self.client = client
        self.recorder = recorder
        self.occupied_positions = set(occupied_positions)
        self.delay_seconds = delay_seconds

    def _status_row(self, change: Change) -> Optional[int]:
        position = change.position
        if change.type == ChangeType.DELETED and position in self.occupied_positions:
            return None
        return position

    def send(self, changes: List[Change]) -> DispatchResult:
        """Dispatch changes; raises TransportFailure when the combined request fails"""
        result = DispatchResult()
        if not changes:
            return result

        print(f"Sending {len(changes)} changes to HubDB...")
        self.recorder.clear(self._status_row(change) for change in changes)

        deletes = [change for change in changes if change.type == ChangeType.DELETED]
        others = [change for change in changes if change.type != ChangeType.DELETED]

        if len(deletes) > 1:
            fallback = self.batch_delete(deletes, result)
            others.extend(fallback)
        elif len(deletes) == 1:
            others.extend(deletes)

        if others:
            result.response = self.send_combined(others, result)
        return result

    def batch_delete(self, deletes: List[Change], result: DispatchResult) -> List[Change]:
        """Returns the deletes that still need sending individually"""
        remote_ids = [change.remote_id for change in deletes]
        self.recorder.syncing(self._status_row(change) for change in deletes)

        try:
            response = self.client.batch_delete_rows(remote_ids, reason='data_changes')
        except TransportFailure as e:
            print(f"  ⚠️  Batch delete failed, handling individually: {e}")
            self._mark_errors(deletes, e.row_message)
            return list(deletes)
        finally:
            time.sleep(self.delay_seconds)

        if not response.success:
            message = f"Batch deletion failed: {response.message or 'Unknown error'}"
            print(f"  ⚠️  {message} - handling individually")
            self._mark_errors(deletes, message)
            return list(deletes)

        deleted = response.deleted_ids()
        for change in deletes:
            if change.remote_id in deleted:
                self.recorder.deleted(self._status_row(change))
                result.deleted_ids.append(change.remote_id)
                result.sent.append(change)
            else:
                self.recorder.error(self._status_row(change), 'Batch deletion failed')
                result.failed_ids.append(change.remote_id)
        print(f"  ✓ Batch deleted {len(result.deleted_ids)}/{len(deletes)} HubDB rows")
        return []

    def send_combined(self, changes: List[Change], result: DispatchResult) -> Any:
        self.recorder.syncing(self._status_row(change) for change in changes)

        try:
            response = self.client.send_changes(changes)
        except TransportFailure as e:
            print(f"❌ HubDB sync request failed: {e}")
            self._mark_errors(changes, e.row_message)
            result.failed_ids.extend(change.remote_id for change in changes)
            raise

        for change in changes:
            if change.type == ChangeType.DELETED:
                self.recorder.deleted(self._status_row(change))
                result.deleted_ids.append(change.remote_id)
            else:
                self.recorder.success(change.position, f"{change.type.value} operation completed successfully")
            result.sent.append(change)
        print(f"✓ Successfully sent {len(changes)} operations to HubDB")
        return response

    def _mark_errors(self, changes: List[Change], message: str) -> None:
        for change in changes:
            self.recorder.error(self._status_row(change), message)


class OrphanDeleter:
    """Deletes HubDB rows whose sheet row was cleared but still holds the id"""

    def __init__(self, client, recorder, delay_seconds: float = 0.1):
        self.client = client
        self.recorder = recorder
        self.delay_seconds = delay_seconds

    def delete(self, orphans: List[OrphanedRow]) -> List[str]:
        """Returns the HubDB ids that were deleted"""
        if not orphans:
            return []
        print(f"Processing {len(orphans)} cleared rows for deletion")
        self.recorder.clear(orphan.position for orphan in orphans)

        if len(orphans) > 1:
            return self._delete_batch(orphans)
        return self._delete_single(orphans[0])

    def _delete_batch(self, orphans: List[OrphanedRow]) -> List[str]:
        self.recorder.syncing(orphan.position for orphan in orphans)
        try:
            response = self.client.batch_delete_rows(
                [orphan.remote_id for orphan in orphans], reason='rows_cleared'
            )
        except TransportFailure as e:
            print(f"  ⚠️  Error in batch delete, falling back to individual deletions: {e}")
            return self._fall_back(orphans, e.row_message)
        finally:
            time.sleep(self.delay_seconds)

        if not response.success:
            return self._fall_back(orphans, f"Batch deletion failed: {response.message or 'Unknown error'}")

        deleted = response.deleted_ids()
        removed = []
        for orphan in orphans:
            if orphan.remote_id in deleted:
                self.recorder.deleted(orphan.position)
                removed.append(orphan.remote_id)
                print(f"  ✓ Batch deleted HubDB row {orphan.remote_id}")
            else:
                self.recorder.error(orphan.position, 'Batch deletion failed')
        return removed

    def _fall_back(self, orphans: List[OrphanedRow], message: str) -> List[str]:
        for orphan in orphans:
            self.recorder.error(orphan.position, message)
        removed = []
        for orphan in orphans:
            removed.extend(self._delete_single(orphan))
        return removed

    def _delete_single(self, orphan: OrphanedRow) -> List[str]:
        self.recorder.syncing([orphan.position])
        try:
            response = self.client.delete_row(orphan.remote_id, orphan.position, reason='row_cleared')
        except TransportFailure as e:
            print(f"  ✗ Failed to delete HubDB row {orphan.remote_id}: {e}")
            self.recorder.error(orphan.position, e.row_message)
            return []
        finally:
            time.sleep(self.delay_seconds)

        if response.success:
            self.recorder.deleted(orphan.position)
            print(f"  ✓ Deleted HubDB row {orphan.remote_id}")
            return [orphan.remote_id]

        self.recorder.error(orphan.position, f"Deletion failed: {response.message or 'Unknown error'}")
        return []

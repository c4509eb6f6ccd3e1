"""
Per-row sync status written back onto the schedule sheet
"""

from typing import Iterable, Optional

SYNCING = 'syncing'
SYNC_SUCCESS = 'sync success'
ERROR = 'error'
DELETED = 'deleted'
CLEARED = ''

DELETED_MESSAGE = 'Successfully deleted from HubDB'


class StatusRecorder:
    """Writes the status token and message for each row the sync touches"""

    def __init__(self, sheet):
        self.sheet = sheet

    def clear(self, positions: Iterable[Optional[int]]) -> None:
        rows = sorted({p for p in positions if p})
        if not rows:
            return
        print(f"  Clearing sync status for rows: {', '.join(str(r) for r in rows)}")
        for position in rows:
            try:
                self.sheet.write_status(position, CLEARED, CLEARED)
            except Exception as e:
                # Clearing is best effort
                print(f"  ⚠️  Could not clear sync status for row {position}: {e}")

    def syncing(self, positions: Iterable[Optional[int]]) -> None:
        for position in positions:
            if position:
                self.sheet.write_status(position, SYNCING)

    def success(self, position: Optional[int], message: str) -> None:
        if position:
            self.sheet.write_status(position, SYNC_SUCCESS, message)

    def error(self, position: Optional[int], message: str) -> None:
        if position:
            self.sheet.write_status(position, ERROR, message)

    def created(self, position: Optional[int], remote_id: str) -> None:
        if position:
            self.sheet.write_remote_id(position, remote_id)
            self.sheet.write_status(position, SYNC_SUCCESS, 'HubDB row created successfully')

    def deleted(self, position: Optional[int]) -> None:
        """The remote row is gone: drop the id from the sheet so it is not deleted again"""
        if position:
            self.sheet.write_remote_id(position, '')
            self.sheet.write_status(position, DELETED, DELETED_MESSAGE)

"""
Sheet access for an .xlsx copy of the schedule workbook
"""

import os
from typing import Any, List, Optional

from openpyxl import Workbook, load_workbook

from sheet_records import SheetRow
from sync_config import SheetLayout


class SheetGateway:
    """What the sync needs from a sheet: read rows, write ids and statuses back"""

    def read_rows(self) -> List[SheetRow]:
        raise NotImplementedError

    def write_remote_id(self, position: int, remote_id: str) -> None:
        raise NotImplementedError

    def write_status(self, position: int, status: str, message: Optional[str] = None) -> None:
        """Write the status cell, and the message cell when a message is given"""
        raise NotImplementedError

    def save(self) -> None:
        pass


class WorkbookSheet(SheetGateway):
    def __init__(self, path: str, sheet_name: str, layout: Optional[SheetLayout] = None):
        self.path = path
        self.sheet_name = sheet_name
        self.layout = layout or SheetLayout()
        self.workbook = load_workbook(path)
        if sheet_name not in self.workbook.sheetnames:
            raise ValueError(
                f'Sheet "{sheet_name}" not found. Available sheets: {", ".join(self.workbook.sheetnames)}'
            )
        self.worksheet = self.workbook[sheet_name]
        self._dirty = False

    def read_rows(self) -> List[SheetRow]:
        layout = self.layout
        ws = self.worksheet
        last_row = ws.max_row
        rows: List[SheetRow] = []
        if last_row < layout.data_start_row:
            return rows

        last_data_column = layout.data_first_column + layout.data_column_count - 1
        for position in range(layout.data_start_row, last_row + 1):
            values = [
                ws.cell(row=position, column=column).value
                for column in range(layout.data_first_column, last_data_column + 1)
            ]
            remote_id = ws.cell(row=position, column=layout.remote_id_column).value
            rows.append(SheetRow(position=position, values=values, remote_id=remote_id))
        return rows

    def _set(self, position: int, column: int, value: Any) -> None:
        # cell(value=None) is a no-op in openpyxl
        self.worksheet.cell(row=position, column=column).value = value
        self._dirty = True

    def write_remote_id(self, position: int, remote_id: str) -> None:
        self._set(position, self.layout.remote_id_column, remote_id or None)

    def write_status(self, position: int, status: str, message: Optional[str] = None) -> None:
        self._set(position, self.layout.status_column, status or None)
        if message is not None:
            self._set(position, self.layout.message_column, message or None)

    def save(self) -> None:
        if not self._dirty:
            return
        self.workbook.save(self.path)
        self._dirty = False


def create_schedule_workbook(path: str, sheet_name: str, header: List[str], layout: Optional[SheetLayout] = None) -> Workbook:
    """Create an empty schedule workbook with the header on the row above the data"""
    layout = layout or SheetLayout()
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name
    header_row = max(1, layout.data_start_row - 1)
    ws.cell(row=header_row, column=layout.remote_id_column, value='hs_id')
    for offset, name in enumerate(header):
        ws.cell(row=header_row, column=layout.data_first_column + offset, value=name)
    ws.cell(row=header_row, column=layout.status_column, value='Sync status')
    ws.cell(row=header_row, column=layout.message_column, value='Sync message')
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    wb.save(path)
    return wb

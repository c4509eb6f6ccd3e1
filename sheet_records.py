"""
Record extraction - turns raw schedule rows into records keyed by a stable id
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Sequence

# Tracked fields, in sheet column order after the remote id column
TRACKED_FIELDS = ['dateTime', 'category', 'stage', 'player1', 'player2', 'results', 'venue']

# A row needs at least one of these to be a usable record
IDENTIFYING_FIELDS = ['dateTime', 'category', 'stage', 'player1', 'player2']

# Minimum data the remote store needs to create a row
REQUIRED_FOR_CREATE = ['dateTime', 'player1', 'player2']

PLACEHOLDER_PREFIX = 'temp_'


def placeholder_id(position: int) -> str:
    return f"{PLACEHOLDER_PREFIX}{position}"


def is_placeholder(unique_id: str) -> bool:
    return unique_id.startswith(PLACEHOLDER_PREFIX)


def cell_to_str(value: Any) -> str:
    """Normalize a cell value so snapshots compare stably across runs"""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'TRUE' if value else 'FALSE'
    if isinstance(value, datetime):
        return value.isoformat(timespec='minutes')
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class Record:
    unique_id: str
    fields: Dict[str, str]
    remote_id: Optional[str] = None
    position: Optional[int] = None

    def __post_init__(self):
        # Absent fields are encoded as empty strings, never as missing keys
        self.fields = {name: self.fields.get(name, '') or '' for name in TRACKED_FIELDS}

    @property
    def is_provisioned(self) -> bool:
        return bool(self.remote_id)

    def has_fields(self, names: Sequence[str]) -> bool:
        return all(self.fields.get(name) for name in names)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.fields)
        data['remoteId'] = self.remote_id or ''
        data['position'] = self.position
        return data

    @classmethod
    def from_dict(cls, unique_id: str, data: Dict[str, Any]) -> 'Record':
        fields = {name: cell_to_str(data.get(name)) for name in TRACKED_FIELDS}

        position = data.get('position')
        if position == '':
            position = None
        if position is not None and (isinstance(position, bool) or not isinstance(position, int)):
            raise ValueError(f"Snapshot entry {unique_id!r} has a non-integer position: {position!r}")

        remote_id = data.get('remoteId')
        if remote_id is not None and (isinstance(remote_id, bool) or not isinstance(remote_id, (str, int))):
            raise ValueError(f"Snapshot entry {unique_id!r} has an invalid remoteId: {remote_id!r}")

        return cls(
            unique_id=unique_id,
            fields=fields,
            remote_id=str(remote_id) if remote_id not in (None, '') else None,
            position=position,
        )


# Snapshot: ordered mapping of unique_id -> Record
Snapshot = Dict[str, Record]


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Dict[str, Any]]:
    return {unique_id: record.to_dict() for unique_id, record in snapshot.items()}


def snapshot_from_dict(data: Dict[str, Any]) -> Snapshot:
    if not isinstance(data, dict):
        raise ValueError(f"Snapshot must be a JSON object, got {type(data).__name__}")
    snapshot: Snapshot = {}
    for unique_id, record_data in data.items():
        if not isinstance(record_data, dict):
            raise ValueError(f"Snapshot entry {unique_id!r} is not an object")
        snapshot[unique_id] = Record.from_dict(unique_id, record_data)
    return snapshot


@dataclass
class SheetRow:
    """One raw sheet row: its position, the data cells and the remote id cell"""
    position: int
    values: Sequence[Any]
    remote_id: Any = None


@dataclass
class OrphanedRow:
    """A row whose data was cleared but which still carries a remote id"""
    position: int
    remote_id: str


@dataclass
class ExtractionResult:
    snapshot: Snapshot = field(default_factory=dict)
    orphans: List[OrphanedRow] = field(default_factory=list)
    skipped_rows: List[int] = field(default_factory=list)


def extract_records(rows: Sequence[SheetRow]) -> ExtractionResult:
    """
    Build the current snapshot from raw rows

    - Empty rows without a remote id are dropped silently
    - Empty rows that still carry a remote id are reported as orphans
    - Rows missing every identifying field are dropped
    """
    result = ExtractionResult()

    for row in rows:
        cells = [cell_to_str(value) for value in row.values]
        remote_id = cell_to_str(row.remote_id).strip()
        all_empty = not any(cells)

        if all_empty and remote_id:
            result.orphans.append(OrphanedRow(position=row.position, remote_id=remote_id))
            continue
        if all_empty:
            continue

        fields = {name: cells[i] if i < len(cells) else '' for i, name in enumerate(TRACKED_FIELDS)}
        if not any(fields[name] for name in IDENTIFYING_FIELDS):
            result.skipped_rows.append(row.position)
            continue

        unique_id = remote_id or placeholder_id(row.position)
        if unique_id in result.snapshot:
            print(f"  ⚠️  Row {row.position} repeats HubDB id {unique_id} "
                  f"(already on row {result.snapshot[unique_id].position}) - skipping")
            result.skipped_rows.append(row.position)
            continue

        result.snapshot[unique_id] = Record(
            unique_id=unique_id,
            fields=fields,
            remote_id=remote_id or None,
            position=row.position,
        )

    print(f"✓ Extracted {len(result.snapshot)} records from sheet")
    if result.orphans:
        print(f"  Found {len(result.orphans)} cleared rows still holding a HubDB id")
    return result

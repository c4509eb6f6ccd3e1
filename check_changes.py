#!/usr/bin/env python3
"""
Change detection for the schedule sheet
Compares the current sheet records against the last stored snapshot WITHOUT calling HubDB,
so a scheduled job can tell whether a sync is needed before running one
"""

import os
import sys
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sheet_records import TRACKED_FIELDS, Record, Snapshot, extract_records
from sheet_source import WorkbookSheet
from snapshot_store import build_snapshot_store
from sync_config import load_settings


class ChangeType(str, Enum):
    NEW = 'NEW'
    UPDATED = 'UPDATED'
    DELETED = 'DELETED'


@dataclass
class FieldChange:
    field: str
    old_value: str
    new_value: str

    def to_dict(self) -> Dict[str, str]:
        return {'field': self.field, 'oldValue': self.old_value, 'newValue': self.new_value}


@dataclass
class Change:
    type: ChangeType
    unique_id: str
    new_record: Optional[Record] = None
    old_record: Optional[Record] = None
    changed_fields: List[FieldChange] = field(default_factory=list)

    @property
    def record(self) -> Optional[Record]:
        """The record whose remote id this change acts on"""
        if self.type == ChangeType.DELETED:
            return self.old_record
        return self.new_record

    @property
    def remote_id(self) -> Optional[str]:
        record = self.record
        return record.remote_id if record else None

    @property
    def position(self) -> Optional[int]:
        record = self.record
        return record.position if record else None


def detect_changes(current: Snapshot, baseline: Snapshot) -> List[Change]:
    """
    Diff the current snapshot against the stored baseline

    NEW and UPDATED changes come first (in current order), then DELETED changes
    (in baseline order). Deletions are only reported for records that were
    created in HubDB; a placeholder that disappears had nothing remote to remove.
    """
    changes: List[Change] = []

    for unique_id, record in current.items():
        stored = baseline.get(unique_id)
        if stored is None:
            changes.append(Change(type=ChangeType.NEW, unique_id=unique_id, new_record=record))
            continue

        changed_fields = [
            FieldChange(field=name, old_value=stored.fields[name], new_value=record.fields[name])
            for name in TRACKED_FIELDS
            if record.fields[name] != stored.fields[name]
        ]
        if changed_fields:
            changes.append(Change(
                type=ChangeType.UPDATED,
                unique_id=unique_id,
                new_record=record,
                old_record=stored,
                changed_fields=changed_fields,
            ))

    for unique_id, stored in baseline.items():
        if unique_id in current:
            continue
        if stored.remote_id:
            changes.append(Change(type=ChangeType.DELETED, unique_id=unique_id, old_record=stored))
        else:
            print(f"  ⏭️  Skipping deletion of {unique_id} - no HubDB id in stored data")

    return changes


def reconcile_provisioned(snapshot: Snapshot, placeholder_id: str, remote_id: str) -> Snapshot:
    """
    Re-key a record that received its HubDB id mid-cycle

    The record keeps its place in the snapshot so the placeholder never shows up
    as a vanished key next to a brand-new one.
    """
    if placeholder_id not in snapshot:
        return snapshot
    if remote_id in snapshot and remote_id != placeholder_id:
        raise ValueError(f"Cannot bind {placeholder_id} to {remote_id}: id already present in snapshot")

    migrated: Snapshot = {}
    for unique_id, record in snapshot.items():
        if unique_id == placeholder_id:
            migrated[remote_id] = Record(
                unique_id=remote_id,
                fields=dict(record.fields),
                remote_id=remote_id,
                position=record.position,
            )
        else:
            migrated[unique_id] = record
    return migrated


def summarize_changes(changes: List[Change]) -> Dict[str, int]:
    counts = {change_type.value: 0 for change_type in ChangeType}
    for change in changes:
        counts[change.type.value] += 1
    return counts


def describe_change(change: Change) -> str:
    remote = change.remote_id or 'no HubDB id'
    line = f"  {change.type.value:<8} {change.unique_id} (row {change.position}, {remote})"
    if change.changed_fields:
        deltas = ', '.join(f"{fc.field}: {fc.old_value!r} -> {fc.new_value!r}" for fc in change.changed_fields)
        line += f" [{deltas}]"
    return line


def main() -> int:
    """Preview pending changes and output the result"""
    print("=" * 70)
    print("CHECKING SCHEDULE SHEET FOR CHANGES")
    print("=" * 70)
    print(f"Time: {datetime.now()}\n")

    try:
        settings = load_settings(require_endpoint=False)
        sheet = WorkbookSheet(settings.workbook_path, settings.sheet_name, settings.layout)
        extraction = extract_records(sheet.read_rows())
    except Exception as e:
        print(f"❌ ERROR: Could not read schedule sheet: {e}")
        return 1

    baseline = build_snapshot_store(settings).load()
    print(f"  Stored snapshot: {len(baseline)} records")

    orphan_ids = {orphan.remote_id for orphan in extraction.orphans}
    changes = [
        change for change in detect_changes(extraction.snapshot, baseline)
        if not (change.type == ChangeType.DELETED and change.remote_id in orphan_ids)
    ]
    counts = summarize_changes(changes)
    for change in changes:
        print(describe_change(change))

    has_changes = bool(changes) or bool(extraction.orphans)
    result: Dict[str, Any] = {
        'has_changes': has_changes,
        'new': counts['NEW'],
        'updated': counts['UPDATED'],
        'deleted': counts['DELETED'],
        'cleared_rows': len(extraction.orphans),
        'checked_at': datetime.now().isoformat(),
    }

    print("\n" + "=" * 70)
    if has_changes:
        print("✅ CHANGES DETECTED - Sync needed")
        print(f"   {counts['NEW']} new + {counts['UPDATED']} updated + {counts['DELETED']} deleted, "
              f"{len(extraction.orphans)} cleared rows")
    else:
        print("⏭️  NO CHANGES - Sync can be skipped")
    print("=" * 70)

    # Output for GitHub Actions
    if os.environ.get('GITHUB_OUTPUT'):
        with open(os.environ['GITHUB_OUTPUT'], 'a') as f:
            f.write(f"has_changes={str(has_changes).lower()}\n")
            f.write(f"new={counts['NEW']}\n")
            f.write(f"updated={counts['UPDATED']}\n")
            f.write(f"deleted={counts['DELETED']}\n")

    print(f"\nJSON Output: {json.dumps(result)}")
    return 0


if __name__ == '__main__':
    sys.exit(main())

#!/usr/bin/env python3
"""
Schedule sheet to HubDB Sync - pushes row-level changes since the last synced snapshot
"""

import os
import sys
import json
import traceback
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict

from check_changes import ChangeType, detect_changes, reconcile_provisioned, summarize_changes
from dispatch_changes import ChangeDispatcher, OrphanDeleter, filter_syncable
from hubdb_client import HubDBClient
from provision_rows import create_hubdb_rows, find_rows_needing_creation, needs_creation
from sheet_records import Snapshot, extract_records
from sheet_source import WorkbookSheet
from snapshot_store import SnapshotStore, build_snapshot_store
from sync_config import load_settings
from sync_errors import PersistenceError, TransportFailure
from sync_status import StatusRecorder


@dataclass
class SyncReport:
    records: int = 0
    changes: Dict[str, int] = field(default_factory=dict)
    cleared_rows: int = 0
    cleared_rows_deleted: int = 0
    created: int = 0
    creation_failures: int = 0
    sent: int = 0
    deleted: int = 0
    skipped: int = 0
    baseline_saved: bool = False


def print_phase(title: str) -> None:
    print("\n" + "-" * 70)
    print(title)
    print("-" * 70)


def baseline_to_store(current: Snapshot) -> Snapshot:
    """
    The snapshot saved for the next run

    Placeholders that still qualify for a HubDB row are left out so they come
    back as NEW next run and their create is retried.
    """
    return {unique_id: record for unique_id, record in current.items() if not needs_creation(record)}


def run_sync_cycle(
    sheet,
    store: SnapshotStore,
    client,
    request_delay: float = 0.1,
    provision_all_on_empty_baseline: bool = True,
) -> SyncReport:
    """
    Run one sync cycle

    Phases:
    - Cleared rows: delete HubDB rows whose sheet data was wiped
    - Change detection: diff the sheet against the stored snapshot
    - Provisioning: create HubDB rows for records without an id
    - Dispatch: send the remaining changes, batch deletes first
    - Store the new snapshot

    A failed combined request raises TransportFailure and leaves the stored
    snapshot untouched, so the next run recomputes the same changes.
    """
    recorder = StatusRecorder(sheet)
    report = SyncReport()

    try:
        extraction = extract_records(sheet.read_rows())
        current = extraction.snapshot
        report.records = len(current)

        # PHASE 1: CLEARED ROWS
        print_phase("PHASE 1: CLEARED ROWS - Deleting HubDB rows for wiped sheet rows")
        orphan_ids = {orphan.remote_id for orphan in extraction.orphans}
        report.cleared_rows = len(extraction.orphans)
        if extraction.orphans:
            deleter = OrphanDeleter(client, recorder, delay_seconds=request_delay)
            report.cleared_rows_deleted = len(deleter.delete(extraction.orphans))
        else:
            print("✓ No cleared rows")

        # PHASE 2: CHANGE DETECTION
        print_phase("PHASE 2: CHANGE DETECTION - Comparing sheet with stored snapshot")
        baseline = store.load()
        print(f"  Stored snapshot: {len(baseline)} records" if baseline else "  Stored snapshot: none (first run)")

        changes = [
            change for change in detect_changes(current, baseline)
            # Cleared rows were handled above
            if not (change.type == ChangeType.DELETED and change.remote_id in orphan_ids)
        ]
        report.changes = summarize_changes(changes)
        print(f"✓ Found {len(changes)} changes "
              f"({report.changes['NEW']} new, {report.changes['UPDATED']} updated, {report.changes['DELETED']} deleted)")

        # PHASE 3: PROVISIONING
        print_phase("PHASE 3: PROVISIONING - Creating HubDB rows for new sheet rows")
        rows_needing_creation = find_rows_needing_creation(
            current,
            changes,
            baseline_empty=not baseline,
            provision_all_on_empty_baseline=provision_all_on_empty_baseline,
        )
        if rows_needing_creation:
            print(f"Found {len(rows_needing_creation)} rows needing HubDB creation")
            provision = create_hubdb_rows(rows_needing_creation, client, recorder, delay_seconds=request_delay)
            for placeholder, remote_id in provision.provisioned.items():
                try:
                    current = reconcile_provisioned(current, placeholder, remote_id)
                except ValueError as e:
                    print(f"  ⚠️  {e}")
            report.created = len(provision.provisioned)
            report.creation_failures = len(provision.failed)
            provisioned_ids = set(provision.provisioned)
        else:
            print("✓ No rows need HubDB creation")
            provisioned_ids = set()

        # PHASE 4: DISPATCH
        print_phase("PHASE 4: DISPATCH - Sending changes to HubDB")
        # Rows created above already carried every tracked field
        syncable = filter_syncable(changes, skip_ids=provisioned_ids)
        carried_by_create = [change for change in changes if change.unique_id in provisioned_ids]
        report.skipped = len(changes) - len(syncable) - len(carried_by_create)
        if syncable:
            dispatcher = ChangeDispatcher(
                client,
                recorder,
                occupied_positions={record.position for record in current.values()},
                delay_seconds=request_delay,
            )
            result = dispatcher.send(syncable)
            report.sent = len(result.sent)
            report.deleted = len(result.deleted_ids)
        else:
            print("No changes with HubDB row IDs to send")

        # PHASE 5: STORE SNAPSHOT
        print_phase("PHASE 5: STORE SNAPSHOT")
        try:
            store.save(baseline_to_store(current))
            report.baseline_saved = True
        except PersistenceError as e:
            print(f"⚠️  {e} - next run will compare against the previous snapshot")

        return report
    finally:
        sheet.save()


def write_github_output(report: SyncReport) -> None:
    if not os.environ.get('GITHUB_OUTPUT'):
        return
    with open(os.environ['GITHUB_OUTPUT'], 'a') as f:
        f.write(f"records_sent={report.sent}\n")
        f.write(f"rows_created={report.created}\n")
        f.write(f"rows_deleted={report.deleted + report.cleared_rows_deleted}\n")
        f.write(f"baseline_saved={str(report.baseline_saved).lower()}\n")


def main() -> int:
    """Main sync process"""
    print("=" * 70)
    print("SCHEDULE SHEET TO HUBDB SYNC")
    print("=" * 70)
    print(f"Started at: {datetime.now()}")

    try:
        settings = load_settings()
        print(f"Workbook: {settings.workbook_path} [{settings.sheet_name}]")
        print(f"Snapshot backend: {settings.snapshot_backend}")

        sheet = WorkbookSheet(settings.workbook_path, settings.sheet_name, settings.layout)
        store = build_snapshot_store(settings)
        client = HubDBClient.from_settings(settings)

        report = run_sync_cycle(
            sheet,
            store,
            client,
            request_delay=settings.request_delay,
            provision_all_on_empty_baseline=settings.provision_all_on_empty_baseline,
        )

        print("\n--- SYNC REPORT ---")
        print(f"Records on sheet: {report.records}")
        print(f"Cleared rows deleted: {report.cleared_rows_deleted}/{report.cleared_rows}")
        print(f"HubDB rows created: {report.created} ({report.creation_failures} failed)")
        print(f"Operations sent: {report.sent} ({report.deleted} deletions)")
        print(f"Snapshot stored: {'✅ yes' if report.baseline_saved else '⚠️  no'}")
        write_github_output(report)
        print(f"\nJSON Output: {json.dumps(asdict(report))}")

        print("\n" + "=" * 70)
        print("✅ SYNC COMPLETED SUCCESSFULLY")
        print("=" * 70)
        print(f"Completed at: {datetime.now()}")
        return 0

    except TransportFailure as e:
        print(f"\n❌ ERROR: HubDB sync failed, stored snapshot left unchanged: {e}")
        if e.body:
            print(f"   Response: {e.body}")
        return 1
    except Exception as e:
        print(f"\n❌ ERROR: {e}")
        traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())

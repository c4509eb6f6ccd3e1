"""
HubDB row provisioning - creates remote rows for sheet records that have no HubDB id yet
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List

from check_changes import Change, ChangeType
from sheet_records import REQUIRED_FOR_CREATE, Record, Snapshot
from sync_errors import TransportFailure


@dataclass
class ProvisionResult:
    provisioned: Dict[str, str] = field(default_factory=dict)  # unique_id -> new HubDB id
    failed: List[str] = field(default_factory=list)


def needs_creation(record: Record) -> bool:
    return not record.is_provisioned and record.has_fields(REQUIRED_FOR_CREATE)


def find_rows_needing_creation(
    current: Snapshot,
    changes: List[Change],
    baseline_empty: bool = False,
    provision_all_on_empty_baseline: bool = True,
) -> List[Record]:
    """
    Pick the records to create in HubDB

    Targets of NEW/UPDATED changes are always candidates. With
    provision_all_on_empty_baseline set, every current record is a candidate
    when there is no baseline or nothing changed, which sweeps up rows whose
    create failed on an earlier run.
    """
    if provision_all_on_empty_baseline and (baseline_empty or not changes):
        candidate_ids = list(current.keys())
    else:
        candidate_ids = [
            change.unique_id for change in changes
            if change.type in (ChangeType.NEW, ChangeType.UPDATED)
        ]

    rows: List[Record] = []
    for unique_id in candidate_ids:
        record = current.get(unique_id)
        if record is None or record.is_provisioned:
            continue
        if not record.has_fields(REQUIRED_FOR_CREATE):
            print(f"  ⏭️  Row {record.position} is missing date/time or players - not creating a HubDB row yet")
            continue
        rows.append(record)
    return rows


def create_hubdb_rows(records: List[Record], client, recorder, delay_seconds: float = 0.1) -> ProvisionResult:
    """Create one HubDB row per record, sequentially; a failed row never stops the rest"""
    result = ProvisionResult()
    if not records:
        return result

    print(f"Creating {len(records)} HubDB rows...")
    recorder.clear(record.position for record in records)

    for record in records:
        recorder.syncing([record.position])
        try:
            response = client.create_row(record.unique_id, record)
            if response.success and response.remote_id:
                recorder.created(record.position, response.remote_id)
                result.provisioned[record.unique_id] = response.remote_id
                print(f"  ✓ Created HubDB row {response.remote_id} for sheet row {record.position}")
            else:
                message = response.message or 'Unknown error'
                recorder.error(record.position, f"Creation failed: {message}")
                result.failed.append(record.unique_id)
                print(f"  ⚠️  HubDB row creation failed for {record.unique_id}: {message}")
        except TransportFailure as e:
            recorder.error(record.position, e.row_message)
            result.failed.append(record.unique_id)
            print(f"  ✗ Error creating HubDB row for {record.unique_id}: {e}")

        # Small delay between calls to avoid rate limiting
        time.sleep(delay_seconds)

    print(f"  ✓ Successfully created {len(result.provisioned)}/{len(records)} HubDB rows")
    return result

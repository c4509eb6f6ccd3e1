"""
Snapshot storage - persists the last synced sheet state under one well-known key

The snapshot is only a comparison baseline. Reads degrade to an empty snapshot
(everything looks new, and identity checks stop duplicate creates); writes raise
PersistenceError and the caller decides what to do with it.
"""

import json
import os
from typing import Dict

import snowflake.connector

from sheet_records import Snapshot, snapshot_from_dict, snapshot_to_dict
from sync_errors import PersistenceError


class SnapshotStore:
    """Key-value persistence for the baseline snapshot"""

    key: str

    def load(self) -> Snapshot:
        raise NotImplementedError

    def save(self, snapshot: Snapshot) -> None:
        raise NotImplementedError


class JsonFileSnapshotStore(SnapshotStore):
    """Stores snapshots in a local JSON file, one entry per key"""

    def __init__(self, path: str, key: str = 'GAME_DATA'):
        self.path = path
        self.key = key

    def _read_all(self) -> Dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def load(self) -> Snapshot:
        try:
            stored = self._read_all().get(self.key)
            return snapshot_from_dict(stored) if stored else {}
        except (OSError, ValueError) as e:
            print(f"⚠️  Could not read stored snapshot from {self.path}: {e}")
            return {}

    def save(self, snapshot: Snapshot) -> None:
        try:
            try:
                data = self._read_all()
            except ValueError:
                data = {}
            data[self.key] = snapshot_to_dict(snapshot)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, sort_keys=False)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError) as e:
            raise PersistenceError(f"Could not write snapshot to {self.path}: {e}") from e
        print(f"✓ Data state stored ({len(snapshot)} records)")


class SnowflakeSnapshotStore(SnapshotStore):
    """Stores snapshots as JSON text in a SYNC_STATE table"""

    def __init__(self, connection_factory, key: str = 'GAME_DATA'):
        self.connection_factory = connection_factory
        self.key = key

    def _ensure_table(self, cursor) -> None:
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS SYNC_STATE (
                STATE_KEY VARCHAR(100) PRIMARY KEY,
                STATE_VALUE VARCHAR,
                RECORD_COUNT INTEGER,
                UPDATED_AT TIMESTAMP_NTZ DEFAULT CURRENT_TIMESTAMP()
            )
        """)

    def load(self) -> Snapshot:
        try:
            conn = self.connection_factory()
            try:
                cursor = conn.cursor()
                try:
                    self._ensure_table(cursor)
                    cursor.execute(
                        "SELECT STATE_VALUE FROM SYNC_STATE WHERE STATE_KEY = %s",
                        (self.key,)
                    )
                    result = cursor.fetchone()
                finally:
                    cursor.close()
            finally:
                conn.close()
            if not result or not result[0]:
                return {}
            return snapshot_from_dict(json.loads(result[0]))
        except (snowflake.connector.errors.Error, ValueError) as e:
            print(f"⚠️  Could not retrieve stored snapshot: {e}")
            return {}

    def save(self, snapshot: Snapshot) -> None:
        payload = json.dumps(snapshot_to_dict(snapshot))
        try:
            conn = self.connection_factory()
            try:
                cursor = conn.cursor()
                try:
                    self._ensure_table(cursor)
                    cursor.execute("""
                        MERGE INTO SYNC_STATE AS target
                        USING (SELECT %s AS STATE_KEY, %s AS STATE_VALUE, %s AS RECORD_COUNT) AS source
                        ON target.STATE_KEY = source.STATE_KEY
                        WHEN MATCHED THEN UPDATE SET
                            STATE_VALUE = source.STATE_VALUE,
                            RECORD_COUNT = source.RECORD_COUNT,
                            UPDATED_AT = CURRENT_TIMESTAMP()
                        WHEN NOT MATCHED THEN INSERT (
                            STATE_KEY, STATE_VALUE, RECORD_COUNT, UPDATED_AT
                        ) VALUES (
                            source.STATE_KEY, source.STATE_VALUE, source.RECORD_COUNT, CURRENT_TIMESTAMP()
                        )
                    """, (self.key, payload, len(snapshot)))
                    conn.commit()
                finally:
                    cursor.close()
            finally:
                conn.close()
        except snowflake.connector.errors.Error as e:
            raise PersistenceError(f"Could not write snapshot to Snowflake: {e}") from e
        print(f"✓ Data state stored in Snowflake ({len(snapshot)} records)")


def get_snowflake_connection(settings):
    """Create Snowflake connection"""
    return snowflake.connector.connect(
        user=settings.snowflake_user,
        password=settings.snowflake_password,
        account=settings.snowflake_account,
        warehouse=settings.snowflake_warehouse,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema
    )


def build_snapshot_store(settings) -> SnapshotStore:
    if settings.snapshot_backend == 'snowflake':
        return SnowflakeSnapshotStore(lambda: get_snowflake_connection(settings), key=settings.snapshot_key)
    return JsonFileSnapshotStore(settings.snapshot_path, key=settings.snapshot_key)

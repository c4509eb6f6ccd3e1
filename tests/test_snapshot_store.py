"""Tests for snapshot persistence."""

import json

import pytest
import snowflake.connector

from conftest import make_record
from snapshot_store import JsonFileSnapshotStore, SnowflakeSnapshotStore, build_snapshot_store
from sync_config import SyncSettings
from sync_errors import PersistenceError


class TestJsonFileSnapshotStore:

    def test_missing_file_loads_empty(self, tmp_path):
        assert JsonFileSnapshotStore(str(tmp_path / 'none.json')).load() == {}

    def test_save_then_load(self, store):
        snapshot = {'1': make_record('1', remote_id='1', results='6-4')}
        store.save(snapshot)
        assert store.load() == snapshot

    def test_keys_share_one_file(self, tmp_path):
        path = str(tmp_path / 'state.json')
        games = JsonFileSnapshotStore(path, key='GAME_DATA')
        other = JsonFileSnapshotStore(path, key='OTHER')
        games.save({'1': make_record('1', remote_id='1')})
        other.save({'2': make_record('2', remote_id='2')})
        assert list(games.load()) == ['1']
        assert list(other.load()) == ['2']

    def test_corrupt_file_degrades_to_empty(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text('{not json')
        assert JsonFileSnapshotStore(str(path)).load() == {}

    def test_bad_entry_degrades_to_empty(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text(json.dumps({'GAME_DATA': {'1': 'oops'}}))
        assert JsonFileSnapshotStore(str(path)).load() == {}

    @pytest.mark.parametrize('entry', [
        {'remoteId': '7', 'position': [4]},
        {'remoteId': '7', 'position': '4'},
        {'remoteId': {'id': 7}, 'position': 4},
        {'remoteId': True, 'position': 4},
    ])
    def test_badly_typed_entry_degrades_to_empty(self, tmp_path, entry):
        path = tmp_path / 'state.json'
        path.write_text(json.dumps({'GAME_DATA': {'7': entry}}))
        assert JsonFileSnapshotStore(str(path)).load() == {}

    def test_numeric_remote_id_is_read_as_text(self, tmp_path):
        path = tmp_path / 'state.json'
        path.write_text(json.dumps({'GAME_DATA': {'7': {'remoteId': 7, 'position': 4}}}))
        assert JsonFileSnapshotStore(str(path)).load()['7'].remote_id == '7'

    def test_write_failure_raises_persistence_error(self, tmp_path):
        store = JsonFileSnapshotStore(str(tmp_path / 'missing_dir' / 'state.json'))
        with pytest.raises(PersistenceError):
            store.save({'1': make_record('1', remote_id='1')})


class FakeCursor:
    def __init__(self, db):
        self.db = db
        self.result = None

    def execute(self, sql, params=None):
        self.db.statements.append(sql)
        if sql.strip().startswith('SELECT'):
            value = self.db.rows.get(params[0])
            self.result = (value,) if value is not None else None
        elif 'MERGE INTO SYNC_STATE' in sql:
            self.db.rows[params[0]] = params[1]

    def fetchone(self):
        return self.result

    def close(self):
        pass


class FakeConnection:
    def __init__(self, db):
        self.db = db

    def cursor(self):
        return FakeCursor(self.db)

    def commit(self):
        self.db.commits += 1

    def close(self):
        pass


class FakeSnowflake:
    def __init__(self):
        self.rows = {}
        self.statements = []
        self.commits = 0

    def connect(self):
        return FakeConnection(self)


class TestSnowflakeSnapshotStore:

    def test_save_then_load(self):
        db = FakeSnowflake()
        store = SnowflakeSnapshotStore(db.connect)
        snapshot = {'1': make_record('1', remote_id='1')}

        store.save(snapshot)

        assert store.load() == snapshot
        assert db.commits == 1
        assert any('CREATE TABLE IF NOT EXISTS SYNC_STATE' in sql for sql in db.statements)

    def test_empty_table_loads_empty(self):
        assert SnowflakeSnapshotStore(FakeSnowflake().connect).load() == {}

    def test_badly_typed_stored_entry_degrades(self):
        db = FakeSnowflake()
        db.rows['GAME_DATA'] = json.dumps({'7': {'remoteId': '7', 'position': [4]}})
        assert SnowflakeSnapshotStore(db.connect).load() == {}

    def test_connection_failure_on_load_degrades(self):
        def fail():
            raise snowflake.connector.errors.DatabaseError('warehouse suspended')
        assert SnowflakeSnapshotStore(fail).load() == {}

    def test_connection_failure_on_save_raises(self):
        def fail():
            raise snowflake.connector.errors.DatabaseError('warehouse suspended')
        with pytest.raises(PersistenceError):
            SnowflakeSnapshotStore(fail).save({})


def test_build_snapshot_store_picks_backend():
    file_settings = SyncSettings(endpoint='x', workbook_path='s.xlsx', snapshot_path='/tmp/s.json', snapshot_key='K')
    store = build_snapshot_store(file_settings)
    assert isinstance(store, JsonFileSnapshotStore)
    assert store.key == 'K'

    snowflake_settings = SyncSettings(endpoint='x', workbook_path='s.xlsx', snapshot_backend='snowflake')
    assert isinstance(build_snapshot_store(snowflake_settings), SnowflakeSnapshotStore)
